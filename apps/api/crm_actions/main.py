import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from crm_actions.api.routes import router as api_router
from crm_actions.core.config import get_settings
from crm_actions.logging import configure_logging
from crm_actions.middleware.correlation_id import CorrelationIdMiddleware
from crm_actions.middleware.request_logging import RequestLoggingMiddleware
from crm_actions.otel import server_request_hook, setup_otel


settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("crm_actions.lifecycle")

app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.app_debug)
# Starlette runs the last-added middleware first, so the correlation id is set before request logging.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(settings)
if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=server_request_hook)

logger.info("app.configured", extra={"crm_backend": settings.crm_backend})
