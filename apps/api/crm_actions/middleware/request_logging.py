from __future__ import annotations

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from crm_actions.context import reset_workspace_id, set_workspace_id
from crm_actions.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("crm_actions.request")

_WORKSPACE_PATH_RE = re.compile(r"^/api/workspaces/([^/]+)(?:/|$)")


def workspace_id_from_path(path: str) -> str | None:
    match = _WORKSPACE_PATH_RE.match(path)
    if match is None:
        return None
    return match.group(1)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        method = request.method
        path = resolve_http_path_label(request)
        token = set_workspace_id(workspace_id_from_path(request.url.path))

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            observe_http_request(method=method, path=path, status=500, duration=duration_ms / 1000)
            logger.error(
                "http.error",
                exc_info=True,
                extra={"method": method, "path": path, "status_code": 500, "duration_ms": duration_ms},
            )
            reset_workspace_id(token)
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        path = resolve_http_path_label(request)
        observe_http_request(method=method, path=path, status=response.status_code, duration=duration_ms / 1000)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "http.request",
            extra={"method": method, "path": path, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        reset_workspace_id(token)
        return response
