from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "CRM Assistant Actions API"
    app_env: str = "local"
    app_debug: bool = False
    log_level: str = "INFO"
    crm_backend: str = "memory"
    crm_api_base_url: str = "http://localhost:5000"
    crm_api_token: str | None = None
    crm_http_timeout_seconds: float = 15.0
    crm_list_page_size: int = 1000
    action_timeout_seconds: float | None = 30.0
    export_ttl_seconds: float | None = 3600.0
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_console_exporter: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
