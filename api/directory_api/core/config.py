from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "grajau-directory-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    clerk_api_url: str = "https://api.clerk.com"
    clerk_secret_key: str | None = None
    auth_timeout_seconds: float = 5.0
    resend_api_url: str = "https://api.resend.com"
    resend_api_key: str | None = None
    email_from: str = "no-reply@anunciargrajau.com.br"
    email_timeout_seconds: float = 10.0
    brand_name: str = "Anunciar Grajaú"
    pending_default_limit: int = 10
    audit_default_limit: int = 20
    max_page_limit: int = 100
    otel_enabled: bool = True
    otel_service_name: str = "grajau-directory-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="DIRECTORY_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
