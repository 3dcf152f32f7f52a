from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "recruitment-campaigns-api"
    environment: str = "dev"
    data_store_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_service_role_key: str | None = None
    auth_timeout_seconds: float = 5.0
    role_fetch_max_attempts: int = 3
    role_fetch_retry_base_seconds: float = 0.5
    role_fetch_retry_max_seconds: float = 4.0
    storage_timeout_seconds: float = 30.0
    cv_bucket: str = "cvs"
    cv_max_bytes: int = 10 * 1024 * 1024
    cv_signed_url_ttl_seconds: int = 300
    otel_enabled: bool = True
    otel_service_name: str = "recruitment-campaigns-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="RC_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
