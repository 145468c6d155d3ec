from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:3000"
    api_token: str | None = None
    request_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 60
    otel_enabled: bool = True
    otel_service_name: str = "coderag-client"
    otel_exporter_otlp_endpoint: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="CODERAG_CLIENT_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
