from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "coderag-task-api"
    environment: str = "dev"
    api_prefix: str = "/api/v1"
    task_retention_hours: int = 24
    task_list_limit: int = 50

    model_config = SettingsConfigDict(env_prefix="CODERAG_API_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
