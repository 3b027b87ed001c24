import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field("sqlite:///./woodpantry_recipes.db", alias="DATABASE_URL")
    dictionary_url: str | None = Field(None, alias="DICTIONARY_URL")
    dictionary_timeout_seconds: float = Field(10.0, alias="DICTIONARY_TIMEOUT_SECONDS")
    llm_base_url: str | None = Field(None, alias="LLM_BASE_URL")
    llm_model_name: str = Field("full", alias="LLM_MODEL_NAME")
    llm_api_key: str | None = Field(None, alias="LLM_API_KEY")
    llm_timeout_seconds: float = Field(60.0, alias="LLM_TIMEOUT_SECONDS")
    redis_url: str | None = Field(None, alias="REDIS_URL")
    ingestion_strategy: Literal["auto", "sync", "async"] = Field("auto", alias="INGESTION_STRATEGY")
    event_exchange: str = Field("woodpantry.topic", alias="EVENT_EXCHANGE")
    import_result_queue: str = Field("recipes.recipe-imported", alias="IMPORT_RESULT_QUEUE")
    import_result_subscriber_enabled: bool = Field(True, alias="IMPORT_RESULT_SUBSCRIBER_ENABLED")
    import_result_consumer_name: str | None = Field(None, alias="IMPORT_RESULT_CONSUMER_NAME")
    log_level: str = Field("info", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()
    except PermissionError:
        logger.warning("Unable to read .env; continuing with environment variables only")
        settings = Settings(_env_file=None)
    return settings
