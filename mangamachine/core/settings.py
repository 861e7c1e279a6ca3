from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_image_model: str = Field(default="gemini-2.5-flash-image", validation_alias="GEMINI_IMAGE_MODEL")

    volcengine_api_key: str | None = Field(default=None, validation_alias="VOLCENGINE_API_KEY")
    volcengine_base_url: str = Field(
        default="https://ark.cn-beijing.volces.com",
        validation_alias="VOLCENGINE_BASE_URL",
    )
    volcengine_image_model: str = Field(
        default="doubao-seedream-4-0-250828",
        validation_alias="VOLCENGINE_IMAGE_MODEL",
    )

    provider_timeout_seconds: float = Field(default=120.0, validation_alias="PROVIDER_TIMEOUT_SECONDS")
    reference_timeout_seconds: float = Field(default=120.0, validation_alias="REFERENCE_TIMEOUT_SECONDS")

    retry_max_attempts: int = Field(default=3, validation_alias="RETRY_MAX_ATTEMPTS")
    retry_base_delay_seconds: float = Field(default=1.0, validation_alias="RETRY_BASE_DELAY_SECONDS")
    retry_overload_base_delay_seconds: float = Field(
        default=3.0,
        validation_alias="RETRY_OVERLOAD_BASE_DELAY_SECONDS",
    )
    retry_max_delay_seconds: float = Field(default=15.0, validation_alias="RETRY_MAX_DELAY_SECONDS")
    fallback_max_attempts: int = Field(default=1, validation_alias="FALLBACK_MAX_ATTEMPTS")

    batch_max_concurrency: int = Field(default=5, validation_alias="BATCH_MAX_CONCURRENCY")
    batch_stagger_seconds: float = Field(default=0.2, validation_alias="BATCH_STAGGER_SECONDS")
    batch_delay_seconds: float = Field(default=1.0, validation_alias="BATCH_DELAY_SECONDS")
    batch_slow_delay_seconds: float = Field(default=2.0, validation_alias="BATCH_SLOW_DELAY_SECONDS")
    batch_slow_threshold_seconds: float = Field(
        default=10.0,
        validation_alias="BATCH_SLOW_THRESHOLD_SECONDS",
    )

    cache_max_bytes: int = Field(default=50 * 1024 * 1024, validation_alias="CACHE_MAX_BYTES")
    cache_panel_ttl_seconds: float = Field(default=4 * 60 * 60, validation_alias="CACHE_PANEL_TTL_SECONDS")
    cache_character_ttl_seconds: float = Field(
        default=2 * 60 * 60,
        validation_alias="CACHE_CHARACTER_TTL_SECONDS",
    )

    media_root: str = Field(default="./storage/media", validation_alias="MEDIA_ROOT")
    media_url_prefix: str = Field(default="/media", validation_alias="MEDIA_URL_PREFIX")


settings = Settings()
