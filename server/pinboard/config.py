# ─────────────────────────────────────────────────────────────────────────────
# Settings — Pydantic v2 BaseSettings
# ─────────────────────────────────────────────────────────────────────────────


from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server configuration sourced from environment variables.

    Uses pydantic-settings v2 (separate package from pydantic).
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    # ── Infrastructure ───────────────────────────────────────────────────────
    mongodb_url: str = ""  # Empty → in-memory document store
    mongodb_database: str = "pinboard"
    storage_bucket: str = ""  # Empty → relocation disabled
    storage_credentials_file: str = ""  # Empty → application default credentials
    cdn_base_url: str = ""

    # ── External AI services ─────────────────────────────────────────────────
    openai_api_key: SecretStr = SecretStr("")
    vision_model: str = "gpt-4o-mini"
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"
    title_model: str = "gpt-3.5-turbo"
    title_max_tokens: int = 10

    # ── Limits ───────────────────────────────────────────────────────────────
    pin_quota: int = 10
    ai_image_quota: int = 5
    max_labels: int = 10
    label_cache_size: int = 1024
    http_timeout_seconds: float = 10.0
    scan_concurrency: int = 8

    # ── Visibility ───────────────────────────────────────────────────────────
    owner_only_fields: list[str] = ["originalImgLink", "visionApiTags"]

    # ── Security ─────────────────────────────────────────────────────────────
    api_key: SecretStr = SecretStr("")
    allowed_origins: str = ""

    # ── Logging ──────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True
    otel_exporter: str = ""


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
