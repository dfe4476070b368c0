"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )
    items_table: str = Field(
        default="items",
        description="Table holding inventory items"
    )
    item_images_table: str = Field(
        default="item_images",
        description="Table holding per-item gallery rows"
    )
    item_images_bucket: str = Field(
        default="item-images",
        description="Storage bucket for downloaded item images"
    )

    # ===================
    # LOOKUP SERVICE
    # ===================
    lookup_function_name: str = Field(
        default="enrich-items",
        description="Supabase edge function used for online item lookup"
    )
    lookup_timeout_seconds: float = Field(
        default=30.0,
        ge=1,
        le=300,
        description="Timeout for one lookup request"
    )
    lookup_batch_limit: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Maximum items per lookup request"
    )

    # ===================
    # IMPORT PIPELINE
    # ===================
    existence_chunk_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Values per existence query (keeps filter URLs short)"
    )
    commit_chunk_size: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Records per batch write"
    )
    enrichment_wave_size: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum lookup requests in flight"
    )
    enrichment_wave_pause_seconds: float = Field(
        default=0.2,
        ge=0,
        le=10,
        description="Pause between lookup waves"
    )
    description_max_length: int = Field(
        default=500,
        ge=50,
        le=5000,
        description="Maximum length of an online description"
    )
    enrichment_cache_ttl_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="How long lookup results stay cached"
    )
    enrichment_cache_max_entries: int = Field(
        default=2000,
        ge=10,
        le=100000,
        description="Cache size before oldest entries are evicted"
    )
    import_session_ttl_minutes: int = Field(
        default=60,
        ge=5,
        le=1440,
        description="Idle time before an import session is discarded"
    )
    max_persisted_images: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Images downloaded per item after commit"
    )
    image_download_timeout_seconds: float = Field(
        default=15.0,
        ge=1,
        le=120,
        description="Timeout for one image download"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def lookup_function_url(self) -> str:
        """Full URL of the lookup edge function."""
        return f"{self.supabase_url.rstrip('/')}/functions/v1/{self.lookup_function_name}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
