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
        description="Supabase service role key (preferred for server-side writes)"
    )

    # ===================
    # SHOPIFY
    # ===================
    shopify_store_domain: Optional[str] = Field(
        None,
        description="Shopify store domain (e.g. my-store.myshopify.com)"
    )
    shopify_admin_access_token: Optional[str] = Field(
        None,
        description="Static Admin API token; falls back to stored OAuth token"
    )
    shopify_api_version: str = Field(
        default="2025-01",
        description="Shopify Admin API version"
    )
    shopify_metafield_namespace: str = Field(
        default="product_scout",
        description="Namespace for product metafields"
    )

    # ===================
    # HUBSPOT
    # ===================
    hubspot_access_token: Optional[str] = Field(
        None,
        description="HubSpot private app token"
    )
    hubspot_client_id: Optional[str] = Field(
        None,
        description="HubSpot OAuth client id (client credentials flow)"
    )
    hubspot_client_secret: Optional[str] = Field(
        None,
        description="HubSpot OAuth client secret"
    )
    hubspot_pipeline_id: str = Field(
        default="default",
        description="Deal pipeline for inventory intake"
    )
    hubspot_intake_stage_id: str = Field(
        default="appointmentscheduled",
        description="Deal stage for new intake deals"
    )
    hubspot_portal_id: Optional[str] = Field(
        None,
        description="HubSpot portal id (used for deal URLs)"
    )

    # ===================
    # NOTION
    # ===================
    notion_api_key: Optional[str] = Field(
        None,
        description="Notion integration token"
    )
    notion_inventory_database_id: Optional[str] = Field(
        None,
        description="Notion Global Inventory database id"
    )
    notion_version: str = Field(
        default="2022-06-28",
        description="Notion-Version header"
    )

    # ===================
    # ANTHROPIC
    # ===================
    anthropic_api_key: Optional[str] = Field(
        None,
        description="Anthropic API key for the copywriter"
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for product copy"
    )
    anthropic_max_tokens: int = Field(
        default=4096,
        ge=256,
        le=16384,
        description="Max tokens per copywriter response"
    )

    # ===================
    # SYNC / RETRY
    # ===================
    sync_retry_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries per outbound call (attempts = retries + 1)"
    )
    sync_retry_initial_delay: float = Field(
        default=1.0,
        ge=0,
        le=30,
        description="First backoff delay in seconds"
    )
    sync_retry_max_delay: float = Field(
        default=10.0,
        ge=0,
        le=120,
        description="Backoff delay cap in seconds"
    )
    sync_retry_backoff_factor: float = Field(
        default=2.0,
        ge=1,
        le=10,
        description="Backoff multiplier"
    )
    platform_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Deadline for one platform publish, retries included"
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for a single outbound HTTP request"
    )

    # ===================
    # IDEMPOTENCY
    # ===================
    idempotency_lock_seconds: int = Field(
        default=300,
        ge=1,
        le=3600,
        description="How long an in-progress request holds its key"
    )

    # ===================
    # MATCHING
    # ===================
    match_suggestion_limit: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Suggestions returned per catalog entry"
    )
    fuzzy_candidate_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Inventory rows pulled for the fuzzy pass"
    )
    auto_match_min_confidence: int = Field(
        default=95,
        ge=0,
        le=100,
        description="Minimum confidence for auto-linking"
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
    def hubspot_configured(self) -> bool:
        """Static token or client credentials present."""
        return bool(
            self.hubspot_access_token
            or (self.hubspot_client_id and self.hubspot_client_secret)
        )

    @property
    def notion_configured(self) -> bool:
        """Check if Notion is properly configured."""
        return bool(self.notion_api_key and self.notion_inventory_database_id)


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
