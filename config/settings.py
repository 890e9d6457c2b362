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

    # ===================
    # WAREHOUSE (FLOWTRAC)
    # ===================
    flowtrac_api_url: Optional[str] = Field(
        None,
        description="Warehouse API base URL"
    )
    flowtrac_badge: Optional[str] = Field(
        None,
        description="Device-login badge"
    )
    flowtrac_pin: Optional[str] = Field(
        None,
        description="Device-login PIN"
    )
    flowtrac_warehouse: str = Field(
        default="Manteca",
        description="Only bins in this warehouse are counted"
    )
    flowtrac_timeout_seconds: int = Field(
        default=10,
        ge=1,
        le=120,
        description="Per-request timeout for warehouse calls"
    )

    # ===================
    # SHOPIFY
    # ===================
    shopify_store_url: Optional[str] = Field(
        None,
        description="Store domain, e.g. my-store.myshopify.com"
    )
    shopify_access_token: Optional[str] = Field(
        None,
        description="Admin API access token"
    )
    shopify_api_version: str = Field(
        default="2024-01",
        description="Admin API version"
    )
    shopify_location_name: str = Field(
        default="Manteca",
        description="Inventory location updated by the sync"
    )

    # ===================
    # AMAZON
    # ===================
    amazon_client_id: Optional[str] = Field(None, description="LWA client id")
    amazon_client_secret: Optional[str] = Field(None, description="LWA client secret")
    amazon_refresh_token: Optional[str] = Field(None, description="LWA refresh token")
    amazon_seller_id: Optional[str] = Field(None, description="Selling partner id")
    amazon_marketplace_id: str = Field(
        default="ATVPDKIKX0DER",
        description="Marketplace id (default: amazon.com)"
    )
    amazon_endpoint: str = Field(
        default="https://sellingpartnerapi-na.amazon.com",
        description="Selling Partner API regional endpoint"
    )

    # ===================
    # SHIPSTATION
    # ===================
    shipstation_api_key: Optional[str] = Field(None, description="ShipStation API key")
    shipstation_api_secret: Optional[str] = Field(None, description="ShipStation API secret")

    # ===================
    # TELEGRAM
    # ===================
    telegram_bot_token: Optional[str] = Field(
        None,
        description="Telegram bot token from @BotFather"
    )
    telegram_chat_id: Optional[str] = Field(
        None,
        description="Telegram chat ID for alerts"
    )

    # ===================
    # SYNC ENGINE
    # ===================
    sync_batch_size: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Warehouse SKUs per batch"
    )
    sync_dispatch_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Concurrent channel updates per channel"
    )
    sync_verify_updates: bool = Field(
        default=False,
        description="Read back channel quantity after each update"
    )
    sync_missing_sku_policy: str = Field(
        default="zero",
        pattern="^(zero|skip)$",
        description="zero: absent warehouse SKU counts as 0; skip: leave channel untouched"
    )
    sync_lease_seconds: int = Field(
        default=300,
        ge=10,
        le=3600,
        description="How long a claimed batch blocks other continue calls"
    )
    sync_stale_session_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Active sessions idle longer than this are garbage-collected"
    )
    sync_auto_continue_after_seconds: int = Field(
        default=120,
        ge=0,
        le=3600,
        description="Idle time before the auto-continue hook advances a session"
    )
    sync_enabled_channels: str = Field(
        default="shopify,amazon,shipstation",
        description="Comma-separated channels targeted by the dispatcher"
    )
    mapping_file_path: str = Field(
        default="mapping.json",
        description="Fallback mapping file when the database has none"
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
    def telegram_configured(self) -> bool:
        """Check if Telegram is properly configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def flowtrac_configured(self) -> bool:
        return bool(self.flowtrac_api_url and self.flowtrac_badge and self.flowtrac_pin)

    @property
    def shopify_configured(self) -> bool:
        return bool(self.shopify_store_url and self.shopify_access_token)

    @property
    def amazon_configured(self) -> bool:
        return bool(
            self.amazon_client_id
            and self.amazon_client_secret
            and self.amazon_refresh_token
            and self.amazon_seller_id
        )

    @property
    def shipstation_configured(self) -> bool:
        return bool(self.shipstation_api_key and self.shipstation_api_secret)

    @property
    def enabled_channels(self) -> list[str]:
        """Parsed sync_enabled_channels, lowercased, order preserved."""
        return [
            c.strip().lower()
            for c in self.sync_enabled_channels.split(",")
            if c.strip()
        ]


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
