"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings

from shopsync.core.errors import ConfigError


class Settings(BaseSettings):
    """Application configuration."""

    # Shopify App Configuration
    shopify_api_key: Optional[str] = None
    shopify_api_secret: Optional[str] = None
    shopify_scopes: str = "read_products,read_orders,read_customers"
    shopify_app_url: Optional[str] = None
    shopify_api_version: str = "2024-07"
    shop_domain_suffix: str = ".myshopify.com"

    # Development only - never enable in production
    skip_webhook_verify: bool = False

    # Background Sync Configuration
    auto_sync_enabled: bool = False
    auto_sync_minutes: int = 5
    auto_sync_seconds: int = 0
    auto_sync_collections: str = "customers,products,orders"
    auto_register_webhooks_on_boot: bool = False

    # Storage Configuration
    database_url: Optional[str] = None

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origin: str = "http://localhost:3000"
    http_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    environment: str = "development"

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def sync_collections(self) -> List[str]:
        """Collections swept by the background sync, in configured order."""
        return [c.strip() for c in self.auto_sync_collections.split(",") if c.strip()]

    @property
    def sync_interval_seconds(self) -> int:
        if self.auto_sync_seconds > 0:
            return self.auto_sync_seconds
        return max(1, self.auto_sync_minutes) * 60

    @property
    def app_url(self) -> str:
        return (self.shopify_app_url or f"http://localhost:{self.port}").rstrip("/")

    def validate_required(self) -> None:
        """
        Fail fast on settings the service cannot run without.

        Raises:
            ConfigError: listing every missing or invalid value
        """
        problems = []
        for name in ("shopify_api_key", "shopify_api_secret", "shopify_app_url", "database_url"):
            if not getattr(self, name):
                problems.append(f"{name.upper()} is not set")

        if self.skip_webhook_verify and self.environment == "production":
            problems.append("SKIP_WEBHOOK_VERIFY must not be enabled in production")

        unknown = set(self.sync_collections) - {"customers", "products", "orders"}
        if unknown:
            problems.append(f"AUTO_SYNC_COLLECTIONS has unknown entries: {sorted(unknown)}")

        if problems:
            raise ConfigError("; ".join(problems))


# Create a global settings instance
settings = Settings()
