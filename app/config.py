"""
WorkflowGuard Billing Configuration
====================================

PURPOSE:
    Pydantic-Settings based configuration for the WorkflowGuard billing backend.
    All settings can be overridden via environment variables (WORKFLOWGUARD_ prefix).

NOTES:
    The HubSpot webhook shared secret is also accepted from the bare
    HUBSPOT_CLIENT_SECRET variable used by existing deployments.
"""

import logging
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DEFAULT_HUBSPOT_API_BASE = "https://api.hubapi.com"


class Settings(BaseSettings):
    """Runtime configuration for the overage billing service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="WORKFLOWGUARD_",
        extra="ignore",
    )

    app_name: str = "WorkflowGuard Billing"
    debug: bool = False  # Default OFF for production safety

    # Database: SQLite for local dev, PostgreSQL in production
    database_url: str = Field(
        default="sqlite:///data/workflowguard.db",
        validation_alias=AliasChoices("WORKFLOWGUARD_DATABASE_URL", "DATABASE_URL"),
    )
    database_echo: bool = False

    # Admin guard for back-office endpoints
    auth_enabled: bool = True  # Set WORKFLOWGUARD_AUTH_ENABLED=false only for local dev.
    admin_api_key: Optional[str] = None

    # HubSpot billing integration
    # Shared secret for plan-change webhooks. Missing = webhook fails closed (500).
    hubspot_client_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("WORKFLOWGUARD_HUBSPOT_CLIENT_SECRET", "HUBSPOT_CLIENT_SECRET"),
    )
    hubspot_api_base: str = _DEFAULT_HUBSPOT_API_BASE
    hubspot_access_token: Optional[str] = None
    billing_gateway_timeout_s: float = 10.0

    # User-facing billing notifications (fire-and-forget)
    notification_webhook_url: Optional[str] = None
    notification_timeout_s: float = 5.0

    # Periodic sweep of unbilled overages
    billing_sweep_enabled: bool = False
    billing_sweep_interval_s: int = 3600  # hourly

    # Logging: log_dir None = stderr only
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    @property
    def webhook_secret_configured(self) -> bool:
        return bool(self.hubspot_client_secret)


settings = Settings()

if settings.auth_enabled and not settings.admin_api_key:
    logger.warning(
        "WORKFLOWGUARD_ADMIN_API_KEY not set; admin billing endpoints will reject every request."
    )
