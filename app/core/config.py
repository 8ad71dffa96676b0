from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database configuration (SQLAlchemy async URL, e.g. postgresql+asyncpg://...)
    database_url: Optional[str] = os.getenv("DATABASE_URL", "")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Frontend URL (for CORS and billing portal return URLs)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # JWT configuration (tokens issued by the external auth provider)
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-this")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_audience: Optional[str] = os.getenv("JWT_AUDIENCE") or None

    # Stripe configuration
    stripe_secret: Optional[str] = os.getenv("STRIPE_SECRET", "")
    stripe_webhook_secret: Optional[str] = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    stripe_webhook_tolerance_seconds: int = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
    stripe_timeout_seconds: float = float(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))

    # Webhook ledger: how long a claim blocks concurrent deliveries of the same event
    webhook_claim_lease_seconds: int = int(os.getenv("WEBHOOK_CLAIM_LEASE_SECONDS", "300"))

    # Catalog sync (0 disables the in-process scheduler)
    catalog_sync_interval_seconds: int = int(os.getenv("CATALOG_SYNC_INTERVAL_SECONDS", "21600"))
    admin_api_key: Optional[str] = os.getenv("ADMIN_API_KEY", "")

    class Config:
        env_file = ".env"


settings = Settings()
