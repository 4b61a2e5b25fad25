from typing import List, Optional
from uuid import UUID

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Billing values that platform admins change at runtime (processor secret key,
    trial defaults) are not here; they live in platform_settings rows and are read
    per request (see app.core.platform_settings).
    """

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(True, alias="LOG_JSON")

    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # Fallback signing secret when the platform setting is not set
    stripe_webhook_secret: Optional[str] = Field(None, alias="STRIPE_WEBHOOK_SECRET")
    # Development only: accept webhook bodies without a Stripe-Signature header
    allow_unsigned_webhooks: bool = Field(False, alias="ALLOW_UNSIGNED_WEBHOOKS")
    webhook_tolerance_seconds: int = Field(300, alias="WEBHOOK_TOLERANCE_SECONDS")
    stripe_api_version: str = Field("2023-10-16", alias="STRIPE_API_VERSION")

    # Optional first super admin created by `python -m app.db.seed`
    super_admin_user_id: Optional[UUID] = Field(None, alias="SUPER_ADMIN_USER_ID")
    super_admin_email: Optional[str] = Field(None, alias="SUPER_ADMIN_EMAIL")

    default_trial_days: int = Field(7, alias="DEFAULT_TRIAL_DAYS")
    expiration_warning_days: int = Field(7, alias="EXPIRATION_WARNING_DAYS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
