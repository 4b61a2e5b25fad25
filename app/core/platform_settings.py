"""
Billing configuration read from platform_settings.

Loaded fresh on every request that needs it, so rotating the Stripe key or changing
trial defaults takes effect on the next call without a redeploy.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotConfiguredError
from app.core.models import PlatformSetting
from app.db.session import get_db

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = "stripe_secret_key"
STRIPE_WEBHOOK_SECRET = "stripe_webhook_secret"
TRIAL_ENABLED = "trial_enabled"
TRIAL_DAYS = "trial_days"
TRIAL_MAX_USERS = "trial_max_users"
TRIAL_MAX_CLIENTS = "trial_max_clients"
TRIAL_MAX_PROPOSALS = "trial_max_proposals"

DEFAULT_TRIAL_MAX_USERS = 2
DEFAULT_TRIAL_MAX_CLIENTS = 10
DEFAULT_TRIAL_MAX_PROPOSALS = 10


@dataclass(frozen=True)
class BillingConfig:
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    trial_enabled: bool
    trial_days: int
    trial_max_users: int
    trial_max_clients: int
    trial_max_proposals: int

    def require_secret_key(self) -> str:
        if not self.stripe_secret_key:
            raise NotConfiguredError(
                "Stripe is not configured. Set the Stripe secret key in the platform settings."
            )
        return self.stripe_secret_key


def _positive_int(raw: Optional[str], default: int, key: str) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric platform setting", extra={"setting_key": key})
        return default
    return value if value > 0 else default


def build_billing_config(values: Dict[str, Optional[str]]) -> BillingConfig:
    """Interpret raw setting values. Absent trial_enabled means enabled; only "false" disables."""
    secret_key = (values.get(STRIPE_SECRET_KEY) or "").strip() or None
    webhook_secret = (values.get(STRIPE_WEBHOOK_SECRET) or "").strip() or settings.stripe_webhook_secret
    trial_enabled = (values.get(TRIAL_ENABLED) or "true").strip().lower() != "false"
    return BillingConfig(
        stripe_secret_key=secret_key,
        stripe_webhook_secret=webhook_secret or None,
        trial_enabled=trial_enabled,
        trial_days=_positive_int(values.get(TRIAL_DAYS), settings.default_trial_days, TRIAL_DAYS),
        trial_max_users=_positive_int(values.get(TRIAL_MAX_USERS), DEFAULT_TRIAL_MAX_USERS, TRIAL_MAX_USERS),
        trial_max_clients=_positive_int(values.get(TRIAL_MAX_CLIENTS), DEFAULT_TRIAL_MAX_CLIENTS, TRIAL_MAX_CLIENTS),
        trial_max_proposals=_positive_int(
            values.get(TRIAL_MAX_PROPOSALS), DEFAULT_TRIAL_MAX_PROPOSALS, TRIAL_MAX_PROPOSALS
        ),
    )


async def load_billing_config(db: AsyncSession) -> BillingConfig:
    result = await db.execute(select(PlatformSetting.setting_key, PlatformSetting.setting_value))
    return build_billing_config({key: value for key, value in result.all()})


async def get_billing_config(db: AsyncSession = Depends(get_db)) -> BillingConfig:
    return await load_billing_config(db)


async def set_platform_setting(db: AsyncSession, key: str, value: Optional[str]) -> PlatformSetting:
    """Insert or update one setting. Caller must commit."""
    result = await db.execute(select(PlatformSetting).where(PlatformSetting.setting_key == key))
    setting = result.scalar_one_or_none()
    if setting is None:
        setting = PlatformSetting(setting_key=key, setting_value=value)
        db.add(setting)
    else:
        setting.setting_value = value
    return setting
