"""
Seed script: create tables, default platform settings and the first super admin.

Run once per environment:
  python -m app.db.seed

Creates (only what is missing, existing values are left alone):
- every table registered on Base.metadata
- platform_settings rows for the trial defaults (the Stripe keys are set by the super admin)
- a super_admin profile and role when SUPER_ADMIN_USER_ID / SUPER_ADMIN_EMAIL are set
"""
import asyncio
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Import all models so create_all sees every table
from app.auth.models import Profile, UserRole
from app.core import models  # noqa: F401
from app.core import platform_settings as keys
from app.core.config import settings
from app.core.enums import AppRole
from app.core.models import PlatformSetting
from app.db.session import AsyncSessionLocal, Base, engine

DEFAULT_PLATFORM_SETTINGS: List[Tuple[str, str]] = [
    (keys.TRIAL_ENABLED, "true"),
    (keys.TRIAL_DAYS, str(settings.default_trial_days)),
    (keys.TRIAL_MAX_USERS, str(keys.DEFAULT_TRIAL_MAX_USERS)),
    (keys.TRIAL_MAX_CLIENTS, str(keys.DEFAULT_TRIAL_MAX_CLIENTS)),
    (keys.TRIAL_MAX_PROPOSALS, str(keys.DEFAULT_TRIAL_MAX_PROPOSALS)),
]


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_platform_settings(db: AsyncSession) -> int:
    created = 0
    for key, value in DEFAULT_PLATFORM_SETTINGS:
        result = await db.execute(select(PlatformSetting).where(PlatformSetting.setting_key == key))
        if result.scalar_one_or_none() is None:
            db.add(PlatformSetting(setting_key=key, setting_value=value))
            created += 1
    await db.commit()
    return created


async def seed_super_admin(db: AsyncSession) -> bool:
    if not settings.super_admin_user_id or not settings.super_admin_email:
        print("No SUPER_ADMIN_USER_ID / SUPER_ADMIN_EMAIL; skipping super admin.")
        return False

    profile = await db.get(Profile, settings.super_admin_user_id)
    if profile is None:
        profile = Profile(id=settings.super_admin_user_id, email=settings.super_admin_email, name="Super Admin")
        db.add(profile)
        await db.flush()

    result = await db.execute(select(UserRole).where(UserRole.user_id == profile.id))
    role = result.scalar_one_or_none()
    if role is None:
        db.add(UserRole(user_id=profile.id, role=AppRole.SUPER_ADMIN.value))
    else:
        role.role = AppRole.SUPER_ADMIN.value
    await db.commit()
    print("Super admin ready:", settings.super_admin_email)
    return True


async def main() -> None:
    await create_tables()
    async with AsyncSessionLocal() as db:
        try:
            created = await seed_platform_settings(db)
            print(f"Platform settings created: {created} of {len(DEFAULT_PLATFORM_SETTINGS)}")
            await seed_super_admin(db)
        except Exception as e:
            print(f"Error seeding: {e}")
            await db.rollback()
            raise
    await engine.dispose()
    print("Seed done.")


if __name__ == "__main__":
    asyncio.run(main())
