from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Profile, UserRole
from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token
from app.core.enums import AppRole
from app.core.exceptions import UnauthenticatedError
from app.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def _resolve_current_user(token: str, db: AsyncSession) -> CurrentUser:
    try:
        payload = decode_access_token(token)
    except JWTError as e:
        raise UnauthenticatedError() from e

    user_id_str = payload.get("sub") or payload.get("user_id")
    if not user_id_str:
        raise UnauthenticatedError()
    try:
        user_id = UUID(str(user_id_str))
    except ValueError as e:
        raise UnauthenticatedError() from e

    profile = await db.get(Profile, user_id)
    if not profile:
        raise UnauthenticatedError()

    role_result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
    role_value: Optional[str] = role_result.scalar_one_or_none()
    role: Optional[AppRole] = None
    if role_value:
        try:
            role = AppRole(role_value)
        except ValueError:
            role = None

    return CurrentUser(
        id=profile.id,
        email=profile.email,
        role=role,
        agency_id=profile.agency_id,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user, their agency and their role from the access token."""
    try:
        return await _resolve_current_user(token, db)
    except UnauthenticatedError as e:
        raise e.as_http_exception(headers={"WWW-Authenticate": "Bearer"})
