from uuid import UUID

from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser


async def require_super_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require the platform super admin. Used for catalog, coupons and subscription management."""
    if not current_user.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the platform super admin can perform this action",
        )
    return current_user


def ensure_agency_access(current_user: CurrentUser, agency_id: UUID) -> None:
    """Tenant scoping: callers may only act on their own agency, super admins on any."""
    if current_user.is_super_admin:
        return
    if current_user.agency_id is None or current_user.agency_id != agency_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this agency",
        )
