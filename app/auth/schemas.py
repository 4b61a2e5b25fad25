from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from app.core.enums import AppRole


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for role and tenant checks."""

    id: UUID
    email: str
    role: Optional[AppRole] = None
    agency_id: Optional[UUID] = None  # None for super admins and not-yet-linked users

    @property
    def is_super_admin(self) -> bool:
        return self.role == AppRole.SUPER_ADMIN
