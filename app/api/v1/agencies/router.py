from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.subscriptions.access_gate import AccessDecision
from app.api.v1.subscriptions.dependencies import require_subscription_access
from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.models import Agency
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/agencies", tags=["agencies"])


class AgencyResponse(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    # Days until the period ends when within the warning window
    subscription_days_left: Optional[int] = None

    class Config:
        from_attributes = True


@router.get("/me", response_model=AgencyResponse)
async def get_my_agency(
    decision: AccessDecision = Depends(require_subscription_access),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AgencyResponse:
    """The caller's agency. Tenant-scoped: 402 when the subscription does not grant access."""
    if current_user.agency_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="You do not belong to an agency")
    agency = await db.get(Agency, current_user.agency_id)
    if agency is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agency not found")
    response = AgencyResponse.model_validate(agency)
    response.subscription_days_left = decision.days_left
    return response
