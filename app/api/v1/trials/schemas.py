from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class TrialCreateRequest(BaseModel):
    """Trial signup for a freshly registered user."""

    user_id: UUID
    agency_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    user_name: str = Field(..., min_length=1, max_length=255)
    trial_days: Optional[int] = None  # non-positive values fall back to the platform default


class TrialCreateResponse(BaseModel):
    success: bool = True
    agency_id: UUID
    trial_ends_at: datetime


class FailedStep(BaseModel):
    step: str
    error: Optional[str] = None
    recorded_at: datetime


class IncompleteProvisioning(BaseModel):
    """An agency with at least one provisioning step that did not complete."""

    agency_id: UUID
    agency_name: str
    failed_steps: List[FailedStep]
