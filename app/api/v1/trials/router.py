from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_super_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.platform_settings import BillingConfig, get_billing_config
from app.db.session import get_db

from .schemas import IncompleteProvisioning, TrialCreateRequest, TrialCreateResponse
from .service import list_incomplete_provisionings, provision_trial_agency

router = APIRouter(prefix="/api/v1/trials", tags=["trials"])


@router.post("", response_model=TrialCreateResponse)
async def create_trial(
    payload: TrialCreateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    config: BillingConfig = Depends(get_billing_config),
    db: AsyncSession = Depends(get_db),
) -> TrialCreateResponse:
    """Create the agency, admin role and trialing subscription for a new signup."""
    try:
        return await provision_trial_agency(db, current_user, payload, config)
    except ServiceError as e:
        raise e.as_http_exception()


@router.get(
    "/incomplete",
    response_model=List[IncompleteProvisioning],
    dependencies=[Depends(require_super_admin)],
)
async def list_incomplete(db: AsyncSession = Depends(get_db)) -> List[IncompleteProvisioning]:
    """Agencies whose trial provisioning left a step unfinished. Super admin only."""
    return await list_incomplete_provisionings(db)
