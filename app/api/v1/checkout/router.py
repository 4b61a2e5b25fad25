from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.payment_gateway import GatewayFactory, get_gateway_factory
from app.core.platform_settings import BillingConfig, get_billing_config
from app.db.session import get_db

from .schemas import CheckoutSessionRequest, CheckoutSessionResponse
from .service import create_checkout_session

router = APIRouter(prefix="/api/v1/checkout", tags=["checkout"])


@router.post("/sessions", response_model=CheckoutSessionResponse)
async def create_session(
    payload: CheckoutSessionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    config: BillingConfig = Depends(get_billing_config),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    db: AsyncSession = Depends(get_db),
) -> CheckoutSessionResponse:
    """Start a hosted checkout for the agency. Processor errors are returned as 502 with Stripe's message."""
    try:
        return await create_checkout_session(db, current_user, payload, config, gateway_factory)
    except ServiceError as e:
        raise e.as_http_exception()
