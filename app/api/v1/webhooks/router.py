from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import WebhookOutcome
from app.core.exceptions import ServiceError
from app.core.payment_gateway import GatewayFactory, get_gateway_factory
from app.core.platform_settings import BillingConfig, get_billing_config
from app.db.session import get_db

from .service import authenticate_webhook, parse_event, process_webhook_event

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


class WebhookAck(BaseModel):
    received: bool = True
    outcome: WebhookOutcome


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    config: BillingConfig = Depends(get_billing_config),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    db: AsyncSession = Depends(get_db),
) -> WebhookAck:
    """
    Stripe event receiver. No bearer auth: the request is authenticated by its signature.

    400 for bad signatures, malformed bodies and a missing Stripe key (so Stripe retries
    once configured); everything else is acknowledged with 200.
    """
    payload = await request.body()
    try:
        authenticate_webhook(payload, stripe_signature, config)
        event = parse_event(payload)
        result = await process_webhook_event(db, event, config, gateway_factory)
    except ServiceError as e:
        raise e.as_http_exception()
    return WebhookAck(received=True, outcome=result.outcome)
