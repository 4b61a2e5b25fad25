from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import WebhookOutcome
from app.core.models import ProcessedWebhookEvent


async def is_event_processed(db: AsyncSession, event_id: str) -> bool:
    result = await db.execute(
        select(ProcessedWebhookEvent.event_id).where(ProcessedWebhookEvent.event_id == event_id)
    )
    return result.first() is not None


def mark_event_processed(db: AsyncSession, event_id: str, event_type: str, outcome: WebhookOutcome) -> None:
    """Stage the marker; it is committed together with the state change it guards."""
    db.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type, outcome=outcome.value))
