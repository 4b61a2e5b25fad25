from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.db.session import get_db

from .access_gate import AccessDecision
from .service import evaluate_access


async def require_subscription_access(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AccessDecision:
    """Guard for tenant routes. A blocked caller gets 402 with the reason the UI shows full-page."""
    decision = await evaluate_access(db, current_user)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "reason": decision.reason.value if decision.reason else None,
                "status": decision.status,
            },
        )
    return decision
