"""
Trial provisioning.

Bootstraps a tenant in steps, each committed on its own. Creating the agency is the
only step whose failure aborts the signup; later steps that fail leave a
ProvisioningStep row with succeeded=False so the tenant can be repaired, and the
agency stays in place.
"""
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Profile, UserRole
from app.auth.schemas import CurrentUser
from app.core.clock import utcnow
from app.core.enums import AppRole, BillingCycle, ProvisioningStepName, SubscriptionStatus
from app.core.exceptions import ServiceError
from app.core.models import Agency, AgencySubscription, ProvisioningStep
from app.core.platform_settings import BillingConfig

from .schemas import FailedStep, IncompleteProvisioning, TrialCreateRequest, TrialCreateResponse
from .seeding import seed_pipeline_stages, seed_task_columns

logger = logging.getLogger(__name__)

StepAction = Callable[[], Awaitable[None]]


def resolve_trial_days(requested: Optional[int], config: BillingConfig) -> int:
    """Request value when positive, else the platform trial length."""
    if requested is not None and requested > 0:
        return requested
    return config.trial_days


async def _run_step(
    db: AsyncSession,
    agency_id: UUID,
    step: ProvisioningStepName,
    action: StepAction,
) -> bool:
    try:
        await action()
        db.add(ProvisioningStep(agency_id=agency_id, step=step.value, succeeded=True))
        await db.commit()
        return True
    except (SQLAlchemyError, ServiceError) as e:
        await db.rollback()
        logger.error(
            "Trial provisioning step failed",
            extra={"agency_id": str(agency_id), "step": step.value, "error": str(e)},
        )
        try:
            db.add(
                ProvisioningStep(agency_id=agency_id, step=step.value, succeeded=False, error=str(e)[:2000])
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            # No marker: the agency has no succeeded row for this step either
            logger.exception(
                "Could not record failed provisioning step",
                extra={"agency_id": str(agency_id), "step": step.value},
            )
        return False


async def _ensure_can_provision(
    db: AsyncSession, current_user: CurrentUser, payload: TrialCreateRequest, config: BillingConfig
) -> None:
    if not config.trial_enabled:
        raise ServiceError("Free trials are currently disabled", status.HTTP_403_FORBIDDEN)
    if not current_user.is_super_admin and current_user.id != payload.user_id:
        raise ServiceError("You can only start a trial for your own account", status.HTTP_403_FORBIDDEN)
    profile = await db.get(Profile, payload.user_id)
    if profile is not None and profile.agency_id is not None:
        raise ServiceError("User already belongs to an agency", status.HTTP_409_CONFLICT)


async def provision_trial_agency(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: TrialCreateRequest,
    config: BillingConfig,
) -> TrialCreateResponse:
    await _ensure_can_provision(db, current_user, payload, config)

    trial_days = resolve_trial_days(payload.trial_days, config)
    now = utcnow()
    trial_ends_at = now + timedelta(days=trial_days)

    agency = Agency(name=payload.agency_name, email=payload.email, is_active=True)
    db.add(agency)
    try:
        await db.flush()
        db.add(
            ProvisioningStep(agency_id=agency.id, step=ProvisioningStepName.CREATE_AGENCY.value, succeeded=True)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Could not create agency for trial", extra={"user_id": str(payload.user_id)})
        raise ServiceError("Could not create agency", status.HTTP_400_BAD_REQUEST) from e
    agency_id = agency.id

    logger.info(
        "Agency created for trial",
        extra={"agency_id": str(agency_id), "user_id": str(payload.user_id), "trial_days": trial_days},
    )

    async def link_profile() -> None:
        profile = await db.get(Profile, payload.user_id)
        if profile is None:
            raise ServiceError(f"Profile not found: {payload.user_id}", status.HTTP_404_NOT_FOUND)
        profile.agency_id = agency_id
        profile.name = payload.user_name

    async def assign_admin_role() -> None:
        result = await db.execute(select(UserRole).where(UserRole.user_id == payload.user_id))
        role = result.scalar_one_or_none()
        if role is None:
            db.add(UserRole(user_id=payload.user_id, role=AppRole.ADMIN.value))
        else:
            role.role = AppRole.ADMIN.value
        await db.flush()

    async def create_trial_subscription() -> None:
        db.add(
            AgencySubscription(
                agency_id=agency_id,
                plan_id=None,
                status=SubscriptionStatus.TRIALING.value,
                billing_cycle=BillingCycle.MONTHLY.value,
                current_period_start=now,
                current_period_end=trial_ends_at,
            )
        )
        await db.flush()

    async def seed_stages() -> None:
        await seed_pipeline_stages(db, agency_id)

    async def seed_columns() -> None:
        await seed_task_columns(db, agency_id)

    steps: Dict[ProvisioningStepName, StepAction] = {
        ProvisioningStepName.LINK_PROFILE: link_profile,
        ProvisioningStepName.ASSIGN_ADMIN_ROLE: assign_admin_role,
        ProvisioningStepName.CREATE_TRIAL_SUBSCRIPTION: create_trial_subscription,
        ProvisioningStepName.SEED_PIPELINE_STAGES: seed_stages,
        ProvisioningStepName.SEED_TASK_COLUMNS: seed_columns,
    }
    failed = [name.value for name, action in steps.items() if not await _run_step(db, agency_id, name, action)]
    if failed:
        logger.warning(
            "Trial agency provisioned with failed steps",
            extra={"agency_id": str(agency_id), "failed_steps": failed},
        )

    return TrialCreateResponse(success=True, agency_id=agency_id, trial_ends_at=trial_ends_at)


async def list_incomplete_provisionings(db: AsyncSession) -> List[IncompleteProvisioning]:
    """Agencies with failed steps that have not since been recorded as succeeded."""
    result = await db.execute(
        select(ProvisioningStep, Agency.name)
        .join(Agency, Agency.id == ProvisioningStep.agency_id)
        .order_by(ProvisioningStep.recorded_at)
    )
    by_agency: Dict[UUID, IncompleteProvisioning] = {}
    latest: Dict[tuple, ProvisioningStep] = {}
    names: Dict[UUID, str] = {}
    for step, agency_name in result.all():
        latest[(step.agency_id, step.step)] = step
        names[step.agency_id] = agency_name

    for (agency_id, _), step in latest.items():
        if step.succeeded:
            continue
        entry = by_agency.setdefault(
            agency_id,
            IncompleteProvisioning(agency_id=agency_id, agency_name=names[agency_id], failed_steps=[]),
        )
        entry.failed_steps.append(FailedStep(step=step.step, error=step.error, recorded_at=step.recorded_at))
    return list(by_agency.values())
