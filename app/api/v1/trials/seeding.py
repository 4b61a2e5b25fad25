"""Default workflow metadata every new agency starts with."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import PipelineStage, TaskColumn

# (name, color, is_closed, is_lost)
DEFAULT_PIPELINE_STAGES = [
    ("Novo", "#3B82F6", False, False),
    ("Contato", "#8B5CF6", False, False),
    ("Proposta", "#F59E0B", False, False),
    ("Negociação", "#EC4899", False, False),
    ("Fechado", "#10B981", True, False),
    ("Perdido", "#EF4444", False, True),
]

# (name, color, is_default)
DEFAULT_TASK_COLUMNS = [
    ("A fazer", "#6B7280", True),
    ("Em andamento", "#3B82F6", False),
    ("Concluído", "#10B981", False),
]


async def seed_pipeline_stages(db: AsyncSession, agency_id: UUID) -> None:
    for order, (name, color, is_closed, is_lost) in enumerate(DEFAULT_PIPELINE_STAGES):
        db.add(
            PipelineStage(
                agency_id=agency_id,
                name=name,
                color=color,
                order=order,
                is_closed=is_closed,
                is_lost=is_lost,
            )
        )
    await db.flush()


async def seed_task_columns(db: AsyncSession, agency_id: UUID) -> None:
    for order, (name, color, is_default) in enumerate(DEFAULT_TASK_COLUMNS):
        db.add(TaskColumn(agency_id=agency_id, name=name, color=color, order=order, is_default=is_default))
    await db.flush()
