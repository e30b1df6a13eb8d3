import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import ActorType, AuditAction
from bountycourt.common.logging import get_logger
from bountycourt.db.models.audit import DisputeAuditEntry

logger = get_logger("disputes.audit")


async def record(
    db: AsyncSession,
    dispute_id: uuid.UUID,
    action: AuditAction | str,
    actor_id: uuid.UUID | None,
    actor_type: ActorType,
    details: dict[str, Any] | None = None,
) -> DisputeAuditEntry:
    """Append an audit entry inside the caller's transaction.

    Audit writes share the transaction of the change they describe: if the
    entry cannot be written the change is rolled back with it.
    """
    action_value = action.value if isinstance(action, AuditAction) else action
    entry = DisputeAuditEntry(
        dispute_id=dispute_id,
        action=action_value,
        actor_id=actor_id,
        actor_type=actor_type.value,
        details=details or {},
    )
    db.add(entry)
    await db.flush()
    logger.debug("Audit %s on dispute %s by %s:%s", action_value, dispute_id, actor_type.value, actor_id)
    return entry


async def list_for_dispute(
    db: AsyncSession, dispute_id: uuid.UUID, action: str | None = None
) -> list[DisputeAuditEntry]:
    query = select(DisputeAuditEntry).where(DisputeAuditEntry.dispute_id == dispute_id)
    if action:
        query = query.where(DisputeAuditEntry.action == action)
    result = await db.execute(query.order_by(DisputeAuditEntry.created_at))
    return list(result.scalars().all())
