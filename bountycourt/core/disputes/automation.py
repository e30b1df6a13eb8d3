"""Periodic dispute housekeeping: inactivity auto-close and stagnation escalation.

Both jobs work disputes one at a time inside a SAVEPOINT so a failure on
one dispute is logged and skipped without undoing the others. Running a
job twice over the same state is a no-op the second time.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.exceptions import InvalidStateError
from bountycourt.common.logging import get_logger
from bountycourt.config import settings
from bountycourt.core.disputes.service import DisputeService
from bountycourt.core.disputes.workflow import (
    PENDING_DECISION_STATUSES,
    escalation_cutoff,
    utcnow,
)
from bountycourt.db.models.dispute import Dispute

logger = get_logger("disputes.automation")


def auto_close_reason() -> str:
    return f"Auto-closed due to inactivity after {settings.DISPUTE_INACTIVITY_DAYS} days"


class DisputeScheduler:
    def __init__(self, service: DisputeService | None = None):
        self.service = service or DisputeService()

    async def auto_close_stale(self, db: AsyncSession, now: datetime | None = None) -> list[str]:
        """Close open / under-review disputes whose inactivity deadline has passed."""
        now = now or utcnow()
        result = await db.execute(
            select(Dispute)
            .where(
                Dispute.status.in_(PENDING_DECISION_STATUSES),
                Dispute.auto_close_at < now,
            )
            .order_by(Dispute.auto_close_at)
        )
        candidates = result.scalars().all()

        closed: list[str] = []
        reason = auto_close_reason()
        for dispute in candidates:
            dispute_id: uuid.UUID = dispute.id
            try:
                async with db.begin_nested():
                    await self.service.close(db, dispute, reason, actor=None, now=now)
                closed.append(str(dispute_id))
            except InvalidStateError as e:
                # Someone else moved it first
                logger.info("Skipping auto-close of dispute %s: %s", dispute_id, e.detail)
            except Exception as e:
                logger.error("Auto-close failed for dispute %s: %s", dispute_id, e)

        if closed:
            logger.info("Auto-closed %d disputes", len(closed))
        return closed

    async def escalate_stagnant(self, db: AsyncSession, now: datetime | None = None) -> list[str]:
        """Flag unresolved disputes older than the escalation window. Status is untouched."""
        now = now or utcnow()
        result = await db.execute(
            select(Dispute)
            .where(
                Dispute.status.in_(PENDING_DECISION_STATUSES),
                Dispute.escalated.is_(False),
                Dispute.created_at < escalation_cutoff(now),
            )
            .order_by(Dispute.created_at)
        )
        candidates = result.scalars().all()

        escalated: list[str] = []
        for dispute in candidates:
            dispute_id: uuid.UUID = dispute.id
            try:
                async with db.begin_nested():
                    if await self.service.escalate(db, dispute, now=now):
                        escalated.append(str(dispute_id))
            except Exception as e:
                logger.error("Escalation failed for dispute %s: %s", dispute_id, e)

        if escalated:
            logger.info("Escalated %d disputes", len(escalated))
        return escalated
