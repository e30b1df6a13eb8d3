"""Evidence and comment ledger.

Both record types are append-only. Every write also pushes the dispute's
inactivity deadline forward; the insert, the deadline update and the audit
entry share one transaction, so a failure in any of them rolls back all three.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import AuditAction, DisputeStatus, NotificationType
from bountycourt.common.exceptions import AuthorizationError, InvalidStateError, ValidationError
from bountycourt.common.logging import get_logger
from bountycourt.core.disputes import audit
from bountycourt.core.disputes.access import get_dispute_for_actor
from bountycourt.core.disputes.schemas import Actor, EvidenceInput
from bountycourt.core.disputes.workflow import ACTIVE_STATUSES, touch_activity, utcnow
from bountycourt.core.notifications.service import notify_parties
from bountycourt.db.models.comment import DisputeComment
from bountycourt.db.models.dispute import Dispute
from bountycourt.db.models.evidence import DisputeEvidence

logger = get_logger("disputes.ledger")


def _require_active(dispute: Dispute) -> None:
    if DisputeStatus(dispute.status) not in ACTIVE_STATUSES:
        raise InvalidStateError(
            "Evidence and comments are closed for this dispute", current_status=str(dispute.status)
        )


def build_evidence(
    dispute_id: uuid.UUID, uploader_id: uuid.UUID, item: EvidenceInput, now: datetime
) -> DisputeEvidence:
    """Split the tagged union into discriminator column + kind-specific payload."""
    payload = item.model_dump(mode="json", exclude={"kind", "description"}, exclude_none=True)
    return DisputeEvidence(
        dispute_id=dispute_id,
        uploaded_by=uploader_id,
        kind=item.kind,
        payload=payload,
        description=item.description,
        created_at=now,
    )


class EvidenceLedger:
    async def add_evidence(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: uuid.UUID,
        item: EvidenceInput,
        now: datetime | None = None,
    ) -> DisputeEvidence:
        now = now or utcnow()
        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        _require_active(dispute)

        await touch_activity(db, dispute, now)

        evidence = build_evidence(dispute.id, actor.id, item, now)
        db.add(evidence)
        await db.flush()

        await audit.record(
            db,
            dispute.id,
            AuditAction.EVIDENCE_ADDED,
            actor.id,
            actor.actor_type,
            {"evidence_id": str(evidence.id), "kind": item.kind},
        )
        await db.refresh(evidence)

        logger.info("Evidence %s (%s) added to dispute %s", evidence.id, item.kind, dispute.id)
        await notify_parties(
            dispute,
            NotificationType.EVIDENCE_ADDED,
            {"evidence_id": str(evidence.id), "kind": item.kind},
            exclude=actor.id,
        )
        return evidence

    async def add_comment(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: uuid.UUID,
        body: str,
        internal: bool = False,
        now: datetime | None = None,
    ) -> DisputeComment:
        now = now or utcnow()
        if not body or not body.strip():
            raise ValidationError("Comment body cannot be empty")
        if internal and not actor.is_admin:
            raise AuthorizationError("Only admins may write internal notes")

        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        _require_active(dispute)

        await touch_activity(db, dispute, now)

        comment = DisputeComment(
            dispute_id=dispute.id,
            author_id=actor.id,
            body=body.strip(),
            internal=internal,
            created_at=now,
        )
        db.add(comment)
        await db.flush()

        await audit.record(
            db,
            dispute.id,
            AuditAction.COMMENT_ADDED,
            actor.id,
            actor.actor_type,
            {"comment_id": str(comment.id), "internal": internal},
        )
        await db.refresh(comment)

        # Internal notes never leave the admin side
        if not internal:
            await notify_parties(
                dispute,
                NotificationType.COMMENT_ADDED,
                {"comment_id": str(comment.id)},
                exclude=actor.id,
            )
        return comment

    async def list_evidence(self, db: AsyncSession, dispute_id: uuid.UUID) -> list[DisputeEvidence]:
        result = await db.execute(
            select(DisputeEvidence)
            .where(DisputeEvidence.dispute_id == dispute_id)
            .order_by(DisputeEvidence.created_at)
        )
        return list(result.scalars().all())

    async def list_comments(
        self, db: AsyncSession, dispute_id: uuid.UUID, include_internal: bool = False
    ) -> list[DisputeComment]:
        query = select(DisputeComment).where(DisputeComment.dispute_id == dispute_id)
        if not include_internal:
            query = query.where(DisputeComment.internal.is_(False))
        result = await db.execute(query.order_by(DisputeComment.created_at))
        return list(result.scalars().all())

    async def list_entries(
        self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID
    ) -> dict[str, Any]:
        """Evidence and comments visible to ``actor``; internal notes are admin-only."""
        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        return {
            "evidence": await self.list_evidence(db, dispute.id),
            "comments": await self.list_comments(db, dispute.id, include_internal=actor.is_admin),
        }
