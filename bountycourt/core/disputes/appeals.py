import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import (
    ActorType,
    AppealDecision,
    AppealStatus,
    AuditAction,
    DisputeStatus,
    NotificationType,
)
from bountycourt.common.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bountycourt.common.logging import get_logger
from bountycourt.config import settings
from bountycourt.core.disputes import audit
from bountycourt.core.disputes.access import get_dispute, get_dispute_for_actor, require_admin
from bountycourt.core.disputes.schemas import Actor
from bountycourt.core.disputes.workflow import (
    appeal_deadline,
    next_auto_close_at,
    transition,
    utcnow,
    within_appeal_window,
)
from bountycourt.core.notifications.service import notify_admins, notify_parties
from bountycourt.db.models.appeal import DisputeAppeal
from bountycourt.db.models.resolution import DisputeResolution

logger = get_logger("disputes.appeals")

_OPEN_APPEAL_STATUSES = (AppealStatus.PENDING.value, AppealStatus.REVIEWING.value)


class AppealService:
    async def create_appeal(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: uuid.UUID,
        reason: str,
        evidence_refs: list[str] | None = None,
        now: datetime | None = None,
    ) -> DisputeAppeal:
        now = now or utcnow()
        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        if actor.is_admin:
            raise AuthorizationError("Only a party to the dispute may appeal its resolution")

        reason = (reason or "").strip()
        if len(reason) < settings.MIN_DISPUTE_REASON_LENGTH:
            raise ValidationError(
                f"Appeal reason must be at least {settings.MIN_DISPUTE_REASON_LENGTH} characters"
            )

        existing = await db.execute(
            select(DisputeAppeal.id).where(DisputeAppeal.dispute_id == dispute.id)
        )
        if existing.scalar_one_or_none():
            raise ConflictError("This dispute has already been appealed")

        if DisputeStatus(dispute.status) != DisputeStatus.RESOLVED:
            raise InvalidStateError(
                "Only resolved disputes can be appealed", current_status=str(dispute.status)
            )

        result = await db.execute(
            select(DisputeResolution).where(
                DisputeResolution.dispute_id == dispute.id,
                DisputeResolution.superseded_at.is_(None),
            )
        )
        resolution = result.scalar_one_or_none()
        if resolution is None:
            raise InvalidStateError("No resolution to appeal", current_status=str(dispute.status))
        if not within_appeal_window(resolution.decided_at, now):
            raise InvalidStateError(
                f"The appeal window closed at {appeal_deadline(resolution.decided_at).isoformat()}"
            )

        appeal = DisputeAppeal(
            dispute_id=dispute.id,
            resolution_id=resolution.id,
            appellant_id=actor.id,
            reason=reason,
            evidence_refs=list(evidence_refs or []),
            status=AppealStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        db.add(appeal)
        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("This dispute has already been appealed") from e

        await audit.record(
            db,
            dispute.id,
            AuditAction.APPEAL_CREATED,
            actor.id,
            ActorType.USER,
            {"appeal_id": str(appeal.id), "resolution_id": str(resolution.id)},
        )
        logger.info("Appeal %s filed on dispute %s by %s", appeal.id, dispute.id, actor.id)

        await notify_admins(
            dispute,
            NotificationType.APPEAL_CREATED,
            {"appeal_id": str(appeal.id), "reason": reason[: settings.RESOLUTION_SUMMARY_LENGTH]},
            priority="high",
        )
        return appeal

    async def get_appeal(self, db: AsyncSession, appeal_id: uuid.UUID) -> DisputeAppeal:
        result = await db.execute(select(DisputeAppeal).where(DisputeAppeal.id == appeal_id))
        appeal = result.scalar_one_or_none()
        if not appeal:
            raise NotFoundError("Appeal", str(appeal_id))
        return appeal

    async def _set_status(
        self,
        db: AsyncSession,
        appeal: DisputeAppeal,
        target: AppealStatus,
        allowed_from: tuple[str, ...],
        **values,
    ) -> None:
        result = await db.execute(
            update(DisputeAppeal)
            .where(DisputeAppeal.id == appeal.id, DisputeAppeal.status.in_(allowed_from))
            .values(status=target.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.refresh(appeal)
            raise InvalidStateError(
                f"Appeal cannot move to '{target.value}'", current_status=str(appeal.status)
            )
        await db.refresh(appeal)

    async def begin_review(
        self, db: AsyncSession, actor: Actor, appeal_id: uuid.UUID
    ) -> DisputeAppeal:
        require_admin(actor, "review an appeal")
        appeal = await self.get_appeal(db, appeal_id)
        await self._set_status(
            db, appeal, AppealStatus.REVIEWING, (AppealStatus.PENDING.value,), reviewed_by=actor.id
        )
        await audit.record(
            db,
            appeal.dispute_id,
            AuditAction.APPEAL_REVIEW_STARTED,
            actor.id,
            ActorType.ADMIN,
            {"appeal_id": str(appeal.id)},
        )
        return appeal

    async def review_appeal(
        self,
        db: AsyncSession,
        actor: Actor,
        appeal_id: uuid.UUID,
        decision: AppealDecision,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> DisputeAppeal:
        require_admin(actor, "review an appeal")
        now = now or utcnow()
        appeal = await self.get_appeal(db, appeal_id)
        dispute = await get_dispute(db, appeal.dispute_id)

        target = AppealStatus(decision.value)
        await self._set_status(
            db,
            appeal,
            target,
            _OPEN_APPEAL_STATUSES,
            reviewed_by=actor.id,
            reviewed_at=now,
            review_notes=notes,
        )

        if decision == AppealDecision.REJECTED:
            await audit.record(
                db,
                dispute.id,
                AuditAction.APPEAL_REJECTED,
                actor.id,
                ActorType.ADMIN,
                {"appeal_id": str(appeal.id), "notes": notes},
            )
            await notify_parties(dispute, NotificationType.APPEAL_REJECTED, {"appeal_id": str(appeal.id)})
            logger.info("Appeal %s rejected; dispute %s stays resolved", appeal.id, dispute.id)
            return appeal

        # Accepted: retire the current decision, then send the case back to review
        result = await db.execute(
            select(DisputeResolution).where(DisputeResolution.id == appeal.resolution_id)
        )
        resolution = result.scalar_one()
        if resolution.superseded_at is None:
            resolution.superseded_at = now
            await db.flush()

        await transition(db, dispute, DisputeStatus.REOPENED)
        await audit.record(
            db,
            dispute.id,
            AuditAction.STATUS_CHANGED,
            actor.id,
            ActorType.ADMIN,
            {"old_status": DisputeStatus.RESOLVED.value, "new_status": DisputeStatus.REOPENED.value},
        )
        await transition(
            db,
            dispute,
            DisputeStatus.UNDER_REVIEW,
            last_activity_at=now,
            auto_close_at=next_auto_close_at(now),
            resolved_at=None,
        )
        await audit.record(
            db,
            dispute.id,
            AuditAction.STATUS_CHANGED,
            actor.id,
            ActorType.ADMIN,
            {"old_status": DisputeStatus.REOPENED.value, "new_status": DisputeStatus.UNDER_REVIEW.value},
        )
        await audit.record(
            db,
            dispute.id,
            AuditAction.APPEAL_ACCEPTED,
            actor.id,
            ActorType.ADMIN,
            {
                "appeal_id": str(appeal.id),
                "superseded_resolution_id": str(appeal.resolution_id),
                "notes": notes,
            },
        )
        await notify_parties(dispute, NotificationType.DISPUTE_REOPENED, {"appeal_id": str(appeal.id)})
        logger.info("Appeal %s accepted; dispute %s back under review", appeal.id, dispute.id)
        return appeal

    async def list_appeals(
        self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID
    ) -> list[DisputeAppeal]:
        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        result = await db.execute(
            select(DisputeAppeal)
            .where(DisputeAppeal.dispute_id == dispute.id)
            .order_by(DisputeAppeal.created_at)
        )
        return list(result.scalars().all())
