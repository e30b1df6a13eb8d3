import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import (
    ActorType,
    AuditAction,
    CancellationStatus,
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
from bountycourt.core.disputes.ledger import EvidenceLedger, build_evidence
from bountycourt.core.disputes.schemas import Actor, EvidenceInput
from bountycourt.core.disputes.workflow import (
    PENDING_DECISION_STATUSES,
    as_utc,
    escalation_window,
    next_auto_close_at,
    transition,
    utcnow,
    within_appeal_window,
)
from bountycourt.core.notifications.service import notify_admins, notify_initiator, notify_parties
from bountycourt.db.models.appeal import DisputeAppeal
from bountycourt.db.models.bounty import Bounty, BountyCancellation
from bountycourt.db.models.dispute import Dispute
from bountycourt.db.models.resolution import DisputeResolution

logger = get_logger("disputes.service")


class DisputeService:
    """Entry points of the dispute lifecycle state machine."""

    def __init__(self, ledger: EvidenceLedger | None = None):
        self.ledger = ledger or EvidenceLedger()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_dispute(
        self,
        db: AsyncSession,
        actor: Actor,
        cancellation_id: uuid.UUID,
        reason: str,
        evidence: list[EvidenceInput] | None = None,
        now: datetime | None = None,
    ) -> Dispute:
        now = now or utcnow()
        reason = (reason or "").strip()
        if len(reason) < settings.MIN_DISPUTE_REASON_LENGTH:
            raise ValidationError(
                f"Dispute reason must be at least {settings.MIN_DISPUTE_REASON_LENGTH} characters"
            )

        result = await db.execute(
            select(BountyCancellation).where(BountyCancellation.id == cancellation_id)
        )
        cancellation = result.scalar_one_or_none()
        if not cancellation:
            raise NotFoundError("Cancellation", str(cancellation_id))

        bounty: Bounty = cancellation.bounty
        if not bounty.is_party(actor.id):
            raise AuthorizationError("Only the poster or hunter of this bounty may open a dispute")

        existing = await db.execute(
            select(Dispute.id).where(Dispute.cancellation_id == cancellation_id)
        )
        if existing.scalar_one_or_none():
            raise ConflictError("A dispute already exists for this cancellation")

        dispute = Dispute(
            cancellation_id=cancellation.id,
            bounty_id=bounty.id,
            initiator_id=actor.id,
            reason=reason,
            status=DisputeStatus.OPEN.value,
            last_activity_at=now,
            auto_close_at=next_auto_close_at(now),
            created_at=now,
            updated_at=now,
        )
        db.add(dispute)
        try:
            await db.flush()
        except IntegrityError as e:
            raise ConflictError("A dispute already exists for this cancellation") from e

        items = evidence or []
        for item in items:
            db.add(build_evidence(dispute.id, actor.id, item, now))
        cancellation.status = CancellationStatus.DISPUTED.value
        await db.flush()
        await db.refresh(dispute)

        await audit.record(
            db,
            dispute.id,
            AuditAction.CREATED,
            actor.id,
            actor.actor_type,
            {
                "cancellation_id": str(cancellation.id),
                "evidence_count": len(items),
                "auto_close_at": dispute.auto_close_at.isoformat(),
            },
        )
        logger.info("Dispute %s opened on cancellation %s by %s", dispute.id, cancellation.id, actor.id)

        await notify_parties(
            dispute,
            NotificationType.DISPUTE_CREATED,
            {"bounty_title": bounty.title, "cancellation_id": str(cancellation.id)},
            exclude=actor.id,
        )
        return dispute

    # ------------------------------------------------------------------
    # Admin transitions
    # ------------------------------------------------------------------

    async def mark_under_review(
        self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID, now: datetime | None = None
    ) -> Dispute:
        require_admin(actor, "review a dispute")
        dispute = await get_dispute(db, dispute_id)

        current = DisputeStatus(dispute.status)
        if current in (DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED, DisputeStatus.CLOSED):
            logger.warning(
                "mark_under_review on dispute %s ignored: already %s", dispute.id, current.value
            )
            return dispute

        previous = await transition(db, dispute, DisputeStatus.UNDER_REVIEW)
        await audit.record(
            db,
            dispute.id,
            AuditAction.STATUS_CHANGED,
            actor.id,
            ActorType.ADMIN,
            {"old_status": previous.value, "new_status": DisputeStatus.UNDER_REVIEW.value},
        )
        await notify_parties(dispute, NotificationType.DISPUTE_UNDER_REVIEW)
        return dispute

    async def close_dispute(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: uuid.UUID,
        reason: str,
        now: datetime | None = None,
    ) -> Dispute:
        require_admin(actor, "close a dispute")
        if not reason or not reason.strip():
            raise ValidationError("A closing reason is required")
        dispute = await get_dispute(db, dispute_id)
        return await self.close(db, dispute, reason.strip(), actor=actor, now=now)

    async def close(
        self,
        db: AsyncSession,
        dispute: Dispute,
        reason: str,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> Dispute:
        """Terminal closure, shared by admins and the auto-close job (``actor=None``)."""
        now = now or utcnow()
        allowed = {DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW}
        if actor is not None and DisputeStatus(dispute.status) == DisputeStatus.RESOLVED:
            await self._check_archivable(db, dispute, now)
            allowed.add(DisputeStatus.RESOLVED)

        previous = await transition(
            db,
            dispute,
            DisputeStatus.CLOSED,
            allowed_from=frozenset(allowed),
            closed_at=now,
            closed_reason=reason,
        )

        if actor is None:
            await audit.record(
                db,
                dispute.id,
                AuditAction.AUTO_CLOSED,
                None,
                ActorType.SYSTEM,
                {"reason": reason, "old_status": previous.value},
            )
            await notify_initiator(dispute, NotificationType.DISPUTE_AUTO_CLOSED, {"reason": reason})
        else:
            await audit.record(
                db,
                dispute.id,
                AuditAction.CLOSED,
                actor.id,
                actor.actor_type,
                {"reason": reason, "old_status": previous.value},
            )
            await notify_parties(dispute, NotificationType.DISPUTE_CLOSED, {"reason": reason})
        return dispute

    async def _check_archivable(self, db: AsyncSession, dispute: Dispute, now: datetime) -> None:
        """A resolved dispute may be archived only once nobody can appeal it any more."""
        appeal = await db.execute(
            select(DisputeAppeal.id).where(DisputeAppeal.dispute_id == dispute.id)
        )
        if appeal.scalar_one_or_none():
            raise InvalidStateError(
                "A dispute that was appealed stays resolved", current_status=str(dispute.status)
            )
        result = await db.execute(
            select(DisputeResolution.decided_at).where(
                DisputeResolution.dispute_id == dispute.id,
                DisputeResolution.superseded_at.is_(None),
            )
        )
        decided_at = result.scalar_one_or_none()
        if decided_at is not None and within_appeal_window(decided_at, now):
            raise InvalidStateError(
                "The appeal window is still open", current_status=str(dispute.status)
            )

    async def escalate(self, db: AsyncSession, dispute: Dispute, now: datetime | None = None) -> bool:
        """Raise the escalation flag. Never touches ``status``; False if already escalated."""
        now = now or utcnow()
        result = await db.execute(
            update(Dispute)
            .where(
                Dispute.id == dispute.id,
                Dispute.escalated.is_(False),
                Dispute.status.in_(PENDING_DECISION_STATUSES),
            )
            .values(escalated=True, escalated_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        await db.refresh(dispute)

        await audit.record(
            db,
            dispute.id,
            AuditAction.ESCALATED,
            None,
            ActorType.SYSTEM,
            {"reason": f"Unresolved for {escalation_window().days} days"},
        )
        await notify_admins(
            dispute,
            NotificationType.DISPUTE_ESCALATED,
            {"queue": "reprioritize", "status": str(dispute.status)},
            priority="high",
        )
        logger.info("Dispute %s escalated", dispute.id)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID) -> Dispute:
        return await get_dispute_for_actor(db, actor, dispute_id)

    def list_query(
        self,
        actor: Actor,
        statuses: list[DisputeStatus] | None = None,
        queue: bool = False,
    ):
        """Admins see every dispute; users only those they are a party to.

        Queue ordering puts escalated disputes first, oldest escalation first.
        """
        query = select(Dispute)
        if not actor.is_admin:
            query = query.join(Bounty, Bounty.id == Dispute.bounty_id).where(
                or_(
                    Dispute.initiator_id == actor.id,
                    Bounty.poster_id == actor.id,
                    Bounty.hunter_id == actor.id,
                )
            )
        if statuses:
            query = query.where(Dispute.status.in_([s.value for s in statuses]))
        if queue:
            return query.order_by(
                Dispute.escalated.desc(), Dispute.escalated_at.asc(), Dispute.created_at.asc()
            )
        return query.order_by(Dispute.created_at.desc())

    async def list_disputes(
        self,
        db: AsyncSession,
        actor: Actor,
        statuses: list[DisputeStatus] | None = None,
        queue: bool = False,
    ) -> list[Dispute]:
        result = await db.execute(self.list_query(actor, statuses, queue))
        return list(result.scalars().all())

    async def timeline(
        self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID
    ) -> list[dict[str, Any]]:
        """Evidence, comments, resolutions, appeals and (for admins) audit
        entries merged into one chronological list."""
        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        entries: list[dict[str, Any]] = []

        for ev in await self.ledger.list_evidence(db, dispute.id):
            entries.append({
                "at": as_utc(ev.created_at),
                "type": "evidence",
                "id": ev.id,
                "actor_id": ev.uploaded_by,
                "data": {"kind": ev.kind, "payload": ev.payload, "description": ev.description},
            })

        for c in await self.ledger.list_comments(db, dispute.id, include_internal=actor.is_admin):
            entries.append({
                "at": as_utc(c.created_at),
                "type": "comment",
                "id": c.id,
                "actor_id": c.author_id,
                "data": {"body": c.body, "internal": c.internal},
            })

        resolutions = await db.execute(
            select(DisputeResolution).where(DisputeResolution.dispute_id == dispute.id)
        )
        for r in resolutions.scalars().all():
            entries.append({
                "at": as_utc(r.decided_at),
                "type": "resolution",
                "id": r.id,
                "actor_id": r.admin_id,
                "data": {
                    "outcome": r.outcome,
                    "amount_to_hunter": r.amount_to_hunter,
                    "amount_to_poster": r.amount_to_poster,
                    "rationale": r.rationale,
                    "settlement_status": r.settlement_status,
                    "superseded": r.superseded_at is not None,
                },
            })

        appeals = await db.execute(
            select(DisputeAppeal).where(DisputeAppeal.dispute_id == dispute.id)
        )
        for a in appeals.scalars().all():
            entries.append({
                "at": as_utc(a.created_at),
                "type": "appeal",
                "id": a.id,
                "actor_id": a.appellant_id,
                "data": {"status": a.status, "reason": a.reason},
            })

        if actor.is_admin:
            for entry in await audit.list_for_dispute(db, dispute.id):
                entries.append({
                    "at": as_utc(entry.created_at),
                    "type": "audit",
                    "id": entry.id,
                    "actor_id": entry.actor_id,
                    "data": {
                        "action": entry.action,
                        "actor_type": entry.actor_type,
                        "details": entry.details,
                    },
                })

        entries.sort(key=lambda e: e["at"])
        return entries
