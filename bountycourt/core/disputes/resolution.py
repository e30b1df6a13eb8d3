"""Resolution decisions and escrow settlement.

Amounts are integer minor currency units throughout. A decision must account
for every unit in escrow: explicit amounts have to add up to the escrowed total
exactly, and percentage splits are converted with the hunter's share rounded
down and the remainder returned to the poster.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import (
    ActorType,
    AuditAction,
    DisputeStatus,
    EvidenceKind,
    MediaType,
    NotificationType,
    ResolutionOutcome,
    SettlementStatus,
)
from bountycourt.common.exceptions import (
    AllocationMismatchError,
    InvalidStateError,
    NotFoundError,
    SettlementError,
    ValidationError,
)
from bountycourt.common.logging import get_logger
from bountycourt.config import settings
from bountycourt.core.disputes import audit
from bountycourt.core.disputes.access import get_dispute, get_dispute_for_actor, require_admin
from bountycourt.core.disputes.schemas import (
    Actor,
    AllocationInput,
    PartyAllocation,
    SuggestedResolution,
)
from bountycourt.core.disputes.workflow import transition, utcnow
from bountycourt.core.notifications.service import notify_admins, notify_parties
from bountycourt.db.models.dispute import Dispute
from bountycourt.db.models.evidence import DisputeEvidence
from bountycourt.db.models.resolution import DisputeResolution
from bountycourt.integrations.settlement import SettlementClient

logger = get_logger("disputes.resolution")

# Evidence weights for the advisory suggestion
EVIDENCE_SCORE_IMAGE = 3
EVIDENCE_SCORE_DOCUMENT = 2
EVIDENCE_SCORE_TEXT = 1


def _has_percentages(allocation: AllocationInput) -> bool:
    return allocation.hunter_percent is not None or allocation.poster_percent is not None


def _has_amounts(allocation: AllocationInput) -> bool:
    return allocation.amount_to_hunter is not None or allocation.amount_to_poster is not None


def _split_from_allocation(escrow: int, allocation: AllocationInput) -> tuple[int, int]:
    if _has_percentages(allocation):
        if allocation.hunter_percent is None or allocation.poster_percent is None:
            raise ValidationError("A percentage split must give both hunter_percent and poster_percent")
        total = allocation.hunter_percent + allocation.poster_percent
        if total != 100:
            raise AllocationMismatchError("Percentages must sum to 100", 100, total)
        to_hunter = escrow * allocation.hunter_percent // 100
        return to_hunter, escrow - to_hunter

    if allocation.amount_to_hunter is None or allocation.amount_to_poster is None:
        raise ValidationError("An explicit split must give both amount_to_hunter and amount_to_poster")
    total = allocation.amount_to_hunter + allocation.amount_to_poster
    if total != escrow:
        raise AllocationMismatchError("Allocated amounts must equal the escrowed total", escrow, total)
    return allocation.amount_to_hunter, allocation.amount_to_poster


def compute_allocation(
    outcome: ResolutionOutcome, escrow: int, allocation: AllocationInput | None
) -> tuple[int, int]:
    """Return ``(amount_to_hunter, amount_to_poster)``; the pair always sums to ``escrow``."""
    given = allocation is not None and (_has_percentages(allocation) or _has_amounts(allocation))
    if given and _has_percentages(allocation) and _has_amounts(allocation):
        raise ValidationError("Give either percentages or explicit amounts, not both")

    if outcome in (ResolutionOutcome.RELEASE, ResolutionOutcome.REFUND):
        expected = (escrow, 0) if outcome == ResolutionOutcome.RELEASE else (0, escrow)
        if not given:
            return expected
        computed = _split_from_allocation(escrow, allocation)
        if computed != expected:
            party = "hunter" if outcome == ResolutionOutcome.RELEASE else "poster"
            raise AllocationMismatchError(f"A {outcome.value} must pay the full escrow to the {party}")
        return computed

    if not given:
        raise ValidationError(f"A '{outcome.value}' decision must specify both parties' shares")
    return _split_from_allocation(escrow, allocation)


@dataclass
class ResolutionResult:
    resolution: DisputeResolution
    settlement_error: str | None = None


class ResolutionEngine:
    def __init__(self, settlement_client: SettlementClient | None = None):
        self.settlement_client = settlement_client or SettlementClient()

    async def propose_resolution(
        self,
        db: AsyncSession,
        actor: Actor,
        dispute_id: uuid.UUID,
        outcome: ResolutionOutcome,
        allocation: AllocationInput | None,
        rationale: str,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> ResolutionResult:
        """Record an admin decision and settle it.

        Commits the session twice: once for the decision itself, once for the
        settlement attempt. A failed attempt leaves the decision in
        ``pending_settlement`` with a retry queued.
        """
        require_admin(actor, "resolve a dispute")
        now = now or utcnow()
        dispute = await get_dispute(db, dispute_id)

        if DisputeStatus(dispute.status) != DisputeStatus.UNDER_REVIEW:
            raise InvalidStateError(
                "Only disputes under review can be resolved", current_status=str(dispute.status)
            )

        rationale = (rationale or "").strip()
        if len(rationale) < settings.MIN_RESOLUTION_RATIONALE_LENGTH:
            raise ValidationError(
                f"Rationale must be at least {settings.MIN_RESOLUTION_RATIONALE_LENGTH} characters"
            )

        bounty = dispute.bounty
        escrow = bounty.escrowed_amount
        to_hunter, to_poster = compute_allocation(outcome, escrow, allocation)
        if to_hunter > 0 and bounty.hunter_id is None:
            raise ValidationError("This bounty has no hunter to receive funds")

        # The guarded update is the serialisation point between competing admins
        await transition(db, dispute, DisputeStatus.RESOLVED, resolved_at=now)

        resolution = DisputeResolution(
            dispute_id=dispute.id,
            admin_id=actor.id,
            outcome=outcome.value,
            escrow_amount=escrow,
            amount_to_hunter=to_hunter,
            amount_to_poster=to_poster,
            rationale=rationale,
            metadata_=metadata or {},
            decided_at=now,
            created_at=now,
            updated_at=now,
            settlement_status=(
                SettlementStatus.PENDING_SETTLEMENT.value if escrow > 0
                else SettlementStatus.NOT_REQUIRED.value
            ),
        )
        db.add(resolution)
        try:
            await db.flush()
        except IntegrityError as e:
            raise InvalidStateError(
                "This dispute already has an active resolution", current_status=str(dispute.status)
            ) from e

        await audit.record(
            db,
            dispute.id,
            AuditAction.RESOLUTION_DECISION,
            actor.id,
            ActorType.ADMIN,
            {
                "resolution_id": str(resolution.id),
                "outcome": outcome.value,
                "escrow_amount": escrow,
                "amount_to_hunter": to_hunter,
                "amount_to_poster": to_poster,
            },
        )
        logger.info(
            "Dispute %s resolved (%s): hunter=%d poster=%d of %d",
            dispute.id, outcome.value, to_hunter, to_poster, escrow,
        )

        # Money only moves once the decision it pays out is durable
        await db.commit()

        await notify_parties(
            dispute,
            NotificationType.DISPUTE_RESOLVED,
            {
                "outcome": outcome.value,
                "amount_to_hunter": to_hunter,
                "amount_to_poster": to_poster,
                "summary": rationale[: settings.RESOLUTION_SUMMARY_LENGTH],
            },
        )

        if resolution.settlement_status != SettlementStatus.PENDING_SETTLEMENT.value:
            return ResolutionResult(resolution=resolution)
        return await self._settle_committed(db, resolution, dispute)

    async def _settle_committed(
        self, db: AsyncSession, resolution: DisputeResolution, dispute: Dispute
    ) -> ResolutionResult:
        """Settle a committed decision as its own unit of work.

        The outcome of the attempt is committed before a retry is queued, so
        the retry task always finds the resolution and its attempt count.
        """
        try:
            await self.settle(db, resolution, dispute)
        except SettlementError as e:
            await db.commit()
            _queue_settlement_retry(resolution.id)
            return ResolutionResult(resolution=resolution, settlement_error=e.detail)
        await db.commit()
        return ResolutionResult(resolution=resolution)

    def allocations_for(self, dispute: Dispute, resolution: DisputeResolution) -> list[PartyAllocation]:
        bounty = dispute.bounty
        allocations = []
        if resolution.amount_to_hunter > 0:
            allocations.append(PartyAllocation(party_id=bounty.hunter_id, amount=resolution.amount_to_hunter))
        if resolution.amount_to_poster > 0:
            allocations.append(PartyAllocation(party_id=bounty.poster_id, amount=resolution.amount_to_poster))
        return allocations

    async def settle(
        self,
        db: AsyncSession,
        resolution: DisputeResolution,
        dispute: Dispute | None = None,
    ) -> DisputeResolution:
        """Invoke the settlement rails for a recorded decision.

        Idempotent: settled or not-required resolutions are returned as-is, and
        the rails deduplicate on (dispute id, resolution id). Failures are
        recorded on the resolution before ``SettlementError`` is re-raised.
        """
        if resolution.settlement_status != SettlementStatus.PENDING_SETTLEMENT.value:
            return resolution
        dispute = dispute or await get_dispute(db, resolution.dispute_id)

        allocations = self.allocations_for(dispute, resolution)
        resolution.settlement_attempts = (resolution.settlement_attempts or 0) + 1
        try:
            receipt = await self.settlement_client.settle(
                dispute.id,
                resolution.id,
                [a.model_dump() for a in allocations],
            )
        except SettlementError as e:
            resolution.last_settlement_error = e.detail
            await db.flush()
            await audit.record(
                db,
                dispute.id,
                AuditAction.SETTLEMENT_FAILED,
                None,
                ActorType.SYSTEM,
                {
                    "resolution_id": str(resolution.id),
                    "attempt": resolution.settlement_attempts,
                    "error": e.detail,
                },
            )
            logger.warning(
                "Settlement attempt %d failed for resolution %s: %s",
                resolution.settlement_attempts, resolution.id, e.detail,
            )
            raise

        now = utcnow()
        resolution.settlement_status = SettlementStatus.SETTLED.value
        resolution.settlement_reference = receipt.settlement_id
        resolution.settled_at = now
        resolution.last_settlement_error = None
        await db.flush()
        await audit.record(
            db,
            dispute.id,
            AuditAction.SETTLEMENT_COMPLETED,
            None,
            ActorType.SYSTEM,
            {"resolution_id": str(resolution.id), "settlement_id": receipt.settlement_id},
        )
        logger.info("Resolution %s settled: %s", resolution.id, receipt.settlement_id)
        return resolution

    async def retry_settlement(
        self, db: AsyncSession, actor: Actor | None, resolution_id: uuid.UUID
    ) -> ResolutionResult:
        """Re-run settlement for a recorded decision; never re-decides the case."""
        if actor is not None:
            require_admin(actor, "retry a settlement")
        resolution = await self.get_resolution(db, resolution_id)
        try:
            await self.settle(db, resolution)
        except SettlementError as e:
            if resolution.settlement_attempts >= settings.SETTLEMENT_MAX_RETRIES:
                dispute = await get_dispute(db, resolution.dispute_id)
                await notify_admins(
                    dispute,
                    NotificationType.SETTLEMENT_FAILED,
                    {"resolution_id": str(resolution.id), "attempts": resolution.settlement_attempts},
                    priority="high",
                )
            return ResolutionResult(resolution=resolution, settlement_error=e.detail)
        return ResolutionResult(resolution=resolution)

    async def get_resolution(self, db: AsyncSession, resolution_id: uuid.UUID) -> DisputeResolution:
        result = await db.execute(
            select(DisputeResolution).where(DisputeResolution.id == resolution_id)
        )
        resolution = result.scalar_one_or_none()
        if not resolution:
            raise NotFoundError("Resolution", str(resolution_id))
        return resolution

    async def current_resolution(
        self, db: AsyncSession, dispute_id: uuid.UUID
    ) -> DisputeResolution | None:
        result = await db.execute(
            select(DisputeResolution).where(
                DisputeResolution.dispute_id == dispute_id,
                DisputeResolution.superseded_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def list_resolutions(
        self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID
    ) -> list[DisputeResolution]:
        dispute = await get_dispute_for_actor(db, actor, dispute_id)
        result = await db.execute(
            select(DisputeResolution)
            .where(DisputeResolution.dispute_id == dispute.id)
            .order_by(DisputeResolution.decided_at)
        )
        return list(result.scalars().all())

    async def suggest_resolution(
        self, db: AsyncSession, actor: Actor, dispute_id: uuid.UUID
    ) -> SuggestedResolution:
        """Advisory outcome based on who backed their side with more evidence."""
        require_admin(actor, "request a suggested resolution")
        dispute = await get_dispute(db, dispute_id)
        bounty = dispute.bounty

        result = await db.execute(
            select(DisputeEvidence).where(DisputeEvidence.dispute_id == dispute.id)
        )
        hunter_score = 0
        poster_score = 0
        for ev in result.scalars().all():
            score = _evidence_score(ev)
            if bounty.hunter_id is not None and ev.uploaded_by == bounty.hunter_id:
                hunter_score += score
            elif ev.uploaded_by == bounty.poster_id:
                poster_score += score

        total = hunter_score + poster_score
        if total == 0:
            outcome = ResolutionOutcome.SPLIT
            confidence = 0.3
            reasoning = "Insufficient evidence from both parties. Recommend splitting the bounty."
        elif hunter_score > poster_score * 2:
            outcome = ResolutionOutcome.RELEASE
            confidence = min(0.8, 0.5 + (hunter_score / (total + 1)) * 0.3)
            reasoning = "Hunter provided significantly more evidence. Recommend releasing funds to hunter."
        elif poster_score > hunter_score * 2:
            outcome = ResolutionOutcome.REFUND
            confidence = min(0.8, 0.5 + (poster_score / (total + 1)) * 0.3)
            reasoning = "Poster provided significantly more evidence. Recommend refunding to poster."
        else:
            outcome = ResolutionOutcome.SPLIT
            confidence = 0.6
            reasoning = "Both parties provided comparable evidence. Recommend splitting the bounty."

        return SuggestedResolution(
            suggested_outcome=outcome,
            confidence=round(confidence, 3),
            reasoning=reasoning,
            hunter_score=hunter_score,
            poster_score=poster_score,
        )


def _evidence_score(evidence: DisputeEvidence) -> int:
    if evidence.kind == EvidenceKind.MEDIA.value:
        media_type = (evidence.payload or {}).get("media_type")
        if media_type == MediaType.IMAGE.value:
            return EVIDENCE_SCORE_IMAGE
        if media_type == MediaType.DOCUMENT.value:
            return EVIDENCE_SCORE_DOCUMENT
    return EVIDENCE_SCORE_TEXT


def _queue_settlement_retry(resolution_id: uuid.UUID) -> None:
    from bountycourt.tasks.dispute_tasks import settle_resolution

    try:
        settle_resolution.apply_async(
            args=[str(resolution_id)], countdown=settings.SETTLEMENT_RETRY_BASE_SECONDS
        )
    except Exception as e:
        # Decision stays pending_settlement; POST /resolutions/{id}/settle recovers it
        logger.error("Could not queue settlement retry for resolution %s: %s", resolution_id, e)
