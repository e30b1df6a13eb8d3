import random

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bountycourt.common.enums import (
    AuditAction,
    DisputeStatus,
    MediaType,
    ResolutionOutcome,
    SettlementStatus,
)
from bountycourt.common.exceptions import (
    AllocationMismatchError,
    AuthorizationError,
    InvalidStateError,
    SettlementError,
    ValidationError,
)
from bountycourt.core.disputes import audit
from bountycourt.core.disputes.ledger import EvidenceLedger
from bountycourt.core.disputes.resolution import ResolutionEngine, compute_allocation
from bountycourt.core.disputes.schemas import AllocationInput, MediaEvidence, TextEvidence
from bountycourt.core.disputes.service import DisputeService
from bountycourt.db.models.dispute import Dispute
from bountycourt.db.models.resolution import DisputeResolution
from bountycourt.tests.factories import NOW, RATIONALE, REASON, fake_settle, make_cancellation, sent_types

ESCROW = 50_000  # $500.00


@pytest.fixture
async def big_dispute(db_session, poster, hunter):
    cancellation = await make_cancellation(db_session, poster, hunter, amount_cents=ESCROW)
    return await DisputeService().create_dispute(db_session, hunter, cancellation.id, REASON, now=NOW)


# ---------- Allocation arithmetic ----------


def test_release_and_refund_default_to_full_amount():
    assert compute_allocation(ResolutionOutcome.RELEASE, ESCROW, None) == (ESCROW, 0)
    assert compute_allocation(ResolutionOutcome.REFUND, ESCROW, None) == (0, ESCROW)


def test_release_must_pay_hunter_everything():
    with pytest.raises(AllocationMismatchError):
        compute_allocation(
            ResolutionOutcome.RELEASE,
            ESCROW,
            AllocationInput(amount_to_hunter=40_000, amount_to_poster=10_000),
        )


def test_percentage_split_rounds_down_for_hunter():
    hunter, poster = compute_allocation(
        ResolutionOutcome.SPLIT, 10_001, AllocationInput(hunter_percent=60, poster_percent=40)
    )
    assert (hunter, poster) == (6_000, 4_001)


def test_percentages_must_sum_to_100():
    with pytest.raises(AllocationMismatchError):
        compute_allocation(
            ResolutionOutcome.SPLIT, ESCROW, AllocationInput(hunter_percent=60, poster_percent=30)
        )


def test_amounts_must_sum_to_escrow():
    with pytest.raises(AllocationMismatchError) as exc:
        compute_allocation(
            ResolutionOutcome.SPLIT,
            ESCROW,
            AllocationInput(amount_to_hunter=30_000, amount_to_poster=10_000),
        )
    assert exc.value.expected_total == ESCROW
    assert exc.value.actual_total == 40_000


def test_split_requires_allocation():
    with pytest.raises(ValidationError):
        compute_allocation(ResolutionOutcome.SPLIT, ESCROW, None)
    with pytest.raises(ValidationError):
        compute_allocation(ResolutionOutcome.SPLIT, ESCROW, AllocationInput(hunter_percent=50))


def test_mixed_allocation_forms_rejected():
    with pytest.raises(ValidationError):
        compute_allocation(
            ResolutionOutcome.SPLIT,
            ESCROW,
            AllocationInput(hunter_percent=50, poster_percent=50, amount_to_hunter=25_000, amount_to_poster=25_000),
        )


def test_split_always_conserves_escrow():
    rng = random.Random(7)
    for _ in range(200):
        escrow = rng.randint(0, 1_000_000)
        pct = rng.randint(0, 100)
        hunter, poster = compute_allocation(
            ResolutionOutcome.SPLIT,
            escrow,
            AllocationInput(hunter_percent=pct, poster_percent=100 - pct),
        )
        assert hunter + poster == escrow
        assert hunter >= 0 and poster >= 0


# ---------- Decisions ----------


async def test_resolve_requires_under_review(db_session, big_dispute, admin):
    with pytest.raises(InvalidStateError):
        await ResolutionEngine().propose_resolution(
            db_session,
            admin,
            big_dispute.id,
            ResolutionOutcome.SPLIT,
            AllocationInput(hunter_percent=60, poster_percent=40),
            RATIONALE,
            now=NOW,
        )
    assert big_dispute.status == DisputeStatus.OPEN.value


async def test_resolve_split(db_session, big_dispute, admin, hunter, poster, settlement, notifications):
    await DisputeService().mark_under_review(db_session, admin, big_dispute.id, now=NOW)

    result = await ResolutionEngine().propose_resolution(
        db_session,
        admin,
        big_dispute.id,
        ResolutionOutcome.SPLIT,
        AllocationInput(amount_to_hunter=30_000, amount_to_poster=20_000),
        RATIONALE,
        now=NOW,
    )
    resolution = result.resolution

    assert result.settlement_error is None
    assert big_dispute.status == DisputeStatus.RESOLVED.value
    assert resolution.amount_to_hunter == 30_000
    assert resolution.amount_to_poster == 20_000
    assert resolution.settlement_status == SettlementStatus.SETTLED.value
    assert resolution.settlement_reference.startswith("stl_")

    settlement.assert_awaited_once()
    dispute_id, resolution_id, allocations = settlement.await_args.args
    assert (dispute_id, resolution_id) == (big_dispute.id, resolution.id)
    assert {str(a["party_id"]): a["amount"] for a in allocations} == {
        str(hunter.id): 30_000,
        str(poster.id): 20_000,
    }

    actions = [e.action for e in await audit.list_for_dispute(db_session, big_dispute.id)]
    assert actions.index("resolution_decision") < actions.index("settlement_completed")

    resolved = [c.args[0] for c in notifications.call_args_list if c.args[0]["type"] == "dispute_resolved"]
    assert len(resolved[0]["payload"]["summary"]) <= 100


async def test_resolve_admin_only(db_session, reviewed_dispute, poster):
    with pytest.raises(AuthorizationError):
        await ResolutionEngine().propose_resolution(
            db_session, poster, reviewed_dispute.id, ResolutionOutcome.REFUND, None, RATIONALE, now=NOW
        )


async def test_resolve_short_rationale(db_session, reviewed_dispute, admin):
    with pytest.raises(ValidationError):
        await ResolutionEngine().propose_resolution(
            db_session, admin, reviewed_dispute.id, ResolutionOutcome.REFUND, None, "Too short", now=NOW
        )
    assert reviewed_dispute.status == DisputeStatus.UNDER_REVIEW.value


async def test_mismatched_allocation_leaves_dispute_untouched(db_session, reviewed_dispute, admin, settlement):
    with pytest.raises(AllocationMismatchError):
        await ResolutionEngine().propose_resolution(
            db_session,
            admin,
            reviewed_dispute.id,
            ResolutionOutcome.SPLIT,
            AllocationInput(amount_to_hunter=1, amount_to_poster=1),
            RATIONALE,
            now=NOW,
        )
    assert reviewed_dispute.status == DisputeStatus.UNDER_REVIEW.value
    settlement.assert_not_awaited()


async def test_second_resolution_conflicts(db_session, reviewed_dispute, admin):
    engine = ResolutionEngine()
    await engine.propose_resolution(
        db_session, admin, reviewed_dispute.id, ResolutionOutcome.REFUND, None, RATIONALE, now=NOW
    )
    with pytest.raises(InvalidStateError):
        await engine.propose_resolution(
            db_session, admin, reviewed_dispute.id, ResolutionOutcome.RELEASE, None, RATIONALE, now=NOW
        )

    result = await db_session.execute(
        select(DisputeResolution).where(DisputeResolution.dispute_id == reviewed_dispute.id)
    )
    assert len(result.scalars().all()) == 1


async def test_losing_admin_is_stopped_by_guarded_update(db_session, reviewed_dispute, admin, settlement):
    # Another admin resolves the case after this one loaded it
    await db_session.execute(
        update(Dispute)
        .where(Dispute.id == reviewed_dispute.id)
        .values(status=DisputeStatus.RESOLVED.value)
        .execution_options(synchronize_session=False)
    )
    assert reviewed_dispute.status == DisputeStatus.UNDER_REVIEW.value

    with pytest.raises(InvalidStateError) as exc:
        await ResolutionEngine().propose_resolution(
            db_session, admin, reviewed_dispute.id, ResolutionOutcome.RELEASE, None, RATIONALE, now=NOW
        )

    assert exc.value.current_status == DisputeStatus.RESOLVED.value
    assert reviewed_dispute.status == DisputeStatus.RESOLVED.value
    settlement.assert_not_awaited()
    result = await db_session.execute(
        select(DisputeResolution).where(DisputeResolution.dispute_id == reviewed_dispute.id)
    )
    assert result.scalars().all() == []


async def test_decision_is_committed_before_settlement(
    committing_session, test_engine, poster, hunter, admin, settlement, settlement_retries
):
    db = committing_session
    cancellation = await make_cancellation(db, poster, hunter)
    service = DisputeService()
    dispute = await service.create_dispute(db, hunter, cancellation.id, REASON, now=NOW)
    await service.mark_under_review(db, admin, dispute.id, now=NOW)

    other_sessions = async_sessionmaker(test_engine, class_=AsyncSession)
    seen = {}

    async def settle_and_look(dispute_id, resolution_id, allocations):
        async with other_sessions() as other:
            seen["stored"] = await other.get(DisputeResolution, resolution_id) is not None
        seen["retry_queued"] = settlement_retries.called
        raise SettlementError("rails unavailable")

    settlement.side_effect = settle_and_look
    result = await ResolutionEngine().propose_resolution(
        db, admin, dispute.id, ResolutionOutcome.REFUND, None, RATIONALE, now=NOW
    )

    assert seen == {"stored": True, "retry_queued": False}
    settlement_retries.assert_called_once()

    # The failed attempt is durable too, so the queued retry sees it
    async with other_sessions() as other:
        stored = await other.get(DisputeResolution, result.resolution.id)
        assert stored.settlement_status == SettlementStatus.PENDING_SETTLEMENT.value
        assert stored.settlement_attempts == 1
        assert "rails unavailable" in stored.last_settlement_error


async def test_release_without_hunter(db_session, poster, admin):
    cancellation = await make_cancellation(db_session, poster, None)
    service = DisputeService()
    dispute = await service.create_dispute(db_session, poster, cancellation.id, REASON, now=NOW)
    await service.mark_under_review(db_session, admin, dispute.id, now=NOW)

    with pytest.raises(ValidationError):
        await ResolutionEngine().propose_resolution(
            db_session, admin, dispute.id, ResolutionOutcome.RELEASE, None, RATIONALE, now=NOW
        )


async def test_honor_bounty_needs_no_settlement(db_session, poster, hunter, admin, settlement):
    cancellation = await make_cancellation(db_session, poster, hunter, is_for_honor=True)
    service = DisputeService()
    dispute = await service.create_dispute(db_session, hunter, cancellation.id, REASON, now=NOW)
    await service.mark_under_review(db_session, admin, dispute.id, now=NOW)

    result = await ResolutionEngine().propose_resolution(
        db_session, admin, dispute.id, ResolutionOutcome.RELEASE, None, RATIONALE, now=NOW
    )

    assert result.resolution.escrow_amount == 0
    assert result.resolution.settlement_status == SettlementStatus.NOT_REQUIRED.value
    settlement.assert_not_awaited()


# ---------- Settlement failures ----------


async def test_settlement_failure_keeps_decision(
    db_session, reviewed_dispute, admin, settlement, settlement_retries
):
    settlement.side_effect = SettlementError("rails unavailable")

    result = await ResolutionEngine().propose_resolution(
        db_session, admin, reviewed_dispute.id, ResolutionOutcome.REFUND, None, RATIONALE, now=NOW
    )

    resolution = result.resolution
    assert "rails unavailable" in result.settlement_error
    assert reviewed_dispute.status == DisputeStatus.RESOLVED.value
    assert resolution.settlement_status == SettlementStatus.PENDING_SETTLEMENT.value
    assert resolution.settlement_attempts == 1
    assert "rails unavailable" in resolution.last_settlement_error
    settlement_retries.assert_called_once()
    assert settlement_retries.call_args.kwargs["args"] == [str(resolution.id)]

    failed = await audit.list_for_dispute(db_session, reviewed_dispute.id, AuditAction.SETTLEMENT_FAILED.value)
    assert failed[0].actor_type == "system"


async def test_retry_settlement_is_idempotent(db_session, reviewed_dispute, admin, settlement):
    settlement.side_effect = SettlementError("timeout")
    engine = ResolutionEngine()
    result = await engine.propose_resolution(
        db_session, admin, reviewed_dispute.id, ResolutionOutcome.REFUND, None, RATIONALE, now=NOW
    )
    resolution_id = result.resolution.id

    settlement.side_effect = fake_settle
    retried = await engine.retry_settlement(db_session, admin, resolution_id)
    assert retried.settlement_error is None
    assert retried.resolution.settlement_status == SettlementStatus.SETTLED.value
    assert retried.resolution.settlement_attempts == 2

    # Already settled: the rails are not called again
    again = await engine.retry_settlement(db_session, admin, resolution_id)
    assert again.resolution.settlement_status == SettlementStatus.SETTLED.value
    assert settlement.await_count == 2


async def test_exhausted_retries_alert_admins(
    db_session, reviewed_dispute, admin, settlement, notifications, monkeypatch
):
    from bountycourt.config import settings

    monkeypatch.setattr(settings, "SETTLEMENT_MAX_RETRIES", 2)
    monkeypatch.setattr(settings, "ADMIN_NOTIFY_IDS", str(admin.id))
    settlement.side_effect = SettlementError("card declined")
    engine = ResolutionEngine()
    result = await engine.propose_resolution(
        db_session, admin, reviewed_dispute.id, ResolutionOutcome.REFUND, None, RATIONALE, now=NOW
    )

    notifications.reset_mock()
    retried = await engine.retry_settlement(db_session, None, result.resolution.id)

    assert retried.settlement_error is not None
    assert sent_types(notifications) == ["settlement_failed"]
    assert notifications.call_args.args[0]["recipient_ids"] == [str(admin.id)]


# ---------- Suggestion ----------


async def test_suggestion_favours_better_documented_side(db_session, reviewed_dispute, admin, hunter, poster):
    ledger = EvidenceLedger()
    for n in range(3):
        await ledger.add_evidence(
            db_session,
            hunter,
            reviewed_dispute.id,
            MediaEvidence(reference=f"media/{n}.png", media_type=MediaType.IMAGE),
            now=NOW,
        )
    await ledger.add_evidence(db_session, poster, reviewed_dispute.id, TextEvidence(text="It was late"), now=NOW)

    suggestion = await ResolutionEngine().suggest_resolution(db_session, admin, reviewed_dispute.id)

    assert suggestion.suggested_outcome == ResolutionOutcome.RELEASE
    assert suggestion.hunter_score == 9
    assert suggestion.poster_score == 1
    assert 0.5 < suggestion.confidence <= 0.8


async def test_suggestion_without_evidence(db_session, reviewed_dispute, admin):
    suggestion = await ResolutionEngine().suggest_resolution(db_session, admin, reviewed_dispute.id)
    assert suggestion.suggested_outcome == ResolutionOutcome.SPLIT
    assert suggestion.confidence == 0.3
