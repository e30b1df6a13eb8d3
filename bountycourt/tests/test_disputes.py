import uuid
from datetime import timedelta

import pytest

from bountycourt.common.enums import AuditAction, CancellationStatus, DisputeStatus
from bountycourt.common.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bountycourt.core.disputes import audit
from bountycourt.core.disputes.ledger import EvidenceLedger
from bountycourt.core.disputes.schemas import LinkEvidence, TextEvidence
from bountycourt.core.disputes.service import DisputeService
from bountycourt.core.disputes.workflow import as_utc, can_transition
from bountycourt.tests.factories import NOW, REASON, make_cancellation, sent_types


async def test_open_dispute(db_session, cancellation, hunter, poster, notifications):
    dispute = await DisputeService().create_dispute(
        db_session, hunter, cancellation.id, "Work completed, poster disputes quality", now=NOW
    )

    assert dispute.status == DisputeStatus.OPEN.value
    assert dispute.initiator_id == hunter.id
    assert dispute.bounty_id == cancellation.bounty_id
    assert as_utc(dispute.auto_close_at) == NOW + timedelta(days=14)
    assert cancellation.status == CancellationStatus.DISPUTED.value

    entries = await audit.list_for_dispute(db_session, dispute.id)
    assert [e.action for e in entries] == [AuditAction.CREATED.value]
    assert entries[0].actor_id == hunter.id

    # The counterparty hears about it, the initiator does not
    event = notifications.call_args.args[0]
    assert event["type"] == "dispute_created"
    assert event["recipient_ids"] == [str(poster.id)]


async def test_open_dispute_short_reason(db_session, cancellation, hunter):
    with pytest.raises(ValidationError):
        await DisputeService().create_dispute(db_session, hunter, cancellation.id, "bad", now=NOW)


async def test_open_dispute_requires_bounty_party(db_session, cancellation, outsider):
    with pytest.raises(AuthorizationError):
        await DisputeService().create_dispute(db_session, outsider, cancellation.id, REASON, now=NOW)


async def test_open_dispute_unknown_cancellation(db_session, hunter):
    with pytest.raises(NotFoundError):
        await DisputeService().create_dispute(db_session, hunter, uuid.uuid4(), REASON, now=NOW)


async def test_one_dispute_per_cancellation(db_session, dispute, cancellation, poster):
    with pytest.raises(ConflictError):
        await DisputeService().create_dispute(db_session, poster, cancellation.id, REASON, now=NOW)


async def test_open_dispute_with_initial_evidence(db_session, cancellation, poster):
    dispute = await DisputeService().create_dispute(
        db_session,
        poster,
        cancellation.id,
        REASON,
        evidence=[
            TextEvidence(text="Only the header was restyled"),
            LinkEvidence(url="https://example.com/pr/42", description="The partial PR"),
        ],
        now=NOW,
    )

    evidence = await EvidenceLedger().list_evidence(db_session, dispute.id)
    assert sorted(e.kind for e in evidence) == ["link", "text"]
    link = next(e for e in evidence if e.kind == "link")
    assert link.payload == {"url": "https://example.com/pr/42"}
    assert link.description == "The partial PR"
    assert all(e.uploaded_by == poster.id for e in evidence)


async def test_mark_under_review(db_session, dispute, admin, notifications):
    service = DisputeService()
    updated = await service.mark_under_review(db_session, admin, dispute.id, now=NOW)

    assert updated.status == DisputeStatus.UNDER_REVIEW.value
    changes = await audit.list_for_dispute(db_session, dispute.id, AuditAction.STATUS_CHANGED.value)
    assert changes[0].details == {"old_status": "open", "new_status": "under_review"}
    assert "dispute_under_review" in sent_types(notifications)


async def test_mark_under_review_is_idempotent(db_session, dispute, admin):
    service = DisputeService()
    await service.mark_under_review(db_session, admin, dispute.id, now=NOW)
    again = await service.mark_under_review(db_session, admin, dispute.id, now=NOW)

    assert again.status == DisputeStatus.UNDER_REVIEW.value
    changes = await audit.list_for_dispute(db_session, dispute.id, AuditAction.STATUS_CHANGED.value)
    assert len(changes) == 1


async def test_mark_under_review_admin_only(db_session, dispute, poster):
    with pytest.raises(AuthorizationError):
        await DisputeService().mark_under_review(db_session, poster, dispute.id, now=NOW)


async def test_admin_close(db_session, dispute, admin, notifications):
    closed = await DisputeService().close_dispute(
        db_session, admin, dispute.id, "Parties settled privately", now=NOW
    )

    assert closed.status == DisputeStatus.CLOSED.value
    assert closed.closed_reason == "Parties settled privately"
    entries = await audit.list_for_dispute(db_session, dispute.id, AuditAction.CLOSED.value)
    assert entries[0].actor_type == "admin"
    assert "dispute_closed" in sent_types(notifications)


async def test_close_requires_reason(db_session, dispute, admin):
    with pytest.raises(ValidationError):
        await DisputeService().close_dispute(db_session, admin, dispute.id, "  ", now=NOW)


async def test_closed_is_terminal(db_session, dispute, admin):
    service = DisputeService()
    await service.close_dispute(db_session, admin, dispute.id, "Duplicate of another case", now=NOW)

    with pytest.raises(InvalidStateError):
        await service.close_dispute(db_session, admin, dispute.id, "Closing twice", now=NOW)

    # Review is a silent no-op on a closed dispute and never reopens it
    still = await service.mark_under_review(db_session, admin, dispute.id, now=NOW)
    assert still.status == DisputeStatus.CLOSED.value


def test_transition_graph():
    assert can_transition("open", DisputeStatus.UNDER_REVIEW)
    assert can_transition("reopened", DisputeStatus.UNDER_REVIEW)
    assert can_transition("under_review", DisputeStatus.RESOLVED)
    assert can_transition("resolved", DisputeStatus.REOPENED)
    assert not can_transition("open", DisputeStatus.RESOLVED)
    assert not can_transition("closed", DisputeStatus.UNDER_REVIEW)
    assert not can_transition("closed", DisputeStatus.REOPENED)
    assert not can_transition("reopened", DisputeStatus.CLOSED)


async def test_get_dispute_access(db_session, dispute, poster, hunter, admin, outsider):
    service = DisputeService()
    for actor in (poster, hunter, admin):
        assert (await service.get(db_session, actor, dispute.id)).id == dispute.id
    with pytest.raises(AuthorizationError):
        await service.get(db_session, outsider, dispute.id)


async def test_list_disputes_scoped_to_parties(db_session, dispute, poster, admin, outsider):
    service = DisputeService()
    other_poster = outsider
    other = await make_cancellation(db_session, other_poster, None)
    await service.create_dispute(db_session, other_poster, other.id, REASON, now=NOW)

    mine = await service.list_disputes(db_session, poster)
    assert [d.id for d in mine] == [dispute.id]

    everything = await service.list_disputes(db_session, admin)
    assert dispute.id in {d.id for d in everything}
    assert len(everything) >= 2

    only_open = await service.list_disputes(db_session, poster, statuses=[DisputeStatus.CLOSED])
    assert only_open == []
