"""Dispute status graph, activity deadlines and the guarded status update."""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import DisputeStatus
from bountycourt.common.exceptions import InvalidStateError
from bountycourt.common.logging import get_logger
from bountycourt.config import settings
from bountycourt.db.models.dispute import Dispute

logger = get_logger("disputes.workflow")

# Allowed edges: to_status -> statuses it may be entered from
TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.UNDER_REVIEW: frozenset({DisputeStatus.OPEN, DisputeStatus.REOPENED}),
    DisputeStatus.RESOLVED: frozenset({DisputeStatus.UNDER_REVIEW}),
    DisputeStatus.REOPENED: frozenset({DisputeStatus.RESOLVED}),
    DisputeStatus.CLOSED: frozenset(
        {DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED}
    ),
}

# Statuses in which parties may still add evidence and comments
ACTIVE_STATUSES = frozenset(
    {DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW, DisputeStatus.REOPENED}
)

# Statuses watched by the auto-close and escalation jobs
PENDING_DECISION_STATUSES = (DisputeStatus.OPEN.value, DisputeStatus.UNDER_REVIEW.value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes read back from the database as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def can_transition(current: DisputeStatus | str, target: DisputeStatus) -> bool:
    return DisputeStatus(current) in TRANSITIONS.get(target, frozenset())


def inactivity_window() -> timedelta:
    return timedelta(days=settings.DISPUTE_INACTIVITY_DAYS)


def escalation_window() -> timedelta:
    return timedelta(days=settings.DISPUTE_ESCALATION_DAYS)


def appeal_window() -> timedelta:
    return timedelta(days=settings.APPEAL_WINDOW_DAYS)


def next_auto_close_at(now: datetime) -> datetime:
    return now + inactivity_window()


def appeal_deadline(decided_at: datetime) -> datetime:
    return as_utc(decided_at) + appeal_window()


def within_appeal_window(decided_at: datetime, now: datetime) -> bool:
    return as_utc(now) <= appeal_deadline(decided_at)


def escalation_cutoff(now: datetime) -> datetime:
    return now - escalation_window()


async def transition(
    db: AsyncSession,
    dispute: Dispute,
    target: DisputeStatus,
    *,
    allowed_from: frozenset[DisputeStatus] | None = None,
    **values: Any,
) -> DisputeStatus:
    """Move ``dispute`` to ``target`` with a status-guarded conditional update.

    The WHERE clause re-checks the status inside the database, so of two
    concurrent callers only the first one matches a row; the loser gets
    ``InvalidStateError`` and the stored status is left untouched. Extra
    column values are written in the same statement. Returns the previous status.
    """
    sources = allowed_from if allowed_from is not None else TRANSITIONS.get(target, frozenset())
    previous = DisputeStatus(dispute.status)
    if previous not in sources:
        raise InvalidStateError(
            f"Cannot move dispute to '{target.value}'", current_status=previous.value
        )

    stmt = (
        update(Dispute)
        .where(
            Dispute.id == dispute.id,
            Dispute.status.in_([s.value for s in sources]),
        )
        .values(status=target.value, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.refresh(dispute)
        raise InvalidStateError(
            f"Cannot move dispute to '{target.value}'", current_status=str(dispute.status)
        )

    await db.refresh(dispute)
    logger.info("Dispute %s: %s -> %s", dispute.id, previous.value, target.value)
    return previous


async def touch_activity(db: AsyncSession, dispute: Dispute, now: datetime | None = None) -> None:
    """Push the inactivity deadline forward after an evidence or comment write.

    Guarded on the active statuses so a write racing a closure cannot revive
    a closed dispute.
    """
    now = now or utcnow()
    stmt = (
        update(Dispute)
        .where(
            Dispute.id == dispute.id,
            Dispute.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
        .values(last_activity_at=now, auto_close_at=next_auto_close_at(now), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.refresh(dispute)
        raise InvalidStateError(
            "Dispute no longer accepts evidence or comments", current_status=str(dispute.status)
        )
    await db.refresh(dispute)
