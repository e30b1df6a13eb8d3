"""Recipient selection for dispute notifications."""

from __future__ import annotations

import uuid
from typing import Any, Iterable

from bountycourt.common.enums import NotificationType
from bountycourt.common.events import DisputeEvent, emit
from bountycourt.config import settings
from bountycourt.db.models.dispute import Dispute


def _ids(values: Iterable[uuid.UUID | str | None], exclude: uuid.UUID | None = None) -> list[str]:
    seen = []
    for value in values:
        if value is None or value == exclude:
            continue
        text = str(value)
        if text not in seen:
            seen.append(text)
    return seen


async def notify_parties(
    dispute: Dispute,
    notification_type: NotificationType,
    payload: dict[str, Any] | None = None,
    exclude: uuid.UUID | None = None,
) -> None:
    """Notify the initiator, poster and hunter, skipping the acting user."""
    await emit(
        DisputeEvent(
            type=notification_type,
            dispute_id=dispute.id,
            recipient_ids=_ids(dispute.party_ids(), exclude=exclude),
            payload={"bounty_id": str(dispute.bounty_id), **(payload or {})},
        )
    )


async def notify_initiator(
    dispute: Dispute,
    notification_type: NotificationType,
    payload: dict[str, Any] | None = None,
) -> None:
    await emit(
        DisputeEvent(
            type=notification_type,
            dispute_id=dispute.id,
            recipient_ids=[str(dispute.initiator_id)],
            payload={"bounty_id": str(dispute.bounty_id), **(payload or {})},
        )
    )


async def notify_admins(
    dispute: Dispute,
    notification_type: NotificationType,
    payload: dict[str, Any] | None = None,
    priority: str = "normal",
) -> None:
    await emit(
        DisputeEvent(
            type=notification_type,
            dispute_id=dispute.id,
            recipient_ids=settings.admin_notify_ids,
            payload={"bounty_id": str(dispute.bounty_id), "priority": priority, **(payload or {})},
        )
    )
