"""Outbound dispute events handed to the notification collaborator."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field

from bountycourt.common.enums import NotificationType
from bountycourt.common.logging import get_logger

logger = get_logger("events")


class DisputeEvent(BaseModel):
    type: NotificationType
    dispute_id: uuid.UUID
    recipient_ids: list[str] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)


async def emit(event: DisputeEvent) -> None:
    """Hand an event to the notification service.

    Fire-and-forget: delivery failures are logged and never reach the caller.
    """
    if not event.recipient_ids:
        logger.debug("Event %s for dispute %s has no recipients", event.type.value, event.dispute_id)
        return
    try:
        from bountycourt.integrations.notifier import NotificationClient

        await NotificationClient().notify(event.model_dump(mode="json"))
    except Exception as e:
        logger.warning("Event emit failed (non-critical): %s %s: %s", event.type.value, event.dispute_id, e)
