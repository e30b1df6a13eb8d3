"""Notification delivery client.

Forwards dispute events to the notification service webhook when a real key
is configured, otherwise falls back to logging-only mock mode.
"""

from __future__ import annotations

from typing import Any

import httpx

from bountycourt.config import settings
from bountycourt.integrations.base import BaseIntegration


def _is_mock() -> bool:
    return settings.NOTIFICATION_API_KEY.startswith("mock_")


class NotificationClient(BaseIntegration):
    def __init__(self) -> None:
        super().__init__("notifier")

    async def health_check(self) -> bool:
        if _is_mock():
            self.logger.info("Notifier health check: OK (mock)")
            return True
        return bool(settings.NOTIFICATION_WEBHOOK_URL)

    async def notify(self, event: dict[str, Any]) -> dict[str, Any]:
        """Deliver ``{type, dispute_id, recipient_ids, payload}``.

        Never raises; the caller does not wait on delivery success.
        """
        if not _is_mock():
            try:
                async with httpx.AsyncClient(timeout=10) as client:
                    resp = await client.post(
                        settings.NOTIFICATION_WEBHOOK_URL,
                        headers={
                            "Authorization": f"Bearer {settings.NOTIFICATION_API_KEY}",
                            "Content-Type": "application/json",
                        },
                        json=event,
                    )
                    resp.raise_for_status()
                    self.logger.info(
                        "Notification sent: %s -> %d recipients",
                        event.get("type"),
                        len(event.get("recipient_ids", [])),
                    )
                    return {"status": "sent", "type": event.get("type")}
            except Exception as e:
                self.logger.error("Notification delivery failed: %s", e)
                return {"status": "failed", "error": str(e), "type": event.get("type")}

        self.logger.info(
            "Mock notification | type=%s | dispute=%s | to=%s",
            event.get("type"),
            event.get("dispute_id"),
            ",".join(event.get("recipient_ids", [])),
        )
        return {"status": "sent", "type": event.get("type")}
