"""Escrow settlement rails client.

Posts payout instructions to the payments service when a real key is
configured, otherwise returns deterministic mock receipts for development.
Every call carries an idempotency key built from the dispute and resolution
ids, so a retried payout is never applied twice.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel

from bountycourt.common.exceptions import SettlementError
from bountycourt.config import settings
from bountycourt.integrations.base import BaseIntegration


def _is_mock() -> bool:
    return settings.SETTLEMENT_API_KEY.startswith("mock_")


def idempotency_key(dispute_id: uuid.UUID | str, resolution_id: uuid.UUID | str) -> str:
    return f"dispute:{dispute_id}:resolution:{resolution_id}"


class SettlementReceipt(BaseModel):
    settlement_id: str
    dispute_id: str
    resolution_id: str
    status: str
    allocations: list[dict[str, Any]]
    processed_at: str


class SettlementClient(BaseIntegration):
    """Client for the settlement interface with a mock fallback."""

    def __init__(self) -> None:
        super().__init__("settlement")

    def _headers(self, key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.SETTLEMENT_API_KEY}",
            "Idempotency-Key": key,
        }

    async def health_check(self) -> bool:
        if _is_mock():
            self.logger.info("Settlement health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(
                    f"{settings.SETTLEMENT_API_URL}/health",
                    headers={"Authorization": f"Bearer {settings.SETTLEMENT_API_KEY}"},
                )
                return resp.status_code == 200
        except Exception as e:
            self.logger.error("Settlement health check failed: %s", e)
            return False

    async def settle(
        self,
        dispute_id: uuid.UUID | str,
        resolution_id: uuid.UUID | str,
        allocations: list[dict[str, Any]],
    ) -> SettlementReceipt:
        """Release escrow according to ``allocations`` ([{party_id, amount}]).

        Raises ``SettlementError`` on any transport or rails failure.
        """
        key = idempotency_key(dispute_id, resolution_id)
        payload = {
            "dispute_id": str(dispute_id),
            "resolution_id": str(resolution_id),
            "allocations": [
                {"party_id": str(a["party_id"]), "amount": int(a["amount"])} for a in allocations
            ],
        }

        if not _is_mock():
            try:
                async with httpx.AsyncClient(timeout=30) as client:
                    resp = await client.post(
                        f"{settings.SETTLEMENT_API_URL}/settlements",
                        headers=self._headers(key),
                        json=payload,
                    )
                    resp.raise_for_status()
                    data = resp.json()
            except httpx.HTTPStatusError as e:
                self.logger.error(
                    "Settlement rejected for %s: HTTP %d", key, e.response.status_code
                )
                raise SettlementError(f"HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                self.logger.error("Settlement transport error for %s: %s", key, e)
                raise SettlementError(str(e)) from e

            self.logger.info("Settlement accepted: %s (%s)", data.get("id"), key)
            return SettlementReceipt(
                settlement_id=str(data.get("id")),
                dispute_id=payload["dispute_id"],
                resolution_id=payload["resolution_id"],
                status=data.get("status", "completed"),
                allocations=payload["allocations"],
                processed_at=data.get("processed_at") or datetime.now(timezone.utc).isoformat(),
            )

        # Same key, same settlement id: mirrors the rails' idempotent replay
        settlement_id = f"stl_{uuid.uuid5(uuid.NAMESPACE_URL, key).hex[:20]}"
        self.logger.info("Mock settlement %s for %s: %s", settlement_id, key, payload["allocations"])
        return SettlementReceipt(
            settlement_id=settlement_id,
            dispute_id=payload["dispute_id"],
            resolution_id=payload["resolution_id"],
            status="completed",
            allocations=payload["allocations"],
            processed_at=datetime.now(timezone.utc).isoformat(),
        )
