import uuid
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from bountycourt.common.exceptions import SettlementError
from bountycourt.config import settings
from bountycourt.integrations.notifier import NotificationClient
from bountycourt.integrations.settlement import SettlementClient, idempotency_key


# These tests exercise the real clients, so the suite-wide mocks are disabled here.
@pytest.fixture(autouse=True)
def settlement():
    yield None


@pytest.fixture(autouse=True)
def notifications():
    yield None


async def test_mock_settlement_receipt():
    dispute_id, resolution_id, party = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    receipt = await SettlementClient().settle(
        dispute_id, resolution_id, [{"party_id": party, "amount": 2500}]
    )

    assert receipt.dispute_id == str(dispute_id)
    assert receipt.resolution_id == str(resolution_id)
    assert receipt.allocations == [{"party_id": str(party), "amount": 2500}]


def test_idempotency_key_is_stable():
    dispute_id, resolution_id = uuid.uuid4(), uuid.uuid4()
    assert idempotency_key(dispute_id, resolution_id) == idempotency_key(str(dispute_id), str(resolution_id))


async def test_settlement_transport_error_is_wrapped(monkeypatch):
    monkeypatch.setattr(settings, "SETTLEMENT_API_KEY", "sk_live_test")

    with patch(
        "httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=httpx.ConnectError("refused")
    ):
        with pytest.raises(SettlementError):
            await SettlementClient().settle(uuid.uuid4(), uuid.uuid4(), [])


async def test_settlement_sends_idempotency_key(monkeypatch):
    monkeypatch.setattr(settings, "SETTLEMENT_API_KEY", "sk_live_test")
    dispute_id, resolution_id = uuid.uuid4(), uuid.uuid4()
    response = httpx.Response(
        200,
        json={"id": "stl_1", "status": "completed"},
        request=httpx.Request("POST", f"{settings.SETTLEMENT_API_URL}/settlements"),
    )

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response) as post:
        receipt = await SettlementClient().settle(dispute_id, resolution_id, [])

    assert receipt.settlement_id == "stl_1"
    assert post.call_args.kwargs["headers"]["Idempotency-Key"] == idempotency_key(dispute_id, resolution_id)


async def test_notification_failure_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATION_API_KEY", "live_key")

    with patch(
        "httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=httpx.ConnectError("down")
    ):
        result = await NotificationClient().notify(
            {"type": "dispute_created", "dispute_id": "d1", "recipient_ids": ["u1"], "payload": {}}
        )

    assert result["status"] == "failed"


async def test_health_checks_in_mock_mode():
    assert await SettlementClient().health_check() is True
    assert await NotificationClient().health_check() is True
