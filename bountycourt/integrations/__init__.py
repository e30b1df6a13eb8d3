"""Clients for the collaborators the dispute engine calls out to.

Each client talks to the real service when credentials are configured and
falls back to a logging-only mock when the key starts with ``mock_``.
"""

from bountycourt.integrations.base import BaseIntegration
from bountycourt.integrations.notifier import NotificationClient
from bountycourt.integrations.settlement import SettlementClient, SettlementReceipt

__all__ = [
    "BaseIntegration",
    "NotificationClient",
    "SettlementClient",
    "SettlementReceipt",
]
