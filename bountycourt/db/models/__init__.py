from bountycourt.db.models.appeal import DisputeAppeal
from bountycourt.db.models.audit import DisputeAuditEntry
from bountycourt.db.models.bounty import Bounty, BountyCancellation
from bountycourt.db.models.comment import DisputeComment
from bountycourt.db.models.dispute import Dispute
from bountycourt.db.models.evidence import DisputeEvidence
from bountycourt.db.models.resolution import DisputeResolution

__all__ = [
    "Bounty",
    "BountyCancellation",
    "Dispute",
    "DisputeAppeal",
    "DisputeAuditEntry",
    "DisputeComment",
    "DisputeEvidence",
    "DisputeResolution",
]
