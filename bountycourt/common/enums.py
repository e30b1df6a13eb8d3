import enum


class ActorRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class ActorType(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"


class CancellationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DISPUTED = "disputed"


class EvidenceKind(str, enum.Enum):
    TEXT = "text"
    LINK = "link"
    MEDIA = "media"


class MediaType(str, enum.Enum):
    IMAGE = "image"
    DOCUMENT = "document"


class ResolutionOutcome(str, enum.Enum):
    RELEASE = "release"
    REFUND = "refund"
    SPLIT = "split"
    OTHER = "other"


class SettlementStatus(str, enum.Enum):
    PENDING_SETTLEMENT = "pending_settlement"
    SETTLED = "settled"
    NOT_REQUIRED = "not_required"


class AppealStatus(str, enum.Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AppealDecision(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AuditAction(str, enum.Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    EVIDENCE_ADDED = "evidence_added"
    COMMENT_ADDED = "comment_added"
    RESOLUTION_DECISION = "resolution_decision"
    SETTLEMENT_COMPLETED = "settlement_completed"
    SETTLEMENT_FAILED = "settlement_failed"
    CLOSED = "closed"
    AUTO_CLOSED = "auto_closed"
    ESCALATED = "escalated"
    APPEAL_CREATED = "appeal_created"
    APPEAL_REVIEW_STARTED = "appeal_review_started"
    APPEAL_ACCEPTED = "appeal_accepted"
    APPEAL_REJECTED = "appeal_rejected"


class NotificationType(str, enum.Enum):
    DISPUTE_CREATED = "dispute_created"
    DISPUTE_UNDER_REVIEW = "dispute_under_review"
    EVIDENCE_ADDED = "dispute_evidence_added"
    COMMENT_ADDED = "dispute_comment_added"
    DISPUTE_RESOLVED = "dispute_resolved"
    DISPUTE_CLOSED = "dispute_closed"
    DISPUTE_AUTO_CLOSED = "dispute_auto_closed"
    DISPUTE_ESCALATED = "dispute_escalated"
    DISPUTE_REOPENED = "dispute_reopened"
    APPEAL_CREATED = "appeal_created"
    APPEAL_REJECTED = "appeal_rejected"
    SETTLEMENT_FAILED = "settlement_failed"
