import uuid

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from bountycourt.common.enums import ActorType
from bountycourt.db.base import AppendOnlyModel


class DisputeAuditEntry(AppendOnlyModel):
    __tablename__ = "dispute_audit_log"

    # Weak reference: the audit trail outlives the dispute row
    dispute_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    actor_type: Mapped[ActorType] = mapped_column(String(10), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
