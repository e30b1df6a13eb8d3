import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bountycourt.common.enums import DisputeStatus
from bountycourt.db.base import BaseModel


class Dispute(BaseModel):
    __tablename__ = "disputes"

    cancellation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bounty_cancellations.id"), nullable=False, unique=True
    )
    bounty_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bounties.id"), nullable=False, index=True
    )
    initiator_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[DisputeStatus] = mapped_column(
        String(20), nullable=False, default=DisputeStatus.OPEN, index=True
    )
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    auto_close_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    bounty = relationship("Bounty", lazy="selectin")
    cancellation = relationship("BountyCancellation", lazy="selectin")
    evidence = relationship(
        "DisputeEvidence", back_populates="dispute", order_by="DisputeEvidence.created_at", lazy="raise"
    )
    comments = relationship(
        "DisputeComment", back_populates="dispute", order_by="DisputeComment.created_at", lazy="raise"
    )
    resolutions = relationship(
        "DisputeResolution", back_populates="dispute", order_by="DisputeResolution.decided_at", lazy="raise"
    )
    appeal = relationship("DisputeAppeal", back_populates="dispute", uselist=False, lazy="raise")

    def is_party(self, user_id: uuid.UUID) -> bool:
        if user_id == self.initiator_id:
            return True
        return self.bounty is not None and self.bounty.is_party(user_id)

    def party_ids(self) -> list[uuid.UUID]:
        ids = [self.initiator_id]
        if self.bounty is not None:
            ids.extend(i for i in (self.bounty.poster_id, self.bounty.hunter_id) if i is not None)
        return list(dict.fromkeys(ids))
