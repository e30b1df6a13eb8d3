import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bountycourt.common.enums import ResolutionOutcome, SettlementStatus
from bountycourt.db.base import BaseModel, utcnow


class DisputeResolution(BaseModel):
    __tablename__ = "dispute_resolutions"
    __table_args__ = (
        # At most one live decision per dispute; superseded ones stay as history
        Index(
            "uq_dispute_resolutions_active",
            "dispute_id",
            unique=True,
            postgresql_where=text("superseded_at IS NULL"),
            sqlite_where=text("superseded_at IS NULL"),
        ),
    )

    dispute_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("disputes.id"), nullable=False, index=True
    )
    admin_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    outcome: Mapped[ResolutionOutcome] = mapped_column(String(20), nullable=False)
    escrow_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_to_hunter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_to_poster: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True, default=dict)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Settlement bookkeeping, the only columns that change after the decision
    settlement_status: Mapped[SettlementStatus] = mapped_column(
        String(30), nullable=False, default=SettlementStatus.PENDING_SETTLEMENT, index=True
    )
    settlement_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    settlement_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_settlement_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    dispute = relationship("Dispute", back_populates="resolutions")
