import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bountycourt.common.enums import CancellationStatus
from bountycourt.db.base import BaseModel


class Bounty(BaseModel):
    """Read model of the bounty row owned by the bounty subsystem."""

    __tablename__ = "bounties"

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    poster_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    hunter_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    is_for_honor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def escrowed_amount(self) -> int:
        """Integer minor units held in escrow; honor bounties escrow nothing."""
        if self.is_for_honor or not self.amount_cents or self.amount_cents < 0:
            return 0
        return self.amount_cents

    def is_party(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.poster_id, self.hunter_id)


class BountyCancellation(BaseModel):
    __tablename__ = "bounty_cancellations"

    bounty_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bounties.id"), nullable=False, index=True
    )
    requester_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[CancellationStatus] = mapped_column(
        String(20), nullable=False, default=CancellationStatus.PENDING
    )

    bounty = relationship("Bounty", lazy="selectin")
