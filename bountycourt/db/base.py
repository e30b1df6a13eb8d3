import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, event, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True
    )


class TimestampMixin(CreatedAtMixin):
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class BaseModel(Base, TimestampMixin):
    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )


class AppendOnlyModel(Base, CreatedAtMixin):
    """Rows that are written once and never updated (evidence, comments, audit)."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )


class AppendOnlyViolation(RuntimeError):
    pass


@event.listens_for(AppendOnlyModel, "before_update", propagate=True)
def _refuse_update(mapper, connection, target):
    raise AppendOnlyViolation(f"{type(target).__name__} rows are immutable")


@event.listens_for(AppendOnlyModel, "before_delete", propagate=True)
def _refuse_delete(mapper, connection, target):
    raise AppendOnlyViolation(f"{type(target).__name__} rows cannot be deleted")
