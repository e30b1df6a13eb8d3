"""Initial schema - bounties, cancellations and the dispute tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

APPEND_ONLY_TABLES = ("dispute_evidence", "dispute_comments", "dispute_audit_log")


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            )
        )
    return columns


def upgrade() -> None:
    # Bounties (owned by the bounty subsystem)
    op.create_table(
        "bounties",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("poster_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("hunter_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("amount_cents", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("is_for_honor", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )

    op.create_table(
        "bounty_cancellations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "bounty_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bounties.id"), nullable=False, index=True
        ),
        sa.Column("requester_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reason", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        *_timestamps(),
    )

    # Disputes
    op.create_table(
        "disputes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "cancellation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bounty_cancellations.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "bounty_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bounties.id"), nullable=False, index=True
        ),
        sa.Column("initiator_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open", index=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("auto_close_at", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("escalated", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_reason", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_disputes_queue", "disputes", ["escalated", "escalated_at", "created_at"])

    op.create_table(
        "dispute_evidence",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "dispute_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("disputes.id"), nullable=False, index=True
        ),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "dispute_comments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "dispute_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("disputes.id"), nullable=False, index=True
        ),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("internal", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_timestamps(updated=False),
    )

    op.create_table(
        "dispute_resolutions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "dispute_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("disputes.id"), nullable=False, index=True
        ),
        sa.Column("admin_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("escrow_amount", sa.Integer, nullable=False),
        sa.Column("amount_to_hunter", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("amount_to_poster", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("rationale", sa.Text, nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "settlement_status", sa.String(30), nullable=False, server_default="pending_settlement", index=True
        ),
        sa.Column("settlement_reference", sa.String(255), nullable=True),
        sa.Column("settlement_attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_settlement_error", sa.Text, nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "amount_to_hunter + amount_to_poster = escrow_amount", name="ck_resolution_conserves_escrow"
        ),
        *_timestamps(),
    )
    op.create_index(
        "uq_dispute_resolutions_active",
        "dispute_resolutions",
        ["dispute_id"],
        unique=True,
        postgresql_where=sa.text("superseded_at IS NULL"),
    )

    op.create_table(
        "dispute_appeals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "dispute_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("disputes.id"), nullable=False, unique=True
        ),
        sa.Column(
            "resolution_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("dispute_resolutions.id"),
            nullable=False,
        ),
        sa.Column("appellant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("evidence_refs", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("review_notes", sa.Text, nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # Audit log keeps a plain dispute_id so entries outlive the dispute row
    op.create_table(
        "dispute_audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("dispute_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("actor_type", sa.String(10), nullable=False),
        sa.Column("details", postgresql.JSONB, nullable=True),
        *_timestamps(updated=False),
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION refuse_append_only_change() RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '% rows are append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for table in APPEND_ONLY_TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_append_only BEFORE UPDATE OR DELETE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION refuse_append_only_change();"
        )


def downgrade() -> None:
    for table in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table};")
    op.execute("DROP FUNCTION IF EXISTS refuse_append_only_change();")
    op.drop_table("dispute_audit_log")
    op.drop_table("dispute_appeals")
    op.drop_index("uq_dispute_resolutions_active", table_name="dispute_resolutions")
    op.drop_table("dispute_resolutions")
    op.drop_table("dispute_comments")
    op.drop_table("dispute_evidence")
    op.drop_index("ix_disputes_queue", table_name="disputes")
    op.drop_table("disputes")
    op.drop_table("bounty_cancellations")
    op.drop_table("bounties")
