"""Outbox events table for the notification relay.

- outbox_events: durable queue of serialized notification envelopes
- Partial index on created_at for pending rows (claim query order)
- failed_attempts >= 0 check
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20250301_0001_outbox_events"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # gen_random_uuid() is built in from PG13; pgcrypto covers older servers
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.create_table(
        "outbox_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("event_type", sa.String(255), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.CheckConstraint("failed_attempts >= 0", name="chk_outbox_events__failed_attempts"),
    )

    op.create_index(
        "ix_outbox_events__pending",
        "outbox_events",
        ["created_at"],
        postgresql_where=sa.text("published_at IS NULL"),
    )


def downgrade():
    op.drop_index("ix_outbox_events__pending", table_name="outbox_events")
    op.drop_table("outbox_events")
