"""Notification fan-out schema: profiles, notifications, fanout_entries, subscriptions.

- profiles: known user ids; broadcast resolves against this table.
- notifications: canonical content (title, body, sender_label), independent of recipients.
- fanout_entries: one row per (notification, recipient) with read state; unique on the pair,
  cascades when a notification is deleted. Index supports "my unread count".
- subscriptions: push endpoints; unique on (recipient_id, transport, endpoint_key) where
  endpoint_key = sha256(canonical endpoint_descriptor).
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("sender_label", sa.String(256), nullable=False, server_default="System"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)

    op.create_table(
        "fanout_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("notification_id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.String(64), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["notification_id"], ["notifications.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("notification_id", "recipient_id", name="uq_fanout_entries_notification_recipient"),
    )
    op.create_index("ix_fanout_entries_notification_id", "fanout_entries", ["notification_id"], unique=False)
    op.create_index("ix_fanout_entries_recipient_id", "fanout_entries", ["recipient_id"], unique=False)
    op.create_index("ix_fanout_entries_recipient_read", "fanout_entries", ["recipient_id", "is_read"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recipient_id", sa.String(64), nullable=False),
        sa.Column("transport", sa.String(32), nullable=False),
        sa.Column("endpoint_descriptor", sa.Text(), nullable=False),
        sa.Column("endpoint_key", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "recipient_id", "transport", "endpoint_key", name="uq_subscriptions_recipient_transport_endpoint"
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_subscriptions_recipient_id", "subscriptions", ["recipient_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_subscriptions_recipient_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_fanout_entries_recipient_read", table_name="fanout_entries")
    op.drop_index("ix_fanout_entries_recipient_id", table_name="fanout_entries")
    op.drop_index("ix_fanout_entries_notification_id", table_name="fanout_entries")
    op.drop_table("fanout_entries")
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("profiles")
