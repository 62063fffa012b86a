"""Create relay tables

Revision ID: create_relay_tables
Revises:
Create Date: 2026-10-15

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "create_relay_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "chat_threads",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("event_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "is_default_event_thread",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_threads_event_id", "chat_threads", ["event_id"])
    op.create_index(
        "ix_chat_threads_event_default",
        "chat_threads",
        ["event_id", "is_default_event_thread"],
    )

    op.create_table(
        "channel_mappings",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("event_id", sa.UUID(), nullable=True),
        sa.Column("chat_thread_id", sa.UUID(), nullable=True),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("external_group_id", sa.String(512), nullable=False),
        sa.Column("external_group_name", sa.String(255), nullable=False),
        sa.Column("share_url", sa.String(1024), nullable=True),
        sa.Column("bot_id", sa.String(255), nullable=True),
        sa.Column("webhook_secret", sa.String(255), nullable=False),
        sa.Column("conversation_reference", sa.Text(), nullable=True),
        sa.Column("tenant_id", sa.String(255), nullable=True),
        sa.Column("installed_by_name", sa.String(255), nullable=True),
        sa.Column(
            "is_emulator_or_test",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("modified_by", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["chat_thread_id"], ["chat_threads.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_channel_mappings_active_platform_group",
        "channel_mappings",
        ["platform", "external_group_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index(
        "ix_channel_mappings_event_active",
        "channel_mappings",
        ["event_id", "is_active"],
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("chat_thread_id", sa.UUID(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("external_source", sa.String(32), nullable=True),
        sa.Column("external_message_id", sa.String(255), nullable=True),
        sa.Column("external_sender_name", sa.String(255), nullable=True),
        sa.Column("external_sender_id", sa.String(255), nullable=True),
        sa.Column("external_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("external_attachment_url", sa.String(2048), nullable=True),
        sa.Column("external_channel_mapping_id", sa.UUID(), nullable=True),
        sa.Column("promoted_to_logbook_id", sa.UUID(), nullable=True),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoted_by", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["chat_thread_id"], ["chat_threads.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["external_channel_mapping_id"],
            ["channel_mappings.id"],
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "external_message_id",
            "chat_thread_id",
            name="uq_chat_messages_external_message_thread",
        ),
    )
    op.create_index(
        "ix_chat_messages_chat_thread_id", "chat_messages", ["chat_thread_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_chat_messages_chat_thread_id", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_channel_mappings_event_active", table_name="channel_mappings")
    op.drop_index(
        "uq_channel_mappings_active_platform_group", table_name="channel_mappings"
    )
    op.drop_table("channel_mappings")
    op.drop_index("ix_chat_threads_event_default", table_name="chat_threads")
    op.drop_index("ix_chat_threads_event_id", table_name="chat_threads")
    op.drop_table("chat_threads")
