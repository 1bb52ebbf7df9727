"""Initial migration - create all tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create slack_connections table
    op.create_table(
        "slack_connections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("slack_team_id", sa.String(length=64), nullable=False),
        sa.Column("app_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("domain", sa.String(length=255), nullable=True),
        sa.Column("bot_user_id", sa.String(length=64), nullable=True),
        sa.Column("authed_user_id", sa.String(length=64), nullable=True),
        sa.Column("encrypted_token", sa.String(length=1024), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "UNINSTALLED", name="slackconnectionstatus"),
            nullable=False,
        ),
        sa.Column("plan", sa.String(length=64), nullable=True),
        sa.Column("subscription_id", sa.String(length=255), nullable=True),
        sa.Column("subscription_period_end", sa.DateTime(), nullable=True),
        sa.Column("global_settings", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_slack_connections_id"), "slack_connections", ["id"], unique=False)
    op.create_index(
        op.f("ix_slack_connections_slack_team_id"), "slack_connections", ["slack_team_id"], unique=True
    )
    op.create_index(op.f("ix_slack_connections_app_id"), "slack_connections", ["app_id"], unique=True)

    # Create zendesk_connections table
    op.create_table(
        "zendesk_connections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("slack_connection_id", sa.Integer(), nullable=False),
        sa.Column("zendesk_domain", sa.String(length=255), nullable=False),
        sa.Column("zendesk_email", sa.String(length=255), nullable=False),
        sa.Column("encrypted_api_key", sa.String(length=1024), nullable=False),
        sa.Column("webhook_public_id", sa.String(length=64), nullable=False),
        sa.Column("hashed_webhook_bearer_token", sa.String(length=255), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "INACTIVE", name="zendeskconnectionstatus"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["slack_connection_id"], ["slack_connections.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slack_connection_id"),
    )
    op.create_index(op.f("ix_zendesk_connections_id"), "zendesk_connections", ["id"], unique=False)
    op.create_index(
        op.f("ix_zendesk_connections_webhook_public_id"),
        "zendesk_connections",
        ["webhook_public_id"],
        unique=True,
    )

    # Create channels table
    op.create_table(
        "channels",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("slack_connection_id", sa.Integer(), nullable=False),
        sa.Column("slack_channel_identifier", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column(
            "type",
            sa.Enum("PUBLIC", "PRIVATE", "DM", "GROUP_DM", name="channeltype"),
            nullable=True,
        ),
        sa.Column("is_member", sa.Boolean(), nullable=False),
        sa.Column("is_shared", sa.Boolean(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "PENDING_UPGRADE", name="channelstatus"),
            nullable=False,
        ),
        sa.Column("default_assignee_email", sa.String(length=255), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("latest_activity_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["slack_connection_id"], ["slack_connections.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "slack_connection_id",
            "slack_channel_identifier",
            name="uq_channels_connection_identifier",
        ),
    )
    op.create_index(op.f("ix_channels_id"), "channels", ["id"], unique=False)
    op.create_index(
        op.f("ix_channels_slack_connection_id"), "channels", ["slack_connection_id"], unique=False
    )

    # Create conversations table
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("channel_id", sa.Integer(), nullable=False),
        sa.Column("slack_parent_message_id", sa.String(length=32), nullable=False),
        sa.Column("slack_author_user_id", sa.String(length=64), nullable=True),
        sa.Column("zendesk_ticket_id", sa.String(length=64), nullable=False),
        sa.Column("follow_up_source_ticket_id", sa.String(length=64), nullable=True),
        sa.Column("external_id", sa.String(length=64), nullable=False),
        sa.Column("latest_slack_message_id", sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(["channel_id"], ["channels.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "channel_id", "slack_parent_message_id", name="uq_conversations_channel_root"
        ),
        sa.UniqueConstraint(
            "channel_id", "zendesk_ticket_id", name="uq_conversations_channel_ticket"
        ),
    )
    op.create_index(op.f("ix_conversations_id"), "conversations", ["id"], unique=False)
    op.create_index(
        op.f("ix_conversations_channel_id"), "conversations", ["channel_id"], unique=False
    )
    op.create_index(
        op.f("ix_conversations_external_id"), "conversations", ["external_id"], unique=True
    )

    # Create merged_messages table
    op.create_table(
        "merged_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("channel_id", sa.Integer(), nullable=False),
        sa.Column("slack_message_id", sa.String(length=32), nullable=False),
        sa.Column("conversation_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["channel_id"], ["channels.id"]),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "channel_id", "slack_message_id", name="uq_merged_messages_channel_message"
        ),
    )
    op.create_index(op.f("ix_merged_messages_id"), "merged_messages", ["id"], unique=False)
    op.create_index(
        op.f("ix_merged_messages_channel_id"), "merged_messages", ["channel_id"], unique=False
    )
    op.create_index(
        op.f("ix_merged_messages_conversation_id"), "merged_messages", ["conversation_id"], unique=False
    )


def downgrade() -> None:
    op.drop_table("merged_messages")
    op.drop_table("conversations")
    op.drop_table("channels")
    op.drop_table("zendesk_connections")
    op.drop_table("slack_connections")
