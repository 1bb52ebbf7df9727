from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    JSON,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from enum import Enum
import sqlalchemy as sa

from .base import Base


class ChannelType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    DM = "dm"
    GROUP_DM = "group_dm"


class ChannelStatus(str, Enum):
    ACTIVE = "active"
    PENDING_UPGRADE = "pending_upgrade"


class Channel(Base):
    """A Slack channel the bot has been invited to"""

    __tablename__ = "channels"
    __table_args__ = (
        UniqueConstraint(
            "slack_connection_id",
            "slack_channel_identifier",
            name="uq_channels_connection_identifier",
        ),
    )

    slack_connection_id = Column(
        Integer, ForeignKey("slack_connections.id"), nullable=False, index=True
    )
    slack_connection = relationship("SlackConnection", back_populates="channels")

    # Rewritten in place when Slack reassigns the channel id
    slack_channel_identifier = Column(String(64), nullable=False)

    name = Column(String(255), nullable=True)
    type = Column(sa.Enum(ChannelType), nullable=True)
    is_member = Column(Boolean, default=True, nullable=False)
    is_shared = Column(Boolean, default=False, nullable=False)
    status = Column(sa.Enum(ChannelStatus), default=ChannelStatus.ACTIVE, nullable=False)

    # Per-channel overrides of the workspace defaults
    default_assignee_email = Column(String(255), nullable=True)
    tags = Column(JSON, nullable=True, default=list)

    latest_activity_at = Column(DateTime, nullable=True)

    conversations = relationship("Conversation", back_populates="channel")

    @property
    def is_eligible_for_messaging(self) -> bool:
        return bool(self.is_member) and self.status != ChannelStatus.PENDING_UPGRADE

    def __repr__(self):
        return f"<Channel(id='{self.slack_channel_identifier}', status='{self.status}', member={self.is_member})>"
