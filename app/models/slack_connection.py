from sqlalchemy import Column, String, JSON, DateTime
from sqlalchemy.orm import relationship
from enum import Enum
import sqlalchemy as sa

from .base import Base
from app.schemas.connection import GlobalSettings


class SlackConnectionStatus(str, Enum):
    ACTIVE = "active"
    UNINSTALLED = "uninstalled"


class SlackConnection(Base):
    """An installed Slack workspace"""

    __tablename__ = "slack_connections"

    # Workspace identity
    slack_team_id = Column(String(64), nullable=False, unique=True, index=True)
    app_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    domain = Column(String(255), nullable=True)  # <domain>.slack.com

    # Bot identity and encrypted bot token
    bot_user_id = Column(String(64), nullable=True)
    authed_user_id = Column(String(64), nullable=True)
    encrypted_token = Column(String(1024), nullable=False)

    status = Column(
        sa.Enum(SlackConnectionStatus),
        default=SlackConnectionStatus.ACTIVE,
        nullable=False,
    )

    # Subscription
    plan = Column(String(64), nullable=True)
    subscription_id = Column(String(255), nullable=True)
    subscription_period_end = Column(DateTime, nullable=True)

    # Workspace-wide sync defaults, see GlobalSettings
    global_settings = Column(JSON, nullable=True, default=dict)

    # Relationships
    zendesk_connection = relationship(
        "ZendeskConnection", back_populates="slack_connection", uselist=False
    )
    channels = relationship("Channel", back_populates="slack_connection")

    @property
    def settings(self) -> GlobalSettings:
        """Parsed global settings with defaults applied"""
        return GlobalSettings.model_validate(self.global_settings or {})

    @property
    def is_installed(self) -> bool:
        return self.status == SlackConnectionStatus.ACTIVE

    def __repr__(self):
        return f"<SlackConnection(team='{self.slack_team_id}', status='{self.status}')>"
