from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from enum import Enum
import sqlalchemy as sa

from .base import Base


class ZendeskConnectionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ZendeskConnection(Base):
    """Zendesk credentials for one Slack workspace"""

    __tablename__ = "zendesk_connections"

    slack_connection_id = Column(
        Integer, ForeignKey("slack_connections.id"), nullable=False, unique=True
    )
    slack_connection = relationship("SlackConnection", back_populates="zendesk_connection")

    zendesk_domain = Column(String(255), nullable=False)  # <domain>.zendesk.com
    zendesk_email = Column(String(255), nullable=False)
    encrypted_api_key = Column(String(1024), nullable=False)

    # Inbound webhook authentication
    webhook_public_id = Column(String(64), nullable=False, unique=True, index=True)
    hashed_webhook_bearer_token = Column(String(255), nullable=False)

    status = Column(
        sa.Enum(ZendeskConnectionStatus),
        default=ZendeskConnectionStatus.ACTIVE,
        nullable=False,
    )

    def __repr__(self):
        return f"<ZendeskConnection(domain='{self.zendesk_domain}', status='{self.status}')>"
