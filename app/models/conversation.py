from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base


class Conversation(Base):
    """
    Correlation between a Slack thread and a Zendesk ticket.

    A thread maps to at most one ticket. When a reply lands on a closed
    ticket the follow-up ticket replaces ``zendesk_ticket_id`` on the same
    row, so the thread keeps a single correlation record.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "channel_id", "slack_parent_message_id", name="uq_conversations_channel_root"
        ),
        UniqueConstraint(
            "channel_id", "zendesk_ticket_id", name="uq_conversations_channel_ticket"
        ),
    )

    channel_id = Column(Integer, ForeignKey("channels.id"), nullable=False, index=True)
    channel = relationship("Channel", back_populates="conversations")

    # Thread anchor (Slack ts of the root message)
    slack_parent_message_id = Column(String(32), nullable=False)
    slack_author_user_id = Column(String(64), nullable=True)

    zendesk_ticket_id = Column(String(64), nullable=False)
    follow_up_source_ticket_id = Column(String(64), nullable=True)

    # Sent to Zendesk as the ticket external_id and echoed back on webhooks
    external_id = Column(String(64), nullable=False, unique=True, index=True)

    latest_slack_message_id = Column(String(32), nullable=True)

    merged_messages = relationship("MergedMessage", back_populates="conversation")

    @property
    def has_replies(self) -> bool:
        return self.latest_slack_message_id != self.slack_parent_message_id

    def __repr__(self):
        return f"<Conversation(root='{self.slack_parent_message_id}', ticket='{self.zendesk_ticket_id}')>"


class MergedMessage(Base):
    """
    Root message folded into an earlier conversation by the same-sender merge.

    The merged message keeps its own Slack ts but has no thread of its own
    in Zendesk. Redeliveries and thread replies resolve through this
    row to the conversation that holds its text.
    """

    __tablename__ = "merged_messages"
    __table_args__ = (
        UniqueConstraint("channel_id", "slack_message_id", name="uq_merged_messages_channel_message"),
    )

    channel_id = Column(Integer, ForeignKey("channels.id"), nullable=False, index=True)
    slack_message_id = Column(String(32), nullable=False)

    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    conversation = relationship("Conversation", back_populates="merged_messages")

    def __repr__(self):
        return f"<MergedMessage(ts='{self.slack_message_id}', conversation={self.conversation_id})>"
