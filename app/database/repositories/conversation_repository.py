"""
Correlation store: which Zendesk ticket belongs to which Slack thread
"""

from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models.conversation import Conversation, MergedMessage
from app.database.repositories.base_repository import BaseRepository
import logging

logger = logging.getLogger(__name__)


def _ts_value(ts: Optional[str]) -> Optional[Decimal]:
    """Slack timestamps are decimal strings; compare them numerically"""
    if ts is None:
        return None
    try:
        return Decimal(ts)
    except InvalidOperation:
        return None


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for thread to ticket correlation records"""

    def __init__(self, db: Session):
        super().__init__(Conversation, db)

    def find_by_root_message(self, channel_id: int, root_message_id: str) -> Optional[Conversation]:
        return self.db.query(Conversation).filter(
            Conversation.channel_id == channel_id,
            Conversation.slack_parent_message_id == root_message_id,
        ).first()

    def find_by_external_id(self, external_id: str) -> Optional[Conversation]:
        return self.db.query(Conversation).filter(Conversation.external_id == external_id).first()

    def find_latest_in_channel(self, channel_id: int) -> Optional[Conversation]:
        """Most recently created conversation in a channel"""
        return self.db.query(Conversation).filter(
            Conversation.channel_id == channel_id
        ).order_by(Conversation.created_at.desc(), Conversation.id.desc()).first()

    def find_by_merged_message(self, channel_id: int, message_id: str) -> Optional[Conversation]:
        """Conversation a root message was merged into, if any"""
        merged = self.db.query(MergedMessage).filter(
            MergedMessage.channel_id == channel_id,
            MergedMessage.slack_message_id == message_id,
        ).first()
        return merged.conversation if merged else None

    def find_by_thread(self, channel_id: int, thread_id: str) -> Optional[Conversation]:
        """
        Conversation holding the message ``thread_id``, either as its root
        or as a message merged into it.
        """
        return self.find_by_root_message(channel_id, thread_id) or self.find_by_merged_message(channel_id, thread_id)

    def record_merged_message(self, conversation: Conversation, message_id: str) -> Conversation:
        """
        Pin a root message to the conversation it was merged into.

        If a concurrent delivery already pinned the message, the conversation
        it was pinned to is returned instead.
        """
        try:
            self.db.add(MergedMessage(
                channel_id=conversation.channel_id,
                slack_message_id=message_id,
                conversation_id=conversation.id,
            ))
            self.db.commit()
            return conversation
        except IntegrityError:
            self.db.rollback()
            existing = self.find_by_merged_message(conversation.channel_id, message_id)
            if existing is None:
                raise
            logger.warning(
                f"Message {message_id} in channel {conversation.channel_id} already merged "
                f"into conversation {existing.id}"
            )
            return existing
        except SQLAlchemyError as e:
            logger.error(f"Error recording merged message {message_id}: {e}")
            self.db.rollback()
            raise

    def insert_conversation(
        self,
        channel_id: int,
        root_message_id: str,
        zendesk_ticket_id: str,
        external_id: str,
        author_user_id: Optional[str],
    ) -> Conversation:
        """
        Record a new thread to ticket link.

        If a concurrent delivery of the same root message already inserted
        the row, that row is returned instead. Both deliveries used the same
        ticket idempotency key, so they point at the same ticket.
        """
        try:
            return self.create({
                "channel_id": channel_id,
                "slack_parent_message_id": root_message_id,
                "zendesk_ticket_id": str(zendesk_ticket_id),
                "external_id": external_id,
                "slack_author_user_id": author_user_id,
                "latest_slack_message_id": root_message_id,
            })
        except IntegrityError:
            existing = self.find_by_root_message(channel_id, root_message_id)
            if existing is None:
                raise
            logger.warning(
                f"Conversation for root {root_message_id} in channel {channel_id} already exists "
                f"(ticket {existing.zendesk_ticket_id})"
            )
            return existing

    def update_ticket_id(
        self,
        conversation: Conversation,
        zendesk_ticket_id: str,
        latest_message_id: str,
    ) -> Conversation:
        """Supersede the linked ticket in place with its follow-up"""
        logger.info(
            f"Conversation {conversation.id} moves from ticket {conversation.zendesk_ticket_id} "
            f"to follow-up {zendesk_ticket_id}"
        )
        return self.update(conversation, {
            "follow_up_source_ticket_id": conversation.zendesk_ticket_id,
            "zendesk_ticket_id": str(zendesk_ticket_id),
            "latest_slack_message_id": latest_message_id,
        })

    def update_last_synced(self, conversation: Conversation, message_id: str) -> bool:
        """
        Advance the last-synced pointer.

        Only moves forward in time, so a late redelivery of an older message
        leaves the pointer alone. Returns True when the row changed.
        """
        current = _ts_value(conversation.latest_slack_message_id)
        candidate = _ts_value(message_id)
        if candidate is None:
            return False
        if current is not None and candidate <= current:
            return False

        self.update(conversation, {"latest_slack_message_id": message_id})
        return True
