from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models.channel import Channel, ChannelStatus
from app.database.repositories.base_repository import BaseRepository
import logging

logger = logging.getLogger(__name__)


class ChannelRepository(BaseRepository[Channel]):
    """Repository for Slack channels tracked per workspace"""

    def __init__(self, db: Session):
        super().__init__(Channel, db)

    def get_by_identifier(self, slack_connection_id: int, slack_channel_identifier: str) -> Optional[Channel]:
        return self.db.query(Channel).filter(
            Channel.slack_connection_id == slack_connection_id,
            Channel.slack_channel_identifier == slack_channel_identifier,
        ).first()

    def get_or_create(self, slack_connection_id: int, slack_channel_identifier: str) -> Channel:
        """
        Look up a channel, creating a bare member row when the join event
        was never seen (for example when the bot was added before install).
        """
        channel = self.get_by_identifier(slack_connection_id, slack_channel_identifier)
        if channel:
            return channel

        logger.info(f"Channel {slack_channel_identifier} not tracked yet, creating it")
        return self.upsert(slack_connection_id, slack_channel_identifier, {"is_member": True})

    def upsert(self, slack_connection_id: int, slack_channel_identifier: str, data: Dict[str, Any]) -> Channel:
        """Insert or update the channel row keyed on (connection, identifier)"""
        channel = self.get_by_identifier(slack_connection_id, slack_channel_identifier)
        if channel:
            return self.update(channel, data)

        try:
            return self.create({
                "slack_connection_id": slack_connection_id,
                "slack_channel_identifier": slack_channel_identifier,
                **data,
            })
        except IntegrityError:
            # Lost an insert race against another worker
            channel = self.get_by_identifier(slack_connection_id, slack_channel_identifier)
            if channel is None:
                raise
            return self.update(channel, data)

    def list_member_channels(self, slack_connection_id: int) -> List[Channel]:
        """Member channels, oldest first"""
        return self.db.query(Channel).filter(
            Channel.slack_connection_id == slack_connection_id,
            Channel.is_member == True,
        ).order_by(Channel.created_at.asc(), Channel.id.asc()).all()

    def count_member_channels(self, slack_connection_id: int) -> int:
        return self.db.query(Channel).filter(
            Channel.slack_connection_id == slack_connection_id,
            Channel.is_member == True,
        ).count()

    def set_membership(self, slack_connection_id: int, slack_channel_identifier: str, is_member: bool) -> Optional[Channel]:
        channel = self.get_by_identifier(slack_connection_id, slack_channel_identifier)
        if not channel:
            return None
        return self.update(channel, {"is_member": is_member})

    def rename(self, slack_connection_id: int, slack_channel_identifier: str, name: str) -> Optional[Channel]:
        channel = self.get_by_identifier(slack_connection_id, slack_channel_identifier)
        if not channel:
            return None
        return self.update(channel, {"name": name})

    def change_identifier(self, slack_connection_id: int, old_identifier: str, new_identifier: str) -> Optional[Channel]:
        """Point an existing row at a reassigned Slack channel id, keeping its primary key"""
        channel = self.get_by_identifier(slack_connection_id, old_identifier)
        if not channel:
            return None
        return self.update(channel, {"slack_channel_identifier": new_identifier})

    def leave_all(self, slack_connection_id: int) -> int:
        """Mark every channel of a workspace as no longer joined"""
        try:
            count = self.db.query(Channel).filter(
                Channel.slack_connection_id == slack_connection_id
            ).update({"is_member": False}, synchronize_session="fetch")
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            logger.error(f"Error leaving channels for connection {slack_connection_id}: {e}")
            self.db.rollback()
            raise

    def set_statuses(self, active: List[Channel], pending: List[Channel]) -> None:
        for channel in active:
            channel.status = ChannelStatus.ACTIVE
        for channel in pending:
            channel.status = ChannelStatus.PENDING_UPGRADE
        self.commit()

    def update_activity(self, channel: Channel) -> Channel:
        return self.update(channel, {"latest_activity_at": datetime.utcnow()})
