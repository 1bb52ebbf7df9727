"""
Channel membership, workspace uninstall and plan quota handling
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.models.slack_connection import SlackConnection
from app.models.channel import ChannelType, ChannelStatus
from app.database.repositories.connection_repository import SlackConnectionRepository, ZendeskConnectionRepository
from app.database.repositories.channel_repository import ChannelRepository
from app.integrations.base import IntegrationError
from app.integrations.slack.client import SlackClient
from app.integrations.slack.classifier import lifecycle_event_name
from app.integrations.slack.models import SlackChannelInfo
from app.core.plans import get_channel_limit, is_subscription_active

logger = logging.getLogger(__name__)

UPGRADE_NOTICE = "You've reached your maximum channel limit, upgrade your plan to join this channel."
MISSING_ZENDESK_NOTICE = (
    "Zendesk credentials are missing or inactive. "
    "Configure them in the Zensync app settings to start syncing messages."
)


def channel_type_from_info(info: SlackChannelInfo) -> ChannelType:
    if info.is_im:
        return ChannelType.DM
    if info.is_mpim:
        return ChannelType.GROUP_DM
    if info.is_private:
        return ChannelType.PRIVATE
    return ChannelType.PUBLIC


class ChannelService:
    """Keeps channel rows in step with Slack membership and the workspace plan"""

    def __init__(
        self,
        db: Session,
        slack_client_factory: Callable[[Dict[str, Any]], SlackClient] = SlackClient,
    ):
        self.db = db
        self.connection_repo = SlackConnectionRepository(db)
        self.zendesk_repo = ZendeskConnectionRepository(db)
        self.channel_repo = ChannelRepository(db)
        self.slack_client_factory = slack_client_factory

    def _slack_client(self, connection: SlackConnection) -> SlackClient:
        return self.slack_client_factory({'bot_token': self.connection_repo.get_bot_token(connection)})

    def is_subscription_active(self, connection: SlackConnection) -> bool:
        return is_subscription_active(connection.subscription_period_end)

    def handle_lifecycle_event(self, slack_connection_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a channel lifecycle event to the channel table.

        Args:
            slack_connection_id: Workspace the event belongs to
            payload: The event_callback body as received from Slack

        Returns:
            Processing result
        """
        connection = self.connection_repo.get(slack_connection_id)
        if not connection:
            logger.warning(f"Slack connection {slack_connection_id} not found, dropping lifecycle event")
            return {'status': 'ignored', 'reason': 'Connection not found'}

        event = payload.get('event') or {}
        event_name = lifecycle_event_name(event)

        if event_name == 'member_joined_channel':
            return self._handle_channel_joined(connection, event)

        if event_name in ('channel_left', 'channel_archive', 'channel_deleted'):
            return self._set_membership(connection, event.get('channel'), False, event_name)

        if event_name == 'channel_unarchive':
            # Unarchiving restores membership without a quota check
            return self._set_membership(connection, event.get('channel'), True, event_name)

        if event_name == 'channel_rename':
            channel_data = event.get('channel') or {}
            if not isinstance(channel_data, dict):
                channel_data = {'id': channel_data, 'name': event.get('name')}
            channel = self.channel_repo.rename(connection.id, channel_data.get('id'), channel_data.get('name'))
            if not channel:
                logger.warning(f"Renamed channel {channel_data.get('id')} is not tracked")
                return {'status': 'ignored', 'reason': 'Channel not found'}
            return {'status': 'processed', 'action': 'channel_renamed', 'channel': channel.slack_channel_identifier}

        if event_name == 'channel_id_changed':
            old_id = event.get('old_channel_id')
            new_id = event.get('new_channel_id')
            channel = self.channel_repo.change_identifier(connection.id, old_id, new_id)
            if not channel:
                logger.warning(f"Channel {old_id} changed id to {new_id} but is not tracked")
                return {'status': 'ignored', 'reason': 'Channel not found'}
            logger.info(f"Channel {old_id} is now {new_id}")
            return {'status': 'processed', 'action': 'channel_id_changed', 'channel': new_id}

        logger.warning(f"No handler for lifecycle event: {event_name}")
        return {'status': 'ignored', 'reason': f'Unhandled event {event_name}'}

    def _set_membership(
        self,
        connection: SlackConnection,
        channel_id: Optional[str],
        is_member: bool,
        event_name: str,
    ) -> Dict[str, Any]:
        channel = self.channel_repo.set_membership(connection.id, channel_id, is_member)
        if not channel:
            logger.info(f"{event_name} for untracked channel {channel_id}, ignoring")
            return {'status': 'ignored', 'reason': 'Channel not found'}
        return {'status': 'processed', 'action': event_name, 'channel': channel_id}

    def _handle_channel_joined(self, connection: SlackConnection, event: Dict[str, Any]) -> Dict[str, Any]:
        channel_id = event.get('channel')

        # Only the bot joining a channel matters, not other members
        if event.get('user') != connection.bot_user_id:
            return {'status': 'ignored', 'reason': 'Member is not the bot'}

        slack = self._slack_client(connection)
        inviter = event.get('inviter')
        status = ChannelStatus.ACTIVE

        # +1 for the channel being joined
        member_count = self.channel_repo.count_member_channels(connection.id)
        already_member = self.channel_repo.get_by_identifier(connection.id, channel_id)
        if already_member and already_member.is_member:
            member_count -= 1

        if member_count + 1 > get_channel_limit(connection.plan) or not self.is_subscription_active(connection):
            logger.info(f"Channel limit reached for connection {connection.id}, {channel_id} pending upgrade")
            status = ChannelStatus.PENDING_UPGRADE
            if inviter:
                self._post_notice(slack, channel_id, inviter, UPGRADE_NOTICE)

        if inviter and not self.zendesk_repo.get_credentials(connection.id):
            self._post_notice(slack, channel_id, inviter, MISSING_ZENDESK_NOTICE)

        info = slack.get_channel_info(channel_id)
        channel = self.channel_repo.upsert(connection.id, channel_id, {
            'name': info.name,
            'type': channel_type_from_info(info),
            'is_member': True,
            'is_shared': info.is_shared,
            'status': status,
        })

        logger.info(f"Joined channel {channel_id} ({channel.name}) with status {status.value}")
        return {'status': 'processed', 'action': 'channel_joined', 'channel': channel_id, 'channel_status': status.value}

    def _post_notice(self, slack: SlackClient, channel_id: str, user_id: str, text: str) -> None:
        try:
            slack.post_ephemeral(channel_id, user_id, text)
        except IntegrationError as e:
            # Notices are best effort, the join itself must still be recorded
            logger.error(f"Failed to post ephemeral message in {channel_id}: {e}")

    def handle_uninstall(self, slack_connection_id: int) -> Dict[str, Any]:
        connection = self.connection_repo.get(slack_connection_id)
        if not connection:
            logger.warning(f"Slack connection {slack_connection_id} not found, nothing to uninstall")
            return {'status': 'ignored', 'reason': 'Connection not found'}

        left = self.channel_repo.leave_all(connection.id)
        self.connection_repo.mark_uninstalled(connection)
        logger.info(f"Slack connection {connection.id} uninstalled, left {left} channels")
        return {'status': 'processed', 'action': 'uninstalled', 'channels_left': left}

    def apply_subscription_change(
        self,
        slack_connection_id: int,
        plan: Optional[str],
        period_end: Optional[datetime],
        subscription_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record the new plan and rebalance channel statuses against its quota"""
        connection = self.connection_repo.get(slack_connection_id)
        if not connection:
            logger.error(f"No Slack connection {slack_connection_id} for subscription change")
            return {'status': 'ignored', 'reason': 'Connection not found'}

        self.connection_repo.update_subscription(connection, plan, period_end, subscription_id)
        return self.rebalance_channels(connection)

    def rebalance_channels(self, connection: SlackConnection, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Oldest member channels up to the plan limit are active, the rest
        wait for an upgrade.
        """
        if limit is None:
            limit = get_channel_limit(connection.plan)

        channels = self.channel_repo.list_member_channels(connection.id)
        active, pending = channels[:limit], channels[limit:]
        self.channel_repo.set_statuses(active, pending)

        logger.info(
            f"Rebalanced channels for connection {connection.id}: "
            f"{len(active)} active, {len(pending)} pending upgrade (limit {limit})"
        )
        return {'status': 'processed', 'action': 'channels_rebalanced', 'active': len(active), 'pending': len(pending)}
