"""
Sync engine between Slack threads and Zendesk tickets.

Slack to Zendesk: every queued Slack message either opens a ticket or is
appended to the ticket already linked to its thread. Ticket creation and
comment appends carry idempotency keys derived from the Slack channel and
message ts, so redelivered queue messages never duplicate Zendesk content.

Zendesk to Slack: public agent comments are posted back into the thread
the ticket was opened from.
"""
import uuid
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.slack_connection import SlackConnection
from app.models.channel import Channel
from app.models.conversation import Conversation
from app.database.repositories.connection_repository import SlackConnectionRepository, ZendeskConnectionRepository
from app.database.repositories.channel_repository import ChannelRepository
from app.database.repositories.conversation_repository import ConversationRepository
from app.integrations.base import IntegrationError
from app.integrations.slack.client import SlackClient
from app.integrations.slack.models import SlackMessage, SlackFile, SlackIdentity, UNDELIVERABLE_ERRORS
from app.integrations.slack.formatters import message_html_body, html_permalink, html_attachment_links
from app.integrations.zendesk.client import ZendeskClient
from app.integrations.zendesk.models import (
    ZendeskComment,
    ZendeskCommentEvent,
    ZendeskTicketStatus,
    EXTERNAL_ID_PREFIX,
    SYSTEM_TAG,
)
from app.integrations.zendesk.formatters import strip_signature, zendesk_to_slack_markdown
from app.core.plans import is_subscription_active

logger = logging.getLogger(__name__)

EDITED_PREFIX = "<strong>(Edited)</strong>\n\n"
DELETED_PREFIX = "<strong>(Deleted)</strong>\n\n"
SUBJECT_PREVIEW_LENGTH = 69


class SyncError(Exception):
    """Non-retryable failure while relaying an event"""
    pass


class ConversationNotFound(SyncError):
    """No conversation matches the correlating id of a Zendesk event"""
    pass


class UnauthorizedError(SyncError):
    """Event authenticated for one workspace referenced another workspace's data"""
    pass


def idempotency_key(channel_id: str, ts: str, suffix: Optional[str] = None) -> str:
    """Stable key for a Slack message: channel id followed by its ts"""
    key = f"{channel_id}{ts}"
    return f"{key}:{suffix}" if suffix else key


class SyncService:
    """Relays messages between Slack threads and Zendesk tickets"""

    def __init__(
        self,
        db: Session,
        zendesk_client_factory: Callable[[Dict[str, Any]], ZendeskClient] = ZendeskClient,
        slack_client_factory: Callable[[Dict[str, Any]], SlackClient] = SlackClient,
    ):
        self.db = db
        self.connection_repo = SlackConnectionRepository(db)
        self.zendesk_repo = ZendeskConnectionRepository(db)
        self.channel_repo = ChannelRepository(db)
        self.conversation_repo = ConversationRepository(db)
        self.zendesk_client_factory = zendesk_client_factory
        self.slack_client_factory = slack_client_factory

    # ------------------------------------------------------------------
    # Slack -> Zendesk
    # ------------------------------------------------------------------

    def process_slack_message(
        self,
        slack_connection_id: int,
        payload: Dict[str, Any],
        file_tokens: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Sync one queued Slack ``event_callback`` payload to Zendesk.

        Args:
            slack_connection_id: Workspace the event belongs to
            payload: The event_callback body as received from Slack
            file_tokens: Zendesk upload tokens for files shared with the message

        Returns:
            Processing result
        """
        connection = self.connection_repo.get(slack_connection_id)
        if not connection or not connection.is_installed:
            logger.warning(f"Slack connection {slack_connection_id} missing or uninstalled, dropping event")
            return {'status': 'ignored', 'reason': 'Connection not installed'}

        event = payload.get('event') or {}
        subtype = event.get('subtype')

        if subtype == 'message_changed':
            return self._handle_message_edit(connection, event)
        if subtype == 'message_deleted':
            return self._handle_message_deleted(connection, event)

        message = SlackMessage.from_event(event)
        if file_tokens is None and message.files:
            # Files that could not be uploaded are linked instead
            message.attachment_html = html_attachment_links(
                [SlackFile.from_dict(f) for f in message.files]
            )

        return self._sync_message(
            connection,
            message,
            upload_tokens=file_tokens or [],
            key=idempotency_key(message.channel, message.ts),
        )

    def upload_message_files(self, slack_connection_id: int, payload: Dict[str, Any]) -> Optional[List[str]]:
        """
        Copy the files of a ``file_share`` message from Slack to Zendesk.

        Returns the Zendesk upload tokens, or None when the workspace cannot
        sync. Any download or upload failure raises so the whole batch is
        retried.
        """
        connection = self.connection_repo.get(slack_connection_id)
        if not connection or not connection.is_installed:
            logger.warning(f"Slack connection {slack_connection_id} missing or uninstalled, skipping file upload")
            return None

        credentials = self.zendesk_repo.get_credentials(connection.id)
        if not credentials:
            logger.info(f"No Zendesk credentials for Slack connection {connection.id}, skipping file upload")
            return None

        message = SlackMessage.from_event(payload.get('event') or {})
        slack = self.slack_client_factory({'bot_token': self.connection_repo.get_bot_token(connection)})
        zendesk = self.zendesk_client_factory(credentials)

        tokens = []
        for file_data in message.files:
            slack_file = SlackFile.from_dict(file_data)
            if slack_file.needs_info_lookup:
                slack_file = slack.get_file_info(slack_file.id)
            if not slack_file.url_private:
                raise IntegrationError(f"File {slack_file.id} has no download url")

            content = slack.download_file(slack_file.url_private)
            token = zendesk.upload_file(
                slack_file.name or slack_file.id,
                content,
                slack_file.mimetype or "application/octet-stream",
            )
            tokens.append(token)

        logger.info(f"Uploaded {len(tokens)} files for message {message.ts} in {message.channel}")
        return tokens

    def _handle_message_edit(self, connection: SlackConnection, event: Dict[str, Any]) -> Dict[str, Any]:
        edited = event.get('message')
        previous = event.get('previous_message') or {}
        if not edited:
            logger.warning(f"Message edit without message body in {event.get('channel')}")
            return {'status': 'ignored', 'reason': 'No edited message'}

        if edited.get('text') == previous.get('text'):
            logger.info("Message edit was not a change to text, ignoring")
            return {'status': 'ignored', 'reason': 'Text unchanged'}

        message = SlackMessage.from_event({**edited, 'channel': event.get('channel')})
        message.text = EDITED_PREFIX + message.text

        return self._sync_message(
            connection,
            message,
            is_public=False,
            status=None,
            key=idempotency_key(message.channel, message.ts, f"edited:{event.get('event_ts') or event.get('ts')}"),
            allow_create=False,
        )

    def _handle_message_deleted(self, connection: SlackConnection, event: Dict[str, Any]) -> Dict[str, Any]:
        previous = event.get('previous_message')
        if not previous:
            logger.warning(f"Message deletion without previous message in {event.get('channel')}")
            return {'status': 'ignored', 'reason': 'No previous message'}

        message = SlackMessage.from_event({**previous, 'channel': event.get('channel')})
        message.text = DELETED_PREFIX + message.text

        # Deleting the root of a thread closes its ticket
        status = ZendeskTicketStatus.OPEN if message.is_thread_reply else ZendeskTicketStatus.CLOSED

        return self._sync_message(
            connection,
            message,
            is_public=False,
            status=status.value,
            key=idempotency_key(message.channel, message.ts, f"deleted:{event.get('event_ts') or event.get('ts')}"),
            allow_create=False,
        )

    def _sync_message(
        self,
        connection: SlackConnection,
        message: SlackMessage,
        key: str,
        is_public: bool = True,
        status: Optional[str] = ZendeskTicketStatus.OPEN.value,
        upload_tokens: Optional[List[str]] = None,
        allow_create: bool = True,
    ) -> Dict[str, Any]:
        if not message.user:
            logger.warning(f"Message {message.ts} in {message.channel} has no user, ignoring")
            return {'status': 'ignored', 'reason': 'No message author'}

        credentials = self.zendesk_repo.get_credentials(connection.id)
        if not credentials:
            logger.info(f"No Zendesk credentials for Slack connection {connection.id}, dropping message")
            return {'status': 'ignored', 'reason': 'Zendesk not configured'}

        channel = self.channel_repo.get_or_create(connection.id, message.channel)
        if not channel.is_eligible_for_messaging:
            logger.warning(f"Channel {message.channel} is not eligible for messaging ({channel.status})")
            return {'status': 'ignored', 'reason': 'Channel not eligible'}

        parent_id = message.parent_message_id

        if parent_id or not is_public:
            # Replies, edits and deletions belong to an existing thread
            root_id = parent_id or message.ts
            conversation = self.conversation_repo.find_by_thread(channel.id, root_id)
            if conversation:
                if status == ZendeskTicketStatus.CLOSED.value and conversation.slack_parent_message_id != root_id:
                    # Only deleting the thread root closes the ticket
                    status = ZendeskTicketStatus.OPEN.value
                return self._append_to_conversation(
                    connection, channel, conversation, credentials, message, key,
                    is_public=is_public,
                    status=status,
                    upload_tokens=upload_tokens,
                    advance_pointer=is_public,
                )
            if not allow_create:
                logger.error(
                    f"No conversation for thread {root_id} in channel {message.channel}, "
                    f"dropping edit/delete of {message.ts}"
                )
                return {'status': 'ignored', 'reason': 'Conversation not found'}

            logger.error(f"No conversation for thread {root_id} in channel {message.channel}, creating new ticket")
            return self._create_ticket(
                connection, channel, credentials, message, key,
                root_id=root_id,
                upload_tokens=upload_tokens,
            )

        existing = self.conversation_repo.find_by_root_message(channel.id, message.ts)
        if existing:
            logger.info(f"Message {message.ts} already synced to ticket {existing.zendesk_ticket_id}")
            return {'status': 'ignored', 'reason': 'Already synced', 'ticket_id': existing.zendesk_ticket_id}

        merge_target = self.conversation_repo.find_by_merged_message(channel.id, message.ts)
        if merge_target:
            logger.info(f"Message {message.ts} was merged into ticket {merge_target.zendesk_ticket_id}, re-appending")
        else:
            merge_target = self._find_same_sender_conversation(connection, channel, message)
            if merge_target:
                logger.info(
                    f"Merging message {message.ts} into ticket {merge_target.zendesk_ticket_id} "
                    f"(same sender within timeframe)"
                )
                # Pinned before the append; redeliveries resolve through this record
                merge_target = self.conversation_repo.record_merged_message(merge_target, message.ts)

        if merge_target:
            return self._append_to_conversation(
                connection, channel, merge_target, credentials, message, key,
                is_public=True,
                status=status,
                upload_tokens=upload_tokens,
                advance_pointer=False,
            )

        return self._create_ticket(
            connection, channel, credentials, message, key,
            root_id=message.ts,
            upload_tokens=upload_tokens,
        )

    def _find_same_sender_conversation(
        self,
        connection: SlackConnection,
        channel: Channel,
        message: SlackMessage,
    ) -> Optional[Conversation]:
        """
        Latest conversation in the channel when the new root message comes
        from the same author, within the merge window, and the earlier root
        has not been replied to yet.
        """
        window = connection.settings.same_sender_timeframe
        if window <= 0:
            return None

        latest = self.conversation_repo.find_latest_in_channel(channel.id)
        if not latest or latest.slack_author_user_id != message.user:
            return None
        if latest.has_replies:
            return None

        elapsed = Decimal(message.ts) - Decimal(latest.slack_parent_message_id)
        if 0 <= elapsed <= window:
            return latest
        return None

    def _append_to_conversation(
        self,
        connection: SlackConnection,
        channel: Channel,
        conversation: Conversation,
        credentials: Dict[str, Any],
        message: SlackMessage,
        key: str,
        is_public: bool,
        status: Optional[str],
        upload_tokens: Optional[List[str]],
        advance_pointer: bool,
    ) -> Dict[str, Any]:
        zendesk = self.zendesk_client_factory(credentials)
        author_id = self._get_or_create_zendesk_user(connection, zendesk, message)

        comment = ZendeskComment(
            html_body=self._comment_html(connection, message),
            public=is_public,
            author_id=author_id,
            uploads=upload_tokens or [],
        )
        result = zendesk.update_ticket(conversation.zendesk_ticket_id, comment, key, status=status)

        if result.needs_follow_up:
            if not is_public:
                logger.warning(
                    f"Ticket {conversation.zendesk_ticket_id} is closed, dropping private comment for {message.ts}"
                )
                return {'status': 'ignored', 'reason': 'Ticket closed'}

            return self._create_ticket(
                connection, channel, credentials, message, key,
                root_id=conversation.slack_parent_message_id,
                upload_tokens=upload_tokens,
                follow_up=conversation,
                zendesk=zendesk,
                author_id=author_id,
            )

        if advance_pointer:
            self.conversation_repo.update_last_synced(conversation, message.ts)
        self.channel_repo.update_activity(channel)

        return {
            'status': 'processed',
            'action': 'comment_added',
            'ticket_id': conversation.zendesk_ticket_id,
            'public': is_public,
        }

    def _create_ticket(
        self,
        connection: SlackConnection,
        channel: Channel,
        credentials: Dict[str, Any],
        message: SlackMessage,
        key: str,
        root_id: str,
        upload_tokens: Optional[List[str]] = None,
        follow_up: Optional[Conversation] = None,
        zendesk: Optional[ZendeskClient] = None,
        author_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        zendesk = zendesk or self.zendesk_client_factory(credentials)
        if author_id is None:
            author_id = self._get_or_create_zendesk_user(connection, zendesk, message)

        external_id = follow_up.external_id if follow_up else f"{EXTERNAL_ID_PREFIX}-{uuid.uuid4()}"
        ticket_data = self._build_ticket(connection, channel, message, author_id, external_id, upload_tokens)
        if follow_up:
            ticket_data['via_followup_source_id'] = follow_up.zendesk_ticket_id

        ticket = zendesk.create_ticket(ticket_data, key)
        ticket_id = str(ticket['id'])

        if follow_up:
            self.conversation_repo.update_ticket_id(follow_up, ticket_id, message.ts)
            action = 'follow_up_created'
        else:
            conversation = self.conversation_repo.insert_conversation(
                channel_id=channel.id,
                root_message_id=root_id,
                zendesk_ticket_id=ticket_id,
                external_id=external_id,
                author_user_id=message.user,
            )
            if conversation.zendesk_ticket_id != ticket_id:
                return self._resolve_duplicate_ticket(
                    connection, channel, conversation, credentials, message, key,
                    duplicate_ticket_id=ticket_id,
                    upload_tokens=upload_tokens,
                    zendesk=zendesk,
                )
            action = 'ticket_created'

        self.channel_repo.update_activity(channel)
        logger.info(f"{action} for message {message.ts} in {message.channel}: ticket {ticket_id}")

        return {'status': 'processed', 'action': action, 'ticket_id': ticket_id}

    def _resolve_duplicate_ticket(
        self,
        connection: SlackConnection,
        channel: Channel,
        conversation: Conversation,
        credentials: Dict[str, Any],
        message: SlackMessage,
        key: str,
        duplicate_ticket_id: str,
        upload_tokens: Optional[List[str]],
        zendesk: ZendeskClient,
    ) -> Dict[str, Any]:
        """
        Another delivery linked the thread to a ticket while this one was
        creating its own. The stray ticket is closed and the message is
        appended to the linked ticket instead.
        """
        logger.error(
            f"Thread {conversation.slack_parent_message_id} in {message.channel} is already linked to ticket "
            f"{conversation.zendesk_ticket_id}, closing duplicate ticket {duplicate_ticket_id}"
        )
        note = ZendeskComment(
            html_body=f"<p>Duplicate of ticket #{conversation.zendesk_ticket_id}, closed automatically.</p>",
            public=False,
        )
        zendesk.update_ticket(
            duplicate_ticket_id,
            note,
            f"{key}:duplicate",
            status=ZendeskTicketStatus.CLOSED.value,
        )

        return self._append_to_conversation(
            connection, channel, conversation, credentials, message, key,
            is_public=True,
            status=ZendeskTicketStatus.OPEN.value,
            upload_tokens=upload_tokens,
            advance_pointer=True,
        )

    def _build_ticket(
        self,
        connection: SlackConnection,
        channel: Channel,
        message: SlackMessage,
        author_id: int,
        external_id: str,
        upload_tokens: Optional[List[str]],
    ) -> Dict[str, Any]:
        global_settings = connection.settings
        comment = ZendeskComment(
            html_body=self._comment_html(connection, message),
            public=True,
            author_id=author_id,
            uploads=upload_tokens or [],
        )

        preview = message.text[:SUBJECT_PREVIEW_LENGTH]
        if len(message.text) > SUBJECT_PREVIEW_LENGTH:
            preview += "..."

        tags = sorted(set(channel.tags or []) | set(global_settings.default_zendesk_tags) | {SYSTEM_TAG})
        ticket: Dict[str, Any] = {
            'subject': f"{channel.name or message.channel}: {preview}",
            'comment': comment.to_payload(),
            'requester_id': author_id,
            'external_id': external_id,
            'tags': tags,
        }

        assignee = channel.default_assignee_email or global_settings.default_zendesk_assignee
        if assignee:
            ticket['assignee_email'] = assignee

        return ticket

    def _comment_html(self, connection: SlackConnection, message: SlackMessage) -> str:
        return (
            message_html_body(message.text)
            + message.attachment_html
            + html_permalink(connection.domain, message.channel, message.ts)
        )

    def _get_or_create_zendesk_user(
        self,
        connection: SlackConnection,
        zendesk: ZendeskClient,
        message: SlackMessage,
    ) -> int:
        """Zendesk end user standing in for the Slack author, upserted on a stable external id"""
        slack = self.slack_client_factory({'bot_token': self.connection_repo.get_bot_token(connection)})
        identity = slack.get_user_profile(message.user)

        return zendesk.create_or_update_user(
            name=f"{identity.username or 'Unknown Slack user'} (via Slack)",
            external_id=f"{EXTERNAL_ID_PREFIX}-{message.channel}:{message.user}",
            remote_photo_url=identity.image_url,
        )

    # ------------------------------------------------------------------
    # Zendesk -> Slack
    # ------------------------------------------------------------------

    def process_zendesk_comment(self, slack_connection_id: int, event: ZendeskCommentEvent) -> Dict[str, Any]:
        """
        Relay an agent comment into the Slack thread its ticket came from.

        Raises:
            ConversationNotFound: the external id matches no conversation
            UnauthorizedError: the conversation belongs to another workspace
            IntegrationError: Slack failed in a way a redelivery may fix
        """
        conversation = self.conversation_repo.find_by_external_id(event.external_id)
        if not conversation:
            raise ConversationNotFound(f"No conversation found for id {event.external_id}")

        channel = conversation.channel
        if not channel or channel.slack_connection_id != slack_connection_id:
            logger.warning(
                f"Conversation {event.external_id} does not belong to Slack connection {slack_connection_id}"
            )
            raise UnauthorizedError("Conversation belongs to another workspace")

        connection = channel.slack_connection
        if not connection.is_installed or not is_subscription_active(connection.subscription_period_end):
            logger.info(f"Subscription inactive for Slack connection {connection.id}, dropping Zendesk comment")
            return {'status': 'ignored', 'reason': 'Subscription inactive'}

        text = event.message
        if connection.settings.remove_zendesk_signatures:
            text = strip_signature(text, event.current_user_signature)
        text = zendesk_to_slack_markdown(text)

        slack = self.slack_client_factory({'bot_token': self.connection_repo.get_bot_token(connection)})
        identity = self._lookup_agent_identity(slack, event)

        result = slack.post_message(
            channel.slack_channel_identifier,
            text,
            thread_ts=conversation.slack_parent_message_id,
            username=identity.username,
            icon_url=identity.image_url,
        )

        if result.ok:
            self.channel_repo.update_activity(channel)
            return {'status': 'processed', 'action': 'message_posted', 'ts': result.ts}

        warning = UNDELIVERABLE_ERRORS.get(result.error)
        if warning is None:
            raise IntegrationError(f"Error posting message to Slack: {result.error}")

        credentials = self.zendesk_repo.get_credentials(connection.id)
        if credentials:
            zendesk = self.zendesk_client_factory(credentials)
            zendesk.post_undelivered_warning(conversation.zendesk_ticket_id, warning)
        else:
            logger.info(f"No Zendesk credentials for connection {connection.id}, cannot post delivery warning")

        return {'status': 'undelivered', 'reason': result.error}

    def _lookup_agent_identity(self, slack: SlackClient, event: ZendeskCommentEvent) -> SlackIdentity:
        fallback = SlackIdentity(username=event.current_user_name)
        if not event.current_user_email:
            return fallback

        try:
            identity = slack.lookup_user_by_email(event.current_user_email)
        except IntegrationError as e:
            logger.warning(f"Could not resolve Slack user for {event.current_user_email}: {e}")
            return fallback

        if not identity.username:
            identity.username = event.current_user_name
        return identity
