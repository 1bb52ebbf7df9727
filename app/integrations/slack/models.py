"""
Slack integration data models and event constants
"""
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from enum import Enum


class SlackRoute(str, Enum):
    """Where an inbound Slack event is sent"""
    IGNORE = "ignore"
    LIFECYCLE = "lifecycle"
    HOME = "home"
    UNINSTALL = "uninstall"
    MESSAGE_QUEUE = "message_queue"
    FILE_QUEUE = "file_queue"


# Channel lifecycle events, delivered either as event types or message subtypes
CHANNEL_LIFECYCLE_EVENTS = {
    'member_joined_channel',
    'channel_left',
    'channel_archive',
    'channel_unarchive',
    'channel_deleted',
    'channel_rename',
    'channel_id_changed',
}

# Message subtypes carrying human content worth syncing (None is a plain message)
ELIGIBLE_MESSAGE_SUBTYPES = {
    'message_replied',
    'message_changed',
    'message_deleted',
    None,
}

FILE_SHARE_SUBTYPE = 'file_share'

# chat.postMessage errors that retrying will not fix
UNDELIVERABLE_ERRORS = {
    'channel_not_found': (
        "This Slack channel is no longer available for messaging. The channel may have been "
        "deleted, or converted to a new Slack Connect channel. Please reply from Slack to "
        "continue the conversation - it's safe to close this ticket out."
    ),
    'is_archived': (
        "This Slack channel is archived and no longer available for messaging - "
        "it's safe to close this ticket out."
    ),
    'msg_too_long': (
        "Your message is too long to be sent to Slack. Try breaking it up into smaller messages."
    ),
    'cannot_reply_to_message': (
        "This message is ineligible for replies. Please view the message in Slack - "
        "it's safe to close this ticket out."
    ),
    'not_in_channel': (
        "The Zensync bot is no longer added to this channel. Please reply from Slack or "
        "re-invite the bot to the channel to continue the conversation."
    ),
}


@dataclass
class SlackMessage:
    """Slack message data"""
    ts: str  # Timestamp (unique message identifier)
    channel: str  # Channel ID
    text: str = ""
    user: Optional[str] = None  # User ID who sent the message
    thread_ts: Optional[str] = None  # If this is a reply, the parent message ts
    subtype: Optional[str] = None
    bot_id: Optional[str] = None
    files: List[Dict[str, Any]] = field(default_factory=list)
    attachment_html: str = ""  # Rendered after the converted text

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "SlackMessage":
        return cls(
            ts=event.get('ts', ''),
            channel=event.get('channel', ''),
            text=event.get('text') or '',
            user=event.get('user'),
            thread_ts=event.get('thread_ts'),
            subtype=event.get('subtype'),
            bot_id=event.get('bot_id'),
            files=event.get('files') or [],
        )

    @property
    def parent_message_id(self) -> Optional[str]:
        """Root of the thread this message replies to, None for top-level messages"""
        if self.thread_ts and self.thread_ts != self.ts:
            return self.thread_ts
        return None

    @property
    def is_thread_reply(self) -> bool:
        return self.parent_message_id is not None


@dataclass
class SlackFile:
    """File shared in a Slack message"""
    id: str
    name: Optional[str] = None
    title: Optional[str] = None
    mimetype: Optional[str] = None
    url_private: Optional[str] = None
    permalink: Optional[str] = None
    file_access: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlackFile":
        return cls(
            id=data.get('id', ''),
            name=data.get('name'),
            title=data.get('title'),
            mimetype=data.get('mimetype'),
            url_private=data.get('url_private'),
            permalink=data.get('permalink'),
            file_access=data.get('file_access'),
        )

    @property
    def needs_info_lookup(self) -> bool:
        """Slack Connect files arrive without details until files.info is called"""
        return self.file_access == 'check_file_info'


@dataclass
class SlackIdentity:
    """Display name and avatar used when posting on someone's behalf"""
    username: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class SlackPostResult:
    """Outcome of chat.postMessage"""
    ok: bool
    ts: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SlackChannelInfo:
    """Subset of conversations.info used to track a channel"""
    id: str
    name: Optional[str] = None
    is_private: bool = False
    is_im: bool = False
    is_mpim: bool = False
    is_shared: bool = False
