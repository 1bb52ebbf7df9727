from .base import Base
from .slack_connection import SlackConnection, SlackConnectionStatus
from .zendesk_connection import ZendeskConnection, ZendeskConnectionStatus
from .channel import Channel, ChannelType, ChannelStatus
from .conversation import Conversation, MergedMessage

__all__ = [
    "Base",
    "SlackConnection",
    "SlackConnectionStatus",
    "ZendeskConnection",
    "ZendeskConnectionStatus",
    "Channel",
    "ChannelType",
    "ChannelStatus",
    "Conversation",
    "MergedMessage",
]
