"""
Slack integration package
"""
from .client import SlackClient, SlackApiCallError
from .classifier import classify_slack_event
from .models import (
    SlackRoute,
    SlackMessage,
    SlackFile,
    SlackIdentity,
    SlackPostResult,
    SlackChannelInfo,
)

__all__ = [
    'SlackClient',
    'SlackApiCallError',
    'classify_slack_event',
    'SlackRoute',
    'SlackMessage',
    'SlackFile',
    'SlackIdentity',
    'SlackPostResult',
    'SlackChannelInfo',
]
