"""
Filters raw Slack events down to the ones that carry syncable content
"""
import logging
from typing import Any, Dict, Optional

from app.integrations.slack.models import (
    SlackRoute,
    CHANNEL_LIFECYCLE_EVENTS,
    ELIGIBLE_MESSAGE_SUBTYPES,
    FILE_SHARE_SUBTYPE,
)

logger = logging.getLogger(__name__)


def lifecycle_event_name(event: Dict[str, Any]) -> Optional[str]:
    """Lifecycle events show up as their own type or as a message subtype"""
    event_type = event.get('type')
    if event_type in CHANNEL_LIFECYCLE_EVENTS:
        return event_type
    if event_type == 'message' and event.get('subtype') in CHANNEL_LIFECYCLE_EVENTS:
        return event.get('subtype')
    return None


def classify_slack_event(
    payload: Dict[str, Any],
    bot_user_id: Optional[str],
    subscription_active: bool,
) -> SlackRoute:
    """
    Route an ``event_callback`` payload.

    Lifecycle and uninstall events are routed regardless of subscription
    state. Content events need an active subscription and are dropped
    silently otherwise, since retrying would not change the outcome.
    """
    event = payload.get('event') or {}
    event_type = event.get('type')
    subtype = event.get('subtype')

    if event_type == 'app_home_opened':
        return SlackRoute.HOME

    if event_type == 'app_uninstalled':
        return SlackRoute.UNINSTALL

    if lifecycle_event_name(event):
        return SlackRoute.LIFECYCLE

    if event_type != 'message':
        return SlackRoute.IGNORE

    if not subscription_active:
        logger.info(f"Subscription inactive, dropping message event in {event.get('channel')}")
        return SlackRoute.IGNORE

    # The bot's own relayed replies come back as message events
    if bot_user_id and _sender(event) == bot_user_id:
        return SlackRoute.IGNORE

    if subtype == FILE_SHARE_SUBTYPE:
        return SlackRoute.FILE_QUEUE

    if subtype in ELIGIBLE_MESSAGE_SUBTYPES:
        return SlackRoute.MESSAGE_QUEUE

    return SlackRoute.IGNORE


def _sender(event: Dict[str, Any]) -> Optional[str]:
    # Edits and deletions carry the author on the nested message
    if event.get('user'):
        return event.get('user')
    nested = event.get('message') or event.get('previous_message') or {}
    return nested.get('user')
