"""
Decides which Zendesk comment webhooks are relayed into Slack
"""
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.integrations.zendesk.models import ZendeskCommentEvent, EXTERNAL_ID_PREFIX

logger = logging.getLogger(__name__)

# System notes Zendesk posts when tickets are merged
MERGE_NOTICE_PATTERNS = [
    re.compile(r"^\s*this request was closed and merged into request #\d+", re.IGNORECASE),
    re.compile(
        r"^\s*requests? #\d+(?:\s*(?:,|and)\s*#\d+)*.*?\b(?:was|were) closed and merged into this request",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"^\s*ticket #\d+ was merged into ticket #\d+", re.IGNORECASE),
]

EXTERNAL_ID_PATTERN = re.compile(
    rf"^{EXTERNAL_ID_PREFIX}-[0-9a-f]{{8}}-[0-9a-f]{{4}}-[0-9a-f]{{4}}-[0-9a-f]{{4}}-[0-9a-f]{{12}}$"
)


class ZendeskAction(str, Enum):
    IGNORE = "ignore"
    RELAY = "relay"
    REJECT = "reject"


@dataclass
class ZendeskClassification:
    """Classifier verdict. ``event`` is set for RELAY."""
    action: ZendeskAction
    reason: str = ""
    event: Optional[ZendeskCommentEvent] = None


def is_merge_notice(message: str) -> bool:
    return any(pattern.search(message or "") for pattern in MERGE_NOTICE_PATTERNS)


def is_valid_external_id(external_id: Optional[str]) -> bool:
    return bool(external_id) and bool(EXTERNAL_ID_PATTERN.match(external_id))


def classify_zendesk_event(payload: Dict[str, Any]) -> ZendeskClassification:
    try:
        event = ZendeskCommentEvent.model_validate(payload or {})
    except ValidationError as e:
        logger.warning(f"Malformed Zendesk webhook payload: {e}")
        return ZendeskClassification(ZendeskAction.REJECT, "Malformed payload")

    # Comments written by this service on behalf of Slack users
    author_external_id = event.current_user_external_id or ""
    if author_external_id.startswith(EXTERNAL_ID_PREFIX):
        return ZendeskClassification(ZendeskAction.IGNORE, "Comment originated from Slack")

    # Internal notes stay in Zendesk
    if not event.is_public:
        return ZendeskClassification(ZendeskAction.IGNORE, "Private comment")

    if is_merge_notice(event.message):
        return ZendeskClassification(ZendeskAction.IGNORE, "Ticket merge notice")

    if not event.last_updated_at:
        logger.warning("Zendesk webhook missing last_updated_at")
        return ZendeskClassification(ZendeskAction.REJECT, "Missing last_updated_at")

    if event.last_updated_at == event.created_at:
        return ZendeskClassification(ZendeskAction.IGNORE, "Ticket creation, not an update")

    if not is_valid_external_id(event.external_id):
        logger.warning(f"Zendesk webhook with missing or malformed external_id: {event.external_id!r}")
        return ZendeskClassification(ZendeskAction.REJECT, "Missing or malformed external_id")

    return ZendeskClassification(ZendeskAction.RELAY, event=event)
