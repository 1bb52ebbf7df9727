"""
Zendesk integration module
"""

from .client import ZendeskClient
from .classifier import classify_zendesk_event, ZendeskAction, ZendeskClassification
from .models import (
    ZendeskComment,
    ZendeskCommentEvent,
    ZendeskTicketStatus,
    TicketUpdateResult,
)

__all__ = [
    "ZendeskClient",
    "classify_zendesk_event",
    "ZendeskAction",
    "ZendeskClassification",
    "ZendeskComment",
    "ZendeskCommentEvent",
    "ZendeskTicketStatus",
    "TicketUpdateResult",
]
