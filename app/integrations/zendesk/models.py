"""
Zendesk-specific data models
"""
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from enum import Enum

# Marks users and tickets created by this service
EXTERNAL_ID_PREFIX = "zensync"
SYSTEM_TAG = "zensync"

CLOSED_TICKET_ERROR = "Status: closed prevents ticket update"


class ZendeskTicketStatus(str, Enum):
    """Zendesk ticket status values"""
    NEW = "new"
    OPEN = "open"
    PENDING = "pending"
    HOLD = "hold"
    SOLVED = "solved"
    CLOSED = "closed"


class ZendeskComment(BaseModel):
    """Comment body sent when creating or updating a ticket"""
    html_body: str
    public: bool = True
    author_id: Optional[int] = None
    uploads: List[str] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"html_body": self.html_body, "public": self.public}
        if self.author_id is not None:
            payload["author_id"] = self.author_id
        if self.uploads:
            payload["uploads"] = self.uploads
        return payload


class TicketUpdateResult(BaseModel):
    """Outcome of appending a comment to a ticket"""
    ok: bool
    ticket_id: str
    status: Optional[str] = None
    needs_follow_up: bool = False
    error: Optional[str] = None


class ZendeskCommentEvent(BaseModel):
    """Payload of the ticket-comment webhook configured in Zendesk"""
    model_config = ConfigDict(extra="ignore")

    ticket_id: Optional[str] = None
    external_id: Optional[str] = None
    message: str = ""
    is_public: bool = True
    current_user_email: Optional[str] = None
    current_user_name: Optional[str] = None
    current_user_external_id: Optional[str] = None
    current_user_signature: Optional[str] = None
    last_updated_at: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("ticket_id", "external_id", mode="before")
    def coerce_identifier(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("is_public", mode="before")
    def coerce_public(cls, v):
        if isinstance(v, str):
            return v.strip().lower() not in ("false", "0", "no", "")
        return bool(v) if v is not None else True

    @field_validator("message", mode="before")
    def coerce_message(cls, v):
        return v or ""


def needs_follow_up(response_json: Dict[str, Any]) -> bool:
    """
    True when Zendesk refused a ticket update because the ticket is
    closed or no longer exists, which calls for a follow-up ticket.
    """
    if not isinstance(response_json, dict):
        return False

    error = response_json.get("error")
    if error == "RecordInvalid":
        details = response_json.get("details") or {}
        for detail in details.get("status") or []:
            if CLOSED_TICKET_ERROR in (detail.get("description") or ""):
                return True
        return False

    return error == "RecordNotFound"
