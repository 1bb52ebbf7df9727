from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class GlobalSettings(BaseModel):
    """Workspace-wide sync defaults stored on the Slack connection"""
    same_sender_timeframe: int = Field(
        0, ge=0, description="Seconds within which root messages from one sender share a ticket (0 disables)"
    )
    remove_zendesk_signatures: bool = Field(
        True, description="Strip the agent signature from comments relayed to Slack"
    )
    default_zendesk_assignee: Optional[str] = Field(None, description="Assignee email for new tickets")
    default_zendesk_tags: List[str] = Field(default_factory=list, description="Tags added to every new ticket")

    @field_validator('default_zendesk_tags')
    def validate_tags(cls, v):
        return [tag.strip() for tag in v if tag and tag.strip()]
