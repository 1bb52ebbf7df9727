"""
Formatting of Zendesk comments relayed into Slack
"""
import re
from typing import Optional

_BOLD = re.compile(r"\*\*(.*?)\*\*")


def strip_signature(message: Optional[str], signature: Optional[str]) -> str:
    """Remove the agent signature Zendesk appends to the end of a comment"""
    if not message:
        return ""
    if not signature or not message.endswith(signature):
        return message
    return message[: len(message) - len(signature)].rstrip()


def zendesk_to_slack_markdown(message: str) -> str:
    """Zendesk bold (**text**) becomes Slack bold (*text*)"""
    return _BOLD.sub(r"*\1*", message)
