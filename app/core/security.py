import secrets
import logging
from typing import Optional
from passlib.context import CryptContext
from slack_sdk.signature import SignatureVerifier
from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Webhook bearer token hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def generate_webhook_token() -> str:
    """Generate the bearer token Zendesk sends with every webhook call"""
    return secrets.token_urlsafe(32)


def generate_webhook_public_id() -> str:
    """Generate the public id that selects the tenant on the webhook URL"""
    return secrets.token_hex(16)


def hash_webhook_token(token: str) -> str:
    """Hash a webhook bearer token using bcrypt"""
    return pwd_context.hash(token)


def verify_webhook_token(plain_token: str, hashed_token: str) -> bool:
    """Verify a presented bearer token against its stored hash"""
    if not plain_token or not hashed_token:
        return False
    return pwd_context.verify(plain_token, hashed_token)


def verify_slack_signature(
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    signing_secret: Optional[str] = None,
) -> bool:
    """
    Verify the X-Slack-Signature header for a request body.

    Returns False instead of raising so the caller can still acknowledge
    the request with a 2xx.
    """
    secret = signing_secret or settings.slack_signing_secret
    if not secret:
        logger.warning("No Slack signing secret configured")
        return False
    if not timestamp or not signature:
        return False

    verifier = SignatureVerifier(signing_secret=secret)
    return verifier.is_valid(body=body, timestamp=timestamp, signature=signature)
