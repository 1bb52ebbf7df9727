"""
Slack API client with bot authentication and rate limiting
"""
import time
import logging
import requests
from typing import Dict, Any, Optional
from urllib.parse import unquote
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError

from app.integrations.base import BaseIntegration, RateLimiter, AuthenticationError, RateLimitError, IntegrationError
from app.integrations.slack.models import (
    SlackFile,
    SlackIdentity,
    SlackPostResult,
    SlackChannelInfo,
    UNDELIVERABLE_ERRORS,
)
from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

AUTH_ERRORS = ['invalid_auth', 'account_inactive', 'token_revoked', 'not_authed']


class SlackApiCallError(IntegrationError):
    """Slack answered ok=false; ``error_code`` holds Slack's error string"""

    def __init__(self, error_code: str):
        super().__init__(f"Slack API error: {error_code}")
        self.error_code = error_code


class SlackClient(BaseIntegration):
    """
    Slack Web API client for one installed workspace.

    Config keys: ``bot_token`` (decrypted xoxb token).
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        # Conservative across Slack's per-method tiers
        self.rate_limiter = RateLimiter(max_requests=settings.slack_rate_limit_per_minute, time_window=60)
        self.bot_client = WebClient(token=self.config.get('bot_token')) if self.is_enabled else None

    def _validate_config(self) -> bool:
        if not self.config.get('bot_token'):
            logger.warning("Missing Slack bot token")
            return False
        return True

    def _make_api_call(self, method: str, **kwargs) -> Dict[str, Any]:
        """
        Make rate-limited API call to Slack
        """
        if not self.is_enabled or not self.bot_client:
            raise AuthenticationError("Slack client not properly configured")

        if not self.rate_limiter.can_make_request():
            wait_time = self.rate_limiter.get_wait_time()
            if wait_time > 0:
                logger.info(f"Rate limit reached, waiting {wait_time:.1f} seconds")
                time.sleep(wait_time)

        self.rate_limiter.record_request()

        try:
            api_method = getattr(self.bot_client, method)
            response = api_method(**kwargs)
            return response.data

        except SlackApiError as e:
            error = e.response.get('error', 'unknown_error')
            if error == 'ratelimited':
                raise RateLimitError(f"Slack API rate limited: {e}")
            elif error in AUTH_ERRORS:
                raise AuthenticationError(f"Slack authentication error: {error}")
            raise SlackApiCallError(error)

        except SlackClientError as e:
            raise IntegrationError(f"Slack client error: {str(e)}")

    def test_connection(self) -> bool:
        """Test connection to Slack API"""
        if not self.is_enabled:
            return False

        try:
            response = self._make_api_call('auth_test')
            return response.get('ok', False)
        except IntegrationError as e:
            logger.error(f"Slack connection test failed: {e}")
            return False

    def post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None,
        username: Optional[str] = None,
        icon_url: Optional[str] = None,
    ) -> SlackPostResult:
        """
        Post a message, optionally as a thread reply under another identity.

        Errors that retrying cannot fix come back as ``ok=False`` with the
        Slack error code; anything else raises.
        """
        kwargs: Dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        if username:
            kwargs["username"] = username
        if icon_url:
            kwargs["icon_url"] = icon_url

        try:
            response = self._make_api_call('chat_postMessage', **kwargs)
        except SlackApiCallError as e:
            if e.error_code in UNDELIVERABLE_ERRORS:
                logger.info(f"Message to {channel} not deliverable: {e.error_code}")
                return SlackPostResult(ok=False, error=e.error_code)
            raise

        return SlackPostResult(ok=True, ts=response.get('ts'))

    def post_ephemeral(self, channel: str, user: str, text: str) -> None:
        self._make_api_call('chat_postEphemeral', channel=channel, user=user, text=text)

    def get_user_profile(self, user_id: str) -> SlackIdentity:
        """Display name and avatar for a Slack user"""
        response = self._make_api_call('users_profile_get', user=user_id)
        profile = response.get('profile') or {}
        return SlackIdentity(
            username=profile.get('display_name') or profile.get('real_name') or None,
            image_url=extract_profile_image_url(profile.get('image_72')),
        )

    def lookup_user_by_email(self, email: str) -> SlackIdentity:
        """Slack identity of a Zendesk agent, matched on email"""
        response = self._make_api_call('users_lookupByEmail', email=email)
        profile = (response.get('user') or {}).get('profile') or {}
        return SlackIdentity(
            username=profile.get('display_name') or profile.get('real_name') or None,
            image_url=profile.get('image_192'),
        )

    def get_file_info(self, file_id: str) -> SlackFile:
        response = self._make_api_call('files_info', file=file_id)
        return SlackFile.from_dict(response.get('file') or {})

    def get_channel_info(self, channel_id: str) -> SlackChannelInfo:
        response = self._make_api_call('conversations_info', channel=channel_id)
        data = response.get('channel') or {}
        return SlackChannelInfo(
            id=data.get('id', channel_id),
            name=data.get('name'),
            is_private=data.get('is_private', False),
            is_im=data.get('is_im', False),
            is_mpim=data.get('is_mpim', False),
            is_shared=bool(data.get('is_shared') or data.get('is_ext_shared')),
        )

    def download_file(self, url: str) -> bytes:
        """Fetch a private file URL with the bot token"""
        if not self.is_enabled:
            raise AuthenticationError("Slack client not properly configured")

        try:
            response = requests.get(
                url,
                headers={"Authorization": f"Bearer {self.config['bot_token']}"},
                timeout=settings.zendesk_request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise IntegrationError(f"Slack file download failed: {e}")

        if response.status_code >= 400:
            raise IntegrationError(f"Slack file download failed with status {response.status_code}")
        return response.content


def extract_profile_image_url(image_url: Optional[str]) -> Optional[str]:
    """
    Slack profile images are gravatar URLs with the Slack-hosted fallback
    in the ``d`` parameter. Prefer the Slack-hosted one.
    """
    if not image_url:
        return None
    gravatar_url, _, slack_url = image_url.partition('&d=')
    return unquote(slack_url) if slack_url else gravatar_url
