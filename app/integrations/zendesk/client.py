"""
Zendesk API client with authentication and rate limiting
"""
import requests
import base64
import time
import logging
from typing import Dict, Any, Optional, Iterable
from urllib.parse import urljoin

from app.integrations.base import BaseIntegration, RateLimiter, AuthenticationError, RateLimitError, IntegrationError
from app.integrations.zendesk.models import ZendeskComment, TicketUpdateResult, ZendeskTicketStatus, needs_follow_up
from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class ZendeskClient(BaseIntegration):
    """
    Zendesk API client for one workspace's Zendesk account.

    Config keys: ``subdomain``, ``email`` and ``token`` (API token), as
    returned by ``ZendeskConnectionRepository.get_credentials``.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        self.rate_limiter = RateLimiter(max_requests=settings.zendesk_rate_limit_per_minute, time_window=60)
        self.session = requests.Session()

        if self.is_enabled:
            self.base_url = f"https://{self.config['subdomain']}.zendesk.com"
            self.api_url = f"{self.base_url}/api/v2"
            self.session.headers.update({
                "Authorization": self._create_auth_header(),
                "Content-Type": "application/json",
                "Accept": "application/json"
            })
        else:
            self.base_url = ""
            self.api_url = ""

    def _validate_config(self) -> bool:
        """Validate Zendesk configuration"""
        required_fields = ['subdomain', 'email', 'token']
        missing_fields = [field for field in required_fields if not self.config.get(field)]

        if missing_fields:
            logger.warning(f"Missing Zendesk config fields: {missing_fields}")
            return False

        return True

    def _create_auth_header(self) -> str:
        """Basic auth in the ``email/token:token`` form Zendesk expects"""
        auth_string = f"{self.config['email']}/token:{self.config['token']}"
        encoded_auth = base64.b64encode(auth_string.encode()).decode()
        return f"Basic {encoded_auth}"

    def _make_request(
        self,
        method: str,
        endpoint: str,
        allowed_statuses: Iterable[int] = (),
        **kwargs
    ) -> requests.Response:
        """
        Make rate-limited request to Zendesk API with retry logic.

        Responses with a status in ``allowed_statuses`` are returned to the
        caller instead of raising, so it can inspect the error body.
        """
        if not self.is_enabled:
            raise AuthenticationError("Zendesk client not properly configured")

        if not self.rate_limiter.can_make_request():
            wait_time = self.rate_limiter.get_wait_time()
            if wait_time > 0:
                logger.info(f"Rate limit reached, waiting {wait_time:.1f} seconds")
                time.sleep(wait_time)

        url = urljoin(self.api_url + "/", endpoint.lstrip("/"))

        kwargs.setdefault("timeout", settings.zendesk_request_timeout)
        max_retries = kwargs.pop("max_retries", settings.zendesk_max_retries)
        retry_delay = kwargs.pop("retry_delay", 1)

        for attempt in range(max_retries + 1):
            try:
                self.rate_limiter.record_request()

                response = self.session.request(method, url, **kwargs)

                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    if attempt < max_retries:
                        logger.warning(f"Rate limited, retrying after {retry_after} seconds (attempt {attempt + 1})")
                        time.sleep(retry_after)
                        continue
                    raise RateLimitError(f"Rate limit exceeded after {max_retries} retries")

                if response.status_code == 401:
                    raise AuthenticationError("Invalid Zendesk credentials")

                if response.status_code in allowed_statuses:
                    return response

                if response.status_code >= 400:
                    error_msg = f"Zendesk API error {response.status_code}: {response.text}"
                    logger.error(error_msg)
                    if attempt < max_retries and response.status_code >= 500:
                        time.sleep(retry_delay * (2 ** attempt))
                        continue
                    raise IntegrationError(error_msg)

                return response

            except requests.exceptions.RequestException as e:
                if attempt < max_retries:
                    logger.warning(f"Request failed, retrying (attempt {attempt + 1}): {e}")
                    time.sleep(retry_delay * (2 ** attempt))
                    continue
                raise IntegrationError(f"Request failed after {max_retries} retries: {e}")

        raise IntegrationError("Unexpected error in request handling")

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise IntegrationError(f"Malformed Zendesk response: {response.text[:200]}") from e

    def test_connection(self) -> bool:
        """Test connection to Zendesk API"""
        if not self.is_enabled:
            return False

        try:
            response = self._make_request("GET", "/users/me.json", max_retries=0)
            return response.status_code == 200
        except IntegrationError as e:
            logger.error(f"Zendesk connection test failed: {e}")
            return False

    def create_or_update_user(self, name: str, external_id: str, remote_photo_url: Optional[str] = None) -> int:
        """Upsert an end user keyed on external_id and return its Zendesk id"""
        payload = {
            "user": {
                "name": name,
                "skip_verify_email": True,
                "external_id": external_id,
            }
        }
        if remote_photo_url:
            payload["user"]["remote_photo_url"] = remote_photo_url

        data = self._json(self._make_request("POST", "/users/create_or_update.json", json=payload))
        user = data.get("user") or {}
        if not user.get("id"):
            raise IntegrationError(f"Zendesk user upsert returned no id for {external_id}")
        return user["id"]

    def create_ticket(self, ticket_data: Dict[str, Any], idempotency_key: str) -> Dict[str, Any]:
        """
        Create a ticket. Zendesk replays the original response for a
        repeated idempotency key, so redelivered events get the same ticket.
        """
        response = self._make_request(
            "POST",
            "/tickets.json",
            json={"ticket": ticket_data},
            headers={"Idempotency-Key": idempotency_key},
        )
        ticket = self._json(response).get("ticket") or {}
        if not ticket.get("id"):
            raise IntegrationError("Zendesk ticket creation returned no ticket id")

        logger.info(f"Created Zendesk ticket {ticket['id']}")
        return ticket

    def update_ticket(
        self,
        ticket_id: str,
        comment: ZendeskComment,
        idempotency_key: Optional[str] = None,
        status: Optional[str] = ZendeskTicketStatus.OPEN.value,
    ) -> TicketUpdateResult:
        """
        Append a comment to a ticket.

        A closed or deleted ticket is reported through ``needs_follow_up``
        instead of raising; every other failure raises IntegrationError.
        """
        ticket_data: Dict[str, Any] = {"comment": comment.to_payload()}
        if status:
            ticket_data["status"] = status

        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        response = self._make_request(
            "PUT",
            f"/tickets/{ticket_id}.json",
            allowed_statuses=(404, 422),
            json={"ticket": ticket_data},
            headers=headers,
        )
        data = self._json(response)

        if needs_follow_up(data):
            logger.info(f"Zendesk ticket {ticket_id} is closed or deleted: {data.get('error')}")
            return TicketUpdateResult(
                ok=False,
                ticket_id=str(ticket_id),
                needs_follow_up=True,
                error=data.get("error"),
            )

        if response.status_code >= 400:
            raise IntegrationError(f"Zendesk API error {response.status_code}: {response.text}")

        ticket = data.get("ticket") or {}
        return TicketUpdateResult(ok=True, ticket_id=str(ticket_id), status=ticket.get("status"))

    def upload_file(self, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        """Upload an attachment and return the token to reference it from a comment"""
        response = self._make_request(
            "POST",
            "/uploads.json",
            params={"filename": filename},
            data=content,
            headers={"Content-Type": content_type or "application/octet-stream"},
        )
        token = (self._json(response).get("upload") or {}).get("token")
        if not token:
            raise IntegrationError(f"Zendesk upload of {filename} returned no token")
        return token

    def post_undelivered_warning(self, ticket_id: str, message: str) -> None:
        """Leave a private note telling agents their reply did not reach Slack"""
        comment = ZendeskComment(
            html_body=f"<p><strong>Your message was not delivered!</strong></p><p>{message}</p>",
            public=False,
        )
        self.update_ticket(ticket_id, comment, status=ZendeskTicketStatus.OPEN.value)
