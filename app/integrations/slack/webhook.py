"""
Slack Events API handler: verifies, classifies and enqueues inbound events
"""
import logging
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session

from app.integrations.base import WebhookError
from app.integrations.slack.classifier import classify_slack_event
from app.integrations.slack.models import SlackRoute
from app.database.repositories.connection_repository import SlackConnectionRepository
from app.core.plans import is_subscription_active
from app.core.security import verify_slack_signature
from app.tasks import sync_tasks

logger = logging.getLogger(__name__)

VERIFICATION_FAILED = "Verification failed"


class SlackWebhookHandler:
    """
    Handles incoming Slack events.

    Nothing is synced inline: content and lifecycle events are handed to
    the task queue so the request is acknowledged within Slack's deadline.
    """

    def __init__(self, db: Session):
        self.db = db
        self.connection_repo = SlackConnectionRepository(db)

    def handle_webhook(
        self,
        payload: Dict[str, Any],
        body: bytes,
        timestamp: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Process an incoming Slack request

        Args:
            payload: Parsed JSON body
            body: Raw request body for signature verification
            timestamp: X-Slack-Request-Timestamp header
            signature: X-Slack-Signature header

        Returns:
            Processing result

        Raises:
            WebhookError: the event names an app with no installed workspace
        """
        # Slack retries aggressively on non-2xx, so a bad signature is still acknowledged
        if not verify_slack_signature(body, timestamp, signature):
            logger.warning("Invalid Slack webhook signature")
            return {'status': 'rejected', 'reason': VERIFICATION_FAILED}

        if payload.get('type') == 'url_verification':
            return {'challenge': payload.get('challenge')}

        if payload.get('type') != 'event_callback':
            logger.info(f"Ignoring webhook type: {payload.get('type')}")
            return {'status': 'ignored', 'reason': f"Unsupported webhook type: {payload.get('type')}"}

        connection = self.connection_repo.get_by_app_id(payload.get('api_app_id'))
        if not connection:
            logger.warning(f"No Slack connection for app {payload.get('api_app_id')}")
            raise WebhookError(404, "Connection not found")

        route = classify_slack_event(
            payload,
            bot_user_id=connection.bot_user_id,
            subscription_active=is_subscription_active(connection.subscription_period_end),
        )
        return self._dispatch(connection.id, route, payload)

    def _dispatch(self, connection_id: int, route: SlackRoute, payload: Dict[str, Any]) -> Dict[str, Any]:
        if route == SlackRoute.MESSAGE_QUEUE:
            sync_tasks.enqueue_slack_message(connection_id, payload)
        elif route == SlackRoute.FILE_QUEUE:
            sync_tasks.enqueue_file_upload(connection_id, payload)
        elif route == SlackRoute.LIFECYCLE:
            sync_tasks.enqueue_lifecycle_event(connection_id, payload)
        elif route == SlackRoute.UNINSTALL:
            sync_tasks.enqueue_uninstall(connection_id, payload)
        else:
            # HOME is acknowledged without a refresh, the app home is not rendered here
            return {'status': 'ignored', 'route': route.value}

        logger.info(f"Queued {route.value} event {payload.get('event_id')} for connection {connection_id}")
        return {'status': 'queued', 'route': route.value}
