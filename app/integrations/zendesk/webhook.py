"""
Zendesk webhook handler for agent comments relayed into Slack
"""
import logging
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session

from app.integrations.base import WebhookError, IntegrationError
from app.integrations.zendesk.classifier import classify_zendesk_event, ZendeskAction
from app.database.repositories.connection_repository import ZendeskConnectionRepository
from app.services.sync_service import SyncService, ConversationNotFound, UnauthorizedError

logger = logging.getLogger(__name__)


class ZendeskWebhookHandler:
    """Handler for Zendesk ticket comment webhooks"""

    def __init__(self, db: Session, sync_service: Optional[SyncService] = None):
        self.db = db
        self.zendesk_repo = ZendeskConnectionRepository(db)
        self.sync_service = sync_service or SyncService(db)

    def handle_webhook(
        self,
        payload: Dict[str, Any],
        webhook_public_id: Optional[str],
        bearer_token: Optional[str],
    ) -> Dict[str, Any]:
        """
        Relay a ticket comment into its Slack thread.

        Args:
            payload: Webhook body configured on the Zendesk trigger
            webhook_public_id: ``id`` query parameter selecting the tenant
            bearer_token: Token from the Authorization header

        Returns:
            Processing result

        Raises:
            WebhookError: with the HTTP status Zendesk should see. 4xx
                responses are final, 5xx make Zendesk redeliver.
        """
        classification = classify_zendesk_event(payload)

        if classification.action == ZendeskAction.REJECT:
            raise WebhookError(400, classification.reason)

        if classification.action == ZendeskAction.IGNORE:
            logger.info(f"Ignoring Zendesk webhook: {classification.reason}")
            return {'status': 'ignored', 'reason': classification.reason}

        slack_connection_id = self.zendesk_repo.authenticate_webhook(webhook_public_id, bearer_token)
        if slack_connection_id is None:
            raise WebhookError(401, "Unauthorized")

        try:
            return self.sync_service.process_zendesk_comment(slack_connection_id, classification.event)
        except ConversationNotFound as e:
            logger.warning(str(e))
            raise WebhookError(404, str(e))
        except UnauthorizedError as e:
            raise WebhookError(401, str(e))
        except IntegrationError as e:
            logger.error(f"Error relaying Zendesk comment on ticket {classification.event.ticket_id}: {e}")
            raise WebhookError(500, "Error posting message to Slack")
