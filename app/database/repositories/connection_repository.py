"""
Credential store for Slack workspaces and their Zendesk accounts.
Secrets are encrypted at rest and only decrypted on request.
"""

from datetime import datetime
from typing import Optional, Dict, Any, Tuple
from sqlalchemy.orm import Session

from app.models.slack_connection import SlackConnection, SlackConnectionStatus
from app.models.zendesk_connection import ZendeskConnection, ZendeskConnectionStatus
from app.database.repositories.base_repository import BaseRepository
from app.core.encryption import encrypt_data, decrypt_data
from app.core.plans import DEFAULT_PLAN
from app.schemas.connection import GlobalSettings
from app.core.security import (
    generate_webhook_token,
    generate_webhook_public_id,
    hash_webhook_token,
    verify_webhook_token,
)
import logging

logger = logging.getLogger(__name__)


class SlackConnectionRepository(BaseRepository[SlackConnection]):
    """Repository for installed Slack workspaces"""

    def __init__(self, db: Session):
        super().__init__(SlackConnection, db)

    def get_by_app_id(self, app_id: str) -> Optional[SlackConnection]:
        return self.db.query(SlackConnection).filter(SlackConnection.app_id == app_id).first()

    def get_by_team_id(self, team_id: str) -> Optional[SlackConnection]:
        return self.db.query(SlackConnection).filter(SlackConnection.slack_team_id == team_id).first()

    def save_installation(
        self,
        slack_team_id: str,
        app_id: str,
        bot_token: str,
        bot_user_id: str,
        name: Optional[str] = None,
        domain: Optional[str] = None,
        authed_user_id: Optional[str] = None,
    ) -> SlackConnection:
        """
        Create the workspace connection, or refresh it on re-install.

        A re-install reactivates a previously uninstalled workspace and
        replaces its token; subscription and settings are preserved.
        """
        data = {
            "app_id": app_id,
            "name": name,
            "domain": domain,
            "bot_user_id": bot_user_id,
            "authed_user_id": authed_user_id,
            "encrypted_token": encrypt_data(bot_token),
            "status": SlackConnectionStatus.ACTIVE,
        }

        existing = self.get_by_team_id(slack_team_id)
        if existing:
            logger.info(f"Refreshing installation for Slack team {slack_team_id}")
            return self.update(existing, data)

        logger.info(f"Creating installation for Slack team {slack_team_id}")
        data["slack_team_id"] = slack_team_id
        data["global_settings"] = {}
        data["plan"] = DEFAULT_PLAN
        return self.create(data)

    def get_bot_token(self, connection: SlackConnection) -> str:
        """Decrypt the bot token for the current invocation"""
        return decrypt_data(connection.encrypted_token)

    def mark_uninstalled(self, connection: SlackConnection) -> SlackConnection:
        return self.update(connection, {"status": SlackConnectionStatus.UNINSTALLED})

    def update_subscription(
        self,
        connection: SlackConnection,
        plan: Optional[str],
        period_end: Optional[datetime],
        subscription_id: Optional[str] = None,
    ) -> SlackConnection:
        data = {"plan": plan, "subscription_period_end": period_end}
        if subscription_id is not None:
            data["subscription_id"] = subscription_id
        return self.update(connection, data)

    def update_global_settings(self, connection: SlackConnection, changes: Dict[str, Any]) -> SlackConnection:
        merged = dict(connection.global_settings or {})
        merged.update(changes)
        settings = GlobalSettings.model_validate(merged)
        return self.update(connection, {"global_settings": settings.model_dump()})


class ZendeskConnectionRepository(BaseRepository[ZendeskConnection]):
    """Repository for Zendesk credentials linked to a Slack workspace"""

    def __init__(self, db: Session):
        super().__init__(ZendeskConnection, db)

    def get_by_slack_connection(self, slack_connection_id: int) -> Optional[ZendeskConnection]:
        return self.db.query(ZendeskConnection).filter(
            ZendeskConnection.slack_connection_id == slack_connection_id
        ).first()

    def get_by_webhook_public_id(self, webhook_public_id: str) -> Optional[ZendeskConnection]:
        return self.db.query(ZendeskConnection).filter(
            ZendeskConnection.webhook_public_id == webhook_public_id
        ).first()

    def save_credentials(
        self,
        slack_connection_id: int,
        zendesk_domain: str,
        zendesk_email: str,
        api_key: str,
    ) -> Tuple[ZendeskConnection, str]:
        """
        Store Zendesk credentials and issue a fresh webhook bearer token.

        Returns the connection and the plain bearer token. Only the bcrypt
        hash of the token is persisted, so this is the only chance to read it.
        """
        bearer_token = generate_webhook_token()
        data = {
            "zendesk_domain": zendesk_domain,
            "zendesk_email": zendesk_email,
            "encrypted_api_key": encrypt_data(api_key),
            "hashed_webhook_bearer_token": hash_webhook_token(bearer_token),
            "status": ZendeskConnectionStatus.ACTIVE,
        }

        existing = self.get_by_slack_connection(slack_connection_id)
        if existing:
            return self.update(existing, data), bearer_token

        data["slack_connection_id"] = slack_connection_id
        data["webhook_public_id"] = generate_webhook_public_id()
        return self.create(data), bearer_token

    def get_credentials(self, slack_connection_id: int) -> Optional[Dict[str, Any]]:
        """
        Decrypted client config for the workspace's Zendesk account,
        or None when Zendesk has not been configured yet.
        """
        connection = self.get_by_slack_connection(slack_connection_id)
        if not connection or connection.status != ZendeskConnectionStatus.ACTIVE:
            return None

        return {
            "subdomain": connection.zendesk_domain,
            "email": connection.zendesk_email,
            "token": decrypt_data(connection.encrypted_api_key),
        }

    def authenticate_webhook(self, webhook_public_id: Optional[str], bearer_token: Optional[str]) -> Optional[int]:
        """
        Resolve the Slack connection id a Zendesk webhook call belongs to.

        Returns None when the public id is unknown or the token does not match.
        """
        if not webhook_public_id or not bearer_token:
            logger.warning("Zendesk webhook missing public id or bearer token")
            return None

        connection = self.get_by_webhook_public_id(webhook_public_id)
        if not connection:
            logger.warning(f"No Zendesk connection for webhook id {webhook_public_id}")
            return None

        if not verify_webhook_token(bearer_token, connection.hashed_webhook_bearer_token):
            logger.warning(f"Invalid bearer token for webhook id {webhook_public_id}")
            return None

        return connection.slack_connection_id
