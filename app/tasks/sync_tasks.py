import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.tasks.celery_app import celery_app
from app.database.connection import SessionLocal
from app.integrations.base import IntegrationError
from app.services.sync_service import SyncService
from app.services.channel_service import ChannelService
from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

RETRYABLE_ERRORS = (IntegrationError, SQLAlchemyError)


def _task_id(payload: Dict[str, Any], suffix: Optional[str] = None) -> Optional[str]:
    """Slack's event_id, so a redelivered webhook maps onto the same task"""
    event_id = payload.get("event_id")
    if not event_id:
        return None
    return f"{event_id}:{suffix}" if suffix else event_id


@celery_app.task(
    bind=True,
    name="app.tasks.sync_tasks.process_slack_message",
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=settings.task_retry_backoff_max,
    max_retries=settings.task_max_retries,
)
def process_slack_message(
    self,
    slack_connection_id: int,
    payload: Dict[str, Any],
    file_tokens: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Sync one Slack message event to Zendesk.

    Returns:
        Dict containing the sync result
    """
    db = SessionLocal()
    try:
        result = SyncService(db).process_slack_message(slack_connection_id, payload, file_tokens)
        logger.info(f"Processed Slack message for connection {slack_connection_id}: {result}")
        return result
    except RETRYABLE_ERRORS as e:
        logger.warning(
            f"Error processing Slack message for connection {slack_connection_id} "
            f"(attempt {self.request.retries + 1}): {e}"
        )
        raise
    finally:
        db.close()


@celery_app.task(
    bind=True,
    name="app.tasks.sync_tasks.upload_files_to_zendesk",
    max_retries=settings.task_max_retries,
)
def upload_files_to_zendesk(self, slack_connection_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Upload the files of a file_share message, then queue the message
    itself with the resulting upload tokens.

    When uploads keep failing the message is queued without tokens and
    the files are linked from the comment instead.
    """
    db = SessionLocal()
    try:
        tokens = SyncService(db).upload_message_files(slack_connection_id, payload)
    except RETRYABLE_ERRORS as e:
        if self.request.retries >= self.max_retries:
            logger.error(f"Giving up on file upload for connection {slack_connection_id}: {e}")
            enqueue_slack_message(slack_connection_id, payload, file_tokens=None)
            return {"status": "failed", "reason": str(e)}

        countdown = min(2 ** self.request.retries, settings.task_retry_backoff_max)
        logger.warning(f"File upload failed for connection {slack_connection_id}, retrying in {countdown}s: {e}")
        raise self.retry(exc=e, countdown=countdown)
    finally:
        db.close()

    if tokens is None:
        return {"status": "ignored", "reason": "Workspace cannot sync"}

    enqueue_slack_message(slack_connection_id, payload, file_tokens=tokens)
    return {"status": "processed", "uploaded": len(tokens)}


@celery_app.task(
    bind=True,
    name="app.tasks.sync_tasks.channel_lifecycle",
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=settings.task_retry_backoff_max,
    max_retries=settings.task_max_retries,
)
def channel_lifecycle(self, slack_connection_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        return ChannelService(db).handle_lifecycle_event(slack_connection_id, payload)
    finally:
        db.close()


@celery_app.task(
    bind=True,
    name="app.tasks.sync_tasks.subscription_changed",
    autoretry_for=(SQLAlchemyError,),
    retry_backoff=True,
    max_retries=settings.task_max_retries,
)
def subscription_changed(
    self,
    slack_connection_id: int,
    plan: Optional[str],
    period_end_iso: Optional[str] = None,
    subscription_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Apply a plan change and rebalance the workspace's channels"""
    period_end = datetime.fromisoformat(period_end_iso) if period_end_iso else None

    db = SessionLocal()
    try:
        return ChannelService(db).apply_subscription_change(slack_connection_id, plan, period_end, subscription_id)
    finally:
        db.close()


@celery_app.task(
    bind=True,
    name="app.tasks.sync_tasks.slack_app_uninstalled",
    autoretry_for=(SQLAlchemyError,),
    retry_backoff=True,
    max_retries=settings.task_max_retries,
)
def slack_app_uninstalled(self, slack_connection_id: int) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        return ChannelService(db).handle_uninstall(slack_connection_id)
    finally:
        db.close()


def enqueue_slack_message(
    slack_connection_id: int,
    payload: Dict[str, Any],
    file_tokens: Optional[List[str]] = None,
):
    suffix = "files" if file_tokens is not None else None
    return process_slack_message.apply_async(
        args=[slack_connection_id, payload, file_tokens],
        task_id=_task_id(payload, suffix),
    )


def enqueue_file_upload(slack_connection_id: int, payload: Dict[str, Any]):
    return upload_files_to_zendesk.apply_async(
        args=[slack_connection_id, payload],
        task_id=_task_id(payload, "upload"),
    )


def enqueue_lifecycle_event(slack_connection_id: int, payload: Dict[str, Any]):
    return channel_lifecycle.apply_async(
        args=[slack_connection_id, payload],
        task_id=_task_id(payload),
    )


def enqueue_uninstall(slack_connection_id: int, payload: Dict[str, Any]):
    return slack_app_uninstalled.apply_async(
        args=[slack_connection_id],
        task_id=_task_id(payload),
    )
