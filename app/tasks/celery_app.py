from celery import Celery
from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "zensync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.tasks.sync_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    # Redeliver a message when the worker dies mid-task
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    result_expires=3600,  # 1 hour
    broker_connection_retry_on_startup=True,
    worker_send_task_events=True,
    task_send_sent_event=True,
)

celery_app.conf.task_default_queue = "process-slack-messages"

celery_app.conf.task_routes = {
    "app.tasks.sync_tasks.process_slack_message": {"queue": "process-slack-messages"},
    "app.tasks.sync_tasks.channel_lifecycle": {"queue": "process-slack-messages"},
    "app.tasks.sync_tasks.upload_files_to_zendesk": {"queue": "upload-files-to-zendesk"},
    "app.tasks.sync_tasks.subscription_changed": {"queue": "subscription-changed"},
    "app.tasks.sync_tasks.slack_app_uninstalled": {"queue": "slack-app-uninstalled"},
}

if __name__ == "__main__":
    celery_app.start()
