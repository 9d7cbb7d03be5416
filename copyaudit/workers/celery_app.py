# =============================================================================
# Celery Application
# =============================================================================
#
# Broker on Redis db 0, results on Redis db 1. The API dispatches guideline
# ingestion here when a caller asks for background processing and polls
# the result with GET /guidelines/tasks/{task_id}.
# =============================================================================

from celery import Celery
from celery.signals import worker_process_init

from copyaudit.config import settings
from copyaudit.logging_config import setup_logging

celery_app = Celery(
    "copyaudit.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # JSON only: task payloads are ids and counts.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Re-queue if a worker dies mid-ingestion.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_soft_time_limit=600,
    task_time_limit=900,
    result_expires=3600,
    include=["copyaudit.workers.tasks"],
)


@worker_process_init.connect
def _configure_worker_logging(**_kwargs) -> None:
    setup_logging(settings.log_level, json_output=settings.log_json)
