"""Celery tasks for queue processing.

``process_all_queues`` is the periodic entry point (see CELERY_BEAT_SCHEDULE).
Transient storage errors are retried with exponential backoff and jitter;
everything else is recorded on the affected rows and not retried.
"""

from __future__ import annotations

from typing import Any

from celery import shared_task
from django.db import InterfaceError, OperationalError

from apps.flows.exceptions import TransientInfraError

RETRYABLE_ERRORS = (TransientInfraError, OperationalError, InterfaceError)


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_jitter=True,
    max_retries=3,
)
def process_all_queues(self, batch_size: int | None = None) -> dict[str, int]:
    """
    Run one batch orchestrator pass over all enabled queues.

    Returns:
        Mapping of queue name to items completed.
    """
    from apps.queues.orchestrator import BatchOrchestrator

    return BatchOrchestrator(batch_size=batch_size).run_once()


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_jitter=True,
    max_retries=3,
)
def process_queue_task(self, queue_name: str = "default", batch_size: int | None = None) -> dict[str, Any]:
    """Process one batch from a single queue."""
    from apps.queues.processor import QueueProcessor

    processed = QueueProcessor().process(queue_name, batch_size=batch_size)
    return {"queue": queue_name, "processed": processed}


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_jitter=True,
    max_retries=3,
)
def requeue_stale_items_task(self) -> dict[str, int]:
    """Recover expired leases across all queues."""
    from apps.queues.services import requeue_stale_items

    return requeue_stale_items().to_dict()
