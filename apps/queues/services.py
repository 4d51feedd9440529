"""
Queue store operations.

All state changes on a QueueItem after it is created are conditional
updates: the claim matches ``status='pending'``, every later write matches
the lease token written by that claim.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.flows.models import RunStatus
from apps.queues.models import Queue, QueueItem

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = "default"


def find_or_create_queue(name: str, description: str = "") -> Queue:
    """
    Return the queue called ``name``, creating it on first use.

    Safe under concurrent callers: a lost insert race falls back to a read.
    """
    try:
        with transaction.atomic():
            queue, created = Queue.objects.get_or_create(
                name=name, defaults={"description": description}
            )
    except IntegrityError:
        return Queue.objects.get(name=name)
    if created:
        logger.info("Created queue %s", name, extra={"queue": name})
    return queue


def get_default_queue() -> Queue:
    name = getattr(settings, "FLOWS_DEFAULT_QUEUE", DEFAULT_QUEUE_NAME)
    return find_or_create_queue(name, description="Webhook fan-out queue")


def list_enabled_queues() -> list[Queue]:
    """Enabled queues ordered by name ascending."""
    return list(Queue.objects.filter(is_enabled=True).order_by("name"))


def enqueue(queue: Queue, flow, flow_run, payload: Any) -> QueueItem:
    """Append a pending item for ``flow_run`` to ``queue``."""
    item = QueueItem.objects.create(
        queue=queue,
        flow=flow,
        flow_run=flow_run,
        status=RunStatus.PENDING,
        payload=payload,
    )
    logger.debug(
        "Enqueued item %s in %s",
        item.pk,
        queue.name,
        extra={"queue": queue.name, "item_id": item.pk, "flow_run_id": flow_run.pk},
    )
    return item


def claim_item(item: QueueItem, lease_seconds: int | None = None) -> uuid.UUID | None:
    """
    Atomically move a pending item to processing under a fresh lease.

    Returns:
        The lease token, or None if the item was already taken.
    """
    if lease_seconds is None:
        lease_seconds = getattr(settings, "FLOWS_LEASE_SECONDS", 300)

    now = timezone.now()
    token = uuid.uuid4()
    claimed = QueueItem.objects.filter(pk=item.pk, status=RunStatus.PENDING).update(
        status=RunStatus.PROCESSING,
        lease_token=token,
        lease_expires_at=now + timedelta(seconds=lease_seconds),
        claimed_at=now,
        attempts=F("attempts") + 1,
        updated_at=now,
    )
    if not claimed:
        return None

    item.refresh_from_db(fields=["status", "lease_token", "lease_expires_at", "claimed_at", "attempts"])
    return token


def complete_item(item: QueueItem, lease_token: uuid.UUID) -> bool:
    return _finish(item, lease_token, status=RunStatus.COMPLETED, error="")


def fail_item(item: QueueItem, lease_token: uuid.UUID, error: str) -> bool:
    return _finish(item, lease_token, status=RunStatus.FAILED, error=error)


def release_item(item: QueueItem, lease_token: uuid.UUID, error: str = "") -> bool:
    """Hand a claimed item back to the queue for another attempt."""
    return _finish(item, lease_token, status=RunStatus.PENDING, error=error)


def _finish(item: QueueItem, lease_token: uuid.UUID, **fields) -> bool:
    fields.update(lease_token=None, lease_expires_at=None, updated_at=timezone.now())
    updated = QueueItem.objects.filter(
        pk=item.pk, status=RunStatus.PROCESSING, lease_token=lease_token
    ).update(**fields)
    if updated:
        for name, value in fields.items():
            setattr(item, name, value)
    else:
        logger.warning(
            "Lost lease on item %s; %s not recorded",
            item.pk,
            fields["status"],
            extra={"item_id": item.pk, "queue": item.queue_id},
        )
    return bool(updated)


@dataclass
class RequeueResult:
    requeued: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"requeued": self.requeued, "failed": self.failed}


def requeue_stale_items(queue: Queue | None = None, max_attempts: int | None = None) -> RequeueResult:
    """
    Recover items whose processor died mid-execution.

    Processing items with an expired lease go back to pending (their run
    too), or are failed once they have used up ``max_attempts``.
    """
    if max_attempts is None:
        max_attempts = getattr(settings, "FLOWS_MAX_ATTEMPTS", 3)

    stale = QueueItem.objects.select_related("flow_run").filter(
        status=RunStatus.PROCESSING, lease_expires_at__lte=timezone.now()
    )
    if queue is not None:
        stale = stale.filter(queue=queue)

    result = RequeueResult()
    for item in stale:
        token = item.lease_token
        if item.attempts >= max_attempts:
            error = f"Lease expired after {item.attempts} attempt(s)"
            if fail_item(item, token, error):
                item.flow_run.mark_failed(error)
                result.failed += 1
        elif release_item(item, token, error="Lease expired; requeued"):
            item.flow_run.mark_pending()
            result.requeued += 1

    if result.requeued or result.failed:
        logger.warning(
            "Recovered stale items: %d requeued, %d failed",
            result.requeued,
            result.failed,
            extra={"queue": getattr(queue, "name", None)},
        )
    return result
