"""
Queue processor.

Drains a bounded batch of pending items from one queue: claim, execute the
flow, record the outcome. Each item is isolated; one failure never affects
another item in the batch.

Usage:
    processor = QueueProcessor()
    completed = processor.process("default", batch_size=10)
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
import time

from django.conf import settings
from django.db import InterfaceError, OperationalError, close_old_connections, connections

from apps.flows.engine import FlowEngine
from apps.flows.exceptions import FlowEngineError, TransientInfraError
from apps.flows.models import RunStatus
from apps.queues.models import Queue, QueueItem
from apps.queues.services import (
    DEFAULT_QUEUE_NAME,
    claim_item,
    complete_item,
    fail_item,
    release_item,
    requeue_stale_items,
)

logger = logging.getLogger(__name__)

LEASE_GRACE_SECONDS = 30


class QueueProcessor:
    """
    Process pending queue items.

    Settings (overridable per instance):
        FLOWS_DEFAULT_BATCH_SIZE, FLOWS_ITEM_TIMEOUT_SECONDS,
        FLOWS_MAX_ATTEMPTS, FLOWS_PROCESSOR_MAX_WORKERS

    FLOWS_LEASE_SECONDS is raised to at least the item timeout plus
    LEASE_GRACE_SECONDS.
    """

    def __init__(
        self,
        engine: FlowEngine | None = None,
        item_timeout: float | None = None,
        max_attempts: int | None = None,
        max_workers: int | None = None,
    ):
        self.engine = engine or FlowEngine()
        self.item_timeout = (
            item_timeout
            if item_timeout is not None
            else getattr(settings, "FLOWS_ITEM_TIMEOUT_SECONDS", 120)
        )
        self.max_attempts = (
            max_attempts if max_attempts is not None else getattr(settings, "FLOWS_MAX_ATTEMPTS", 3)
        )
        self.max_workers = (
            max_workers
            if max_workers is not None
            else getattr(settings, "FLOWS_PROCESSOR_MAX_WORKERS", 1)
        )
        # The lease always outlives the item deadline.
        self.lease_seconds = getattr(settings, "FLOWS_LEASE_SECONDS", 300)
        if self.item_timeout:
            self.lease_seconds = max(self.lease_seconds, math.ceil(self.item_timeout) + LEASE_GRACE_SECONDS)

    def process(self, queue_name: str = DEFAULT_QUEUE_NAME, batch_size: int | None = None) -> int:
        """
        Process up to ``batch_size`` pending items of ``queue_name``, oldest first.

        Returns:
            Number of items that completed successfully. A missing or
            disabled queue yields 0.
        """
        if batch_size is None:
            batch_size = getattr(settings, "FLOWS_DEFAULT_BATCH_SIZE", 10)

        queue = Queue.objects.filter(name=queue_name, is_enabled=True).first()
        if queue is None:
            logger.debug("Queue %s missing or disabled; nothing to do", queue_name)
            return 0

        requeue_stale_items(queue, max_attempts=self.max_attempts)

        items = list(
            QueueItem.objects.select_related("flow", "flow_run", "queue")
            .filter(queue=queue, status=RunStatus.PENDING)
            .order_by("created_at", "id")[:batch_size]
        )
        if not items:
            return 0

        logger.info(
            "Processing %d item(s) from queue %s",
            len(items),
            queue.name,
            extra={"queue": queue.name},
        )

        if self.max_workers <= 1 or len(items) == 1:
            completed = sum(1 for item in items if self._process_isolated(item))
        else:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                completed = sum(1 for ok in pool.map(self._process_in_thread, items) if ok)

        logger.info(
            "Queue %s: %d of %d item(s) completed",
            queue.name,
            completed,
            len(items),
            extra={"queue": queue.name},
        )
        return completed

    def _process_in_thread(self, item: QueueItem) -> bool:
        close_old_connections()
        try:
            return self._process_isolated(item)
        finally:
            connections.close_all()

    def _process_isolated(self, item: QueueItem) -> bool:
        try:
            return self.process_item(item)
        except Exception:
            logger.exception(
                "Unhandled error processing item %s",
                item.pk,
                extra={"item_id": item.pk, "queue": item.queue.name},
            )
            return False

    def process_item(self, item: QueueItem) -> bool:
        """
        Claim and execute one item.

        Returns:
            True if the item completed. False if it was already taken,
            failed, or was released for another attempt.
        """
        log_extra = {
            "item_id": item.pk,
            "queue": item.queue.name,
            "flow_id": item.flow_id,
            "flow_run_id": item.flow_run_id,
        }

        lease_token = claim_item(item, lease_seconds=self.lease_seconds)
        if lease_token is None:
            logger.debug("Item %s already taken", item.pk, extra=log_extra)
            return False

        run = item.flow_run
        if not run.mark_processing():
            run.refresh_from_db()
            fail_item(item, lease_token, f"Flow run {run.pk} is already {run.status}")
            return False

        deadline = time.monotonic() + self.item_timeout if self.item_timeout else None

        try:
            result = self.engine.execute(item.flow, item.payload, run=run, deadline=deadline)
        except (TransientInfraError, OperationalError, InterfaceError) as e:
            return self._handle_transient(item, run, lease_token, e, log_extra)
        except FlowEngineError as e:
            logger.warning("Item %s failed: %s", item.pk, e, extra=log_extra)
            self._fail(item, run, lease_token, str(e))
            return False
        except Exception as e:
            logger.exception("Item %s failed unexpectedly", item.pk, extra=log_extra)
            self._fail(item, run, lease_token, f"Unexpected error: {e}")
            return False

        if not complete_item(item, lease_token):
            return False
        run.mark_completed(result.output)
        logger.info(
            "Item %s completed (%d child run(s))",
            item.pk,
            len(result.children),
            extra=log_extra,
        )
        return True

    def _handle_transient(self, item, run, lease_token, error, log_extra) -> bool:
        message = f"Transient error: {error}"
        if item.attempts < self.max_attempts:
            logger.warning(
                "Item %s hit a transient error (attempt %d/%d); releasing",
                item.pk,
                item.attempts,
                self.max_attempts,
                extra=log_extra,
            )
            if release_item(item, lease_token, error=message):
                run.mark_pending()
            return False

        logger.error(
            "Item %s exhausted %d attempt(s): %s",
            item.pk,
            item.attempts,
            error,
            extra=log_extra,
        )
        self._fail(item, run, lease_token, message)
        return False

    def _fail(self, item, run, lease_token, error: str) -> None:
        if fail_item(item, lease_token, error):
            run.mark_failed(error)
