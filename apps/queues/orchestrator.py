"""
Batch orchestrator.

One pass over every enabled queue, in name order, recorded as a
BackgroundJob:

    running → completed   metadata {started_at, completed_at, results}
    running → failed      metadata {started_at, failed_at, results}, error
"""

from __future__ import annotations

import logging

from django.utils import timezone

from apps.queues.models import BackgroundJob, JobStatus
from apps.queues.processor import QueueProcessor
from apps.queues.services import list_enabled_queues

logger = logging.getLogger(__name__)

JOB_NAME = "process-all-queues"


class BatchOrchestrator:
    """Run the queue processor over all enabled queues, sequentially."""

    def __init__(self, processor: QueueProcessor | None = None, batch_size: int | None = None):
        self.processor = processor or QueueProcessor()
        self.batch_size = batch_size

    def run_once(self) -> dict[str, int]:
        """
        Process every enabled queue once.

        Returns:
            Mapping of queue name to number of items completed.

        Raises:
            Whatever the processor raised; the job is marked failed first.
        """
        started_at = timezone.now()
        job = BackgroundJob.objects.create(
            name=JOB_NAME,
            status=JobStatus.RUNNING,
            started_at=started_at,
            metadata={"started_at": started_at.isoformat()},
        )
        log_extra = {"job_id": job.pk}
        logger.info("Background job %s started", job.pk, extra=log_extra)

        results: list[dict] = []
        processed: dict[str, int] = {}
        try:
            for queue in list_enabled_queues():
                count = self.processor.process(queue.name, batch_size=self.batch_size)
                processed[queue.name] = count
                results.append(
                    {"queue_id": queue.pk, "queue_name": queue.name, "processed_count": count}
                )
        except Exception as e:
            logger.exception("Background job %s failed", job.pk, extra=log_extra)
            job.mark_failed(
                str(e),
                metadata={
                    "started_at": started_at.isoformat(),
                    "failed_at": timezone.now().isoformat(),
                    "results": results,
                },
            )
            raise

        job.mark_completed(
            metadata={
                "started_at": started_at.isoformat(),
                "completed_at": timezone.now().isoformat(),
                "results": results,
            }
        )
        logger.info(
            "Background job %s completed: %d item(s) across %d queue(s)",
            job.pk,
            sum(processed.values()),
            len(processed),
            extra=log_extra,
        )
        return processed
