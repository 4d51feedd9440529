"""
Management command to process queued flow work.

Usage:
    # One pass over every enabled queue (recorded as a BackgroundJob)
    python manage.py process_queues

    # A single queue
    python manage.py process_queues --queue default --batch-size 50

    # Machine-readable output
    python manage.py process_queues --json

    # Hand the pass to a Celery worker instead of running it here
    python manage.py process_queues --async
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.flows.exceptions import FlowEngineError
from apps.queues.orchestrator import BatchOrchestrator
from apps.queues.processor import QueueProcessor


class Command(BaseCommand):
    help = "Process pending queue items: claim, run flows, cascade to child flows."

    def add_arguments(self, parser):
        parser.add_argument(
            "--queue",
            type=str,
            help="Process only this queue (default: all enabled queues)",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            help="Maximum items per queue (default: FLOWS_DEFAULT_BATCH_SIZE)",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output results as JSON",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue the pass as a Celery task and return immediately",
        )

    def handle(self, *args, **options):
        queue_name = options.get("queue")
        batch_size = options.get("batch_size")

        if batch_size is not None and batch_size < 1:
            raise CommandError("--batch-size must be at least 1")

        if options.get("run_async"):
            self._queue_async(queue_name, batch_size)
            return

        try:
            if queue_name:
                processed = {queue_name: QueueProcessor().process(queue_name, batch_size=batch_size)}
            else:
                processed = BatchOrchestrator(batch_size=batch_size).run_once()
        except FlowEngineError as e:
            raise CommandError(f"Queue processing failed: {e}") from e

        if options.get("json"):
            self.stdout.write(json.dumps({"processed": processed}, indent=2))
            return

        if not processed:
            self.stdout.write(self.style.WARNING("No enabled queues."))
            return

        for name, count in processed.items():
            self.stdout.write(f"  {name:<30} {count} completed")
        self.stdout.write(
            self.style.SUCCESS(f"Processed {sum(processed.values())} item(s) across {len(processed)} queue(s)")
        )

    def _queue_async(self, queue_name, batch_size):
        from apps.queues.tasks import process_all_queues, process_queue_task

        if queue_name:
            async_res = process_queue_task.delay(queue_name=queue_name, batch_size=batch_size)
        else:
            async_res = process_all_queues.delay(batch_size=batch_size)
        self.stdout.write(self.style.SUCCESS(f"Queued task {async_res.id}"))
