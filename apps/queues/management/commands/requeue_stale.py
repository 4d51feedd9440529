"""
Management command to recover queue items whose lease has expired.

Usage:
    python manage.py requeue_stale
    python manage.py requeue_stale --queue default
"""

from django.core.management.base import BaseCommand, CommandError

from apps.queues.models import Queue
from apps.queues.services import requeue_stale_items


class Command(BaseCommand):
    help = "Requeue processing items with an expired lease (or fail them once attempts are exhausted)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--queue",
            type=str,
            help="Only recover items of this queue",
        )
        parser.add_argument(
            "--max-attempts",
            type=int,
            help="Fail items with at least this many attempts (default: FLOWS_MAX_ATTEMPTS)",
        )

    def handle(self, *args, **options):
        queue = None
        if options.get("queue"):
            try:
                queue = Queue.objects.get(name=options["queue"])
            except Queue.DoesNotExist:
                raise CommandError(f"Queue not found: {options['queue']}")

        result = requeue_stale_items(queue, max_attempts=options.get("max_attempts"))
        self.stdout.write(
            self.style.SUCCESS(f"Requeued {result.requeued} item(s), failed {result.failed} item(s)")
        )
