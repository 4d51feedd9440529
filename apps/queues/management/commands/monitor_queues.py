"""
Management command to monitor queues, flow runs and background jobs.

Usage:
    # Queue depths
    python manage.py monitor_queues

    # Recent flow runs, optionally filtered by status
    python manage.py monitor_queues --runs --status failed --limit 20

    # Recent background jobs
    python manage.py monitor_queues --jobs

    # Details for one flow run
    python manage.py monitor_queues --run-id 42
"""

from django.core.management.base import BaseCommand
from django.db.models import Count, Q

from apps.flows.models import FlowRun, RunStatus
from apps.queues.models import BackgroundJob, Queue


class Command(BaseCommand):
    help = "Monitor queues: depths, recent flow runs and background jobs."

    def add_arguments(self, parser):
        parser.add_argument(
            "--runs",
            action="store_true",
            help="List recent flow runs",
        )
        parser.add_argument(
            "--jobs",
            action="store_true",
            help="List recent background jobs",
        )
        parser.add_argument(
            "--status",
            type=str,
            help="Filter flow runs by status (pending, processing, completed, failed)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=10,
            help="Number of rows to show (default: 10)",
        )
        parser.add_argument(
            "--run-id",
            type=int,
            help="Show details for a specific flow run",
        )

    def handle(self, *args, **options):
        limit = options.get("limit")

        if options.get("run_id"):
            self.show_run_details(options["run_id"])
        elif options.get("runs"):
            self.list_runs(options.get("status"), limit)
        elif options.get("jobs"):
            self.list_jobs(limit)
        else:
            self.list_queues()

    def list_queues(self):
        queues = Queue.objects.annotate(
            pending=Count("items", filter=Q(items__status=RunStatus.PENDING)),
            processing=Count("items", filter=Q(items__status=RunStatus.PROCESSING)),
            failed=Count("items", filter=Q(items__status=RunStatus.FAILED)),
        ).order_by("name")

        if not queues:
            self.stdout.write(self.style.WARNING("No queues found."))
            return

        self.stdout.write(f"{'Queue':<30} {'Enabled':<8} {'Pending':<8} {'Processing':<11} {'Failed':<8}")
        self.stdout.write("-" * 70)
        for queue in queues:
            self.stdout.write(
                f"{queue.name:<30} {'yes' if queue.is_enabled else 'no':<8} "
                f"{queue.pending:<8} {queue.processing:<11} {queue.failed:<8}"
            )

    def list_runs(self, status, limit):
        qs = FlowRun.objects.select_related("flow")
        if status:
            qs = qs.filter(status__iexact=status)
        qs = qs.order_by("-created_at")[:limit]

        if not qs:
            self.stdout.write(self.style.WARNING("No flow runs found."))
            return

        self.stdout.write(f"{'Run':<8} {'Status':<11} {'Flow':<30} {'Depth':<6} {'Created':<20}")
        self.stdout.write("-" * 80)
        for run in qs:
            self.stdout.write(
                f"{run.pk:<8} {run.status:<11} {run.flow.name[:30]:<30} {run.depth:<6} "
                f"{run.created_at:%Y-%m-%d %H:%M:%S}"
            )

    def list_jobs(self, limit):
        jobs = BackgroundJob.objects.order_by("-started_at")[:limit]
        if not jobs:
            self.stdout.write(self.style.WARNING("No background jobs found."))
            return

        self.stdout.write(f"{'Job':<8} {'Status':<10} {'Started':<20} {'Processed':<10}")
        self.stdout.write("-" * 50)
        for job in jobs:
            self.stdout.write(
                f"{job.pk:<8} {job.status:<10} {job.started_at:%Y-%m-%d %H:%M:%S} {job.total_processed:<10}"
            )
            if job.error:
                self.stdout.write(self.style.ERROR(f"    Error: {job.error}"))

    def show_run_details(self, run_id):
        try:
            run = FlowRun.objects.select_related("flow", "parent_run").get(pk=run_id)
        except FlowRun.DoesNotExist:
            self.stdout.write(self.style.ERROR(f"Flow run not found: {run_id}"))
            return

        self.stdout.write(self.style.HTTP_INFO(f"Flow Run: {run.pk}"))
        self.stdout.write(f"  Flow: {run.flow.name} ({run.flow_id})")
        self.stdout.write(f"  Status: {run.status}")
        self.stdout.write(f"  Lineage: {run.lineage}")
        self.stdout.write(f"  Parent run: {run.parent_run_id or '-'}")
        self.stdout.write(f"  Webhook event: {run.webhook_event_id or '-'}")
        self.stdout.write(f"  Started: {run.started_at}")
        self.stdout.write(f"  Completed: {run.completed_at}")
        if run.duration_ms is not None:
            self.stdout.write(f"  Duration: {run.duration_ms:.2f} ms")
        if run.error:
            self.stdout.write(self.style.ERROR(f"  Error: {run.error}"))
        self.stdout.write("")
        self.stdout.write("Queue items:")
        for item in run.queue_items.select_related("queue"):
            self.stdout.write(f"  - {item.pk:<6} {item.queue.name:<24} {item.status:<11} attempts={item.attempts}")
        children = list(run.child_runs.select_related("flow"))
        if children:
            self.stdout.write("Child runs:")
            for child in children:
                self.stdout.write(f"  - {child.pk:<6} {child.flow.name:<24} {child.status}")
