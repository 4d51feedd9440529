"""
Queue, QueueItem and BackgroundJob models.

A QueueItem is one unit of work: execute ``flow`` for ``flow_run`` with
``payload``. Items move through the same state machine as their run.
"""

from django.db import models
from django.utils import timezone

from apps.flows.models import ACTIVE_STATUSES, RunStatus


class Queue(models.Model):
    """A named work queue."""

    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, default="")
    is_enabled = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def pending_count(self) -> int:
        return self.items.filter(status=RunStatus.PENDING).count()


class QueueItem(models.Model):
    """
    One enqueued flow execution.

    ``lease_token`` and ``lease_expires_at`` are written by the atomic claim;
    every later write is conditional on the token still matching, so a
    processor whose lease expired cannot overwrite a newer owner.
    """

    queue = models.ForeignKey(
        Queue,
        on_delete=models.CASCADE,
        related_name="items",
    )
    flow = models.ForeignKey(
        "flows.Flow",
        on_delete=models.CASCADE,
        related_name="queue_items",
    )
    flow_run = models.ForeignKey(
        "flows.FlowRun",
        on_delete=models.CASCADE,
        related_name="queue_items",
    )
    status = models.CharField(
        max_length=20,
        choices=RunStatus.choices,
        default=RunStatus.PENDING,
        db_index=True,
    )
    payload = models.JSONField(default=dict, blank=True, null=True)
    error = models.TextField(blank=True, default="")
    attempts = models.PositiveIntegerField(default=0)

    lease_token = models.UUIDField(null=True, blank=True, editable=False)
    lease_expires_at = models.DateTimeField(null=True, blank=True)
    claimed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["queue", "status", "created_at"], name="queueitem_queue_status_idx"),
            models.Index(fields=["status", "lease_expires_at"], name="queueitem_status_lease_idx"),
        ]

    def __str__(self):
        return f"Item {self.pk} in {self.queue_id} [{self.status}]"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def lease_expired(self) -> bool:
        return (
            self.status == RunStatus.PROCESSING
            and self.lease_expires_at is not None
            and self.lease_expires_at <= timezone.now()
        )


class JobStatus(models.TextChoices):
    """Status of a batch orchestrator pass."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class BackgroundJob(models.Model):
    """Record of one batch orchestrator pass over all enabled queues."""

    name = models.CharField(max_length=255, db_index=True)
    status = models.CharField(
        max_length=20,
        choices=JobStatus.choices,
        default=JobStatus.RUNNING,
        db_index=True,
    )
    started_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    error = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-started_at"]

    def __str__(self):
        return f"{self.name} @ {self.started_at:%Y-%m-%d %H:%M:%S} [{self.status}]"

    @property
    def duration_ms(self) -> float | None:
        if not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    @property
    def total_processed(self) -> int:
        return sum(r.get("processed_count", 0) for r in self.metadata.get("results", []))

    def mark_completed(self, metadata: dict):
        self.status = JobStatus.COMPLETED
        self.completed_at = timezone.now()
        self.metadata = metadata
        self.save(update_fields=["status", "completed_at", "metadata"])

    def mark_failed(self, error: str, metadata: dict):
        self.status = JobStatus.FAILED
        self.completed_at = timezone.now()
        self.error = error
        self.metadata = metadata
        self.save(update_fields=["status", "completed_at", "error", "metadata"])
