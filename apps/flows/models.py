"""
Models for flow definitions and flow runs.

Flows form a forest: root flows are triggered by webhooks, child flows by the
successful completion of their parent's run.
"""

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone


class RunStatus(models.TextChoices):
    """Execution state machine shared by FlowRun and QueueItem.

    pending → processing → completed | failed
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


TERMINAL_STATUSES = (RunStatus.COMPLETED, RunStatus.FAILED)
ACTIVE_STATUSES = (RunStatus.PENDING, RunStatus.PROCESSING)


class Flow(models.Model):
    """
    A named, ordered list of steps, optionally nested under a parent flow.

    Example config:
    {
        "steps": [
            {"type": "condition", "condition": "severity in ['high', 'critical']"},
            {"type": "transform", "transform": {"title": "upper(title)"}},
            {"type": "integration", "integration_id": 3}
        ]
    }
    """

    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True, default="")
    config = models.JSONField(
        default=dict,
        blank=True,
        help_text='Flow configuration, e.g. {"steps": [...]}.',
    )
    is_enabled = models.BooleanField(default=True, db_index=True)
    parent_flow = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="child_flows",
        help_text="Parent flow whose successful runs trigger this flow.",
    )
    webhooks = models.ManyToManyField(
        "webhooks.Webhook",
        blank=True,
        related_name="flows",
        help_text="Webhooks whose deliveries trigger this flow.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["parent_flow", "is_enabled"], name="flow_parent_enabled_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def is_root(self) -> bool:
        return self.parent_flow_id is None

    @property
    def queue_name(self) -> str:
        """Queue that receives this flow's work when triggered by a parent."""
        return f"flow-{self.pk}"

    def get_steps(self) -> list:
        """Return the step list from config (empty for identity flows)."""
        if not isinstance(self.config, dict):
            return []
        return self.config.get("steps") or []

    def ancestors(self) -> list["Flow"]:
        """Walk up the parent chain, nearest first. Stops on a cycle."""
        chain: list[Flow] = []
        seen = {self.pk}
        current = self.parent_flow
        while current is not None and current.pk not in seen:
            chain.append(current)
            seen.add(current.pk)
            current = current.parent_flow
        return chain

    def clean(self):
        super().clean()
        errors: dict[str, list[str]] = {}

        if self.parent_flow_id is not None:
            if self.pk is not None and self.parent_flow_id == self.pk:
                errors.setdefault("parent_flow", []).append("A flow cannot be its own parent.")
            elif self.pk is not None:
                chain = self.parent_flow.ancestors()
                if any(flow.pk == self.pk for flow in chain):
                    errors.setdefault("parent_flow", []).append(
                        "A flow cannot be nested under one of its own descendants."
                    )

        if not isinstance(self.config, dict):
            errors["config"] = ["Config must be a JSON object."]
        else:
            from apps.flows.engine import validate_steps

            steps = self.config.get("steps")
            if steps is not None and not isinstance(steps, list):
                errors["config"] = ["'steps' must be a list."]
            elif steps:
                step_errors = validate_steps(steps)
                if step_errors:
                    errors["config"] = step_errors

        if errors:
            raise ValidationError(errors)


class FlowRun(models.Model):
    """
    One execution attempt of a flow against an input payload.

    Mutated only by the queue processor. Transition helpers are conditional
    updates: they refuse to move a run out of a terminal state.
    """

    flow = models.ForeignKey(
        Flow,
        on_delete=models.CASCADE,
        related_name="runs",
    )
    webhook_event = models.ForeignKey(
        "webhooks.WebhookEvent",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="flow_runs",
        help_text="Delivery that triggered this run (root flows only).",
    )
    parent_run = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="child_runs",
        help_text="Completed parent run whose output is this run's input.",
    )
    lineage = models.JSONField(
        default=list,
        blank=True,
        help_text="Ancestor flow ids, root first. Its length is the cascade depth.",
    )

    status = models.CharField(
        max_length=20,
        choices=RunStatus.choices,
        default=RunStatus.PENDING,
        db_index=True,
    )
    input = models.JSONField(default=dict, blank=True, null=True)
    output = models.JSONField(null=True, blank=True)
    error = models.TextField(blank=True, default="")

    started_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["flow", "status"], name="flowrun_flow_status_idx"),
            models.Index(fields=["status", "created_at"], name="flowrun_status_created_idx"),
        ]

    def __str__(self):
        return f"Run {self.pk} of {self.flow_id} [{self.status}]"

    @property
    def depth(self) -> int:
        return len(self.lineage or [])

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_ms(self) -> float | None:
        if not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def _transition(self, allowed_from, **fields) -> bool:
        fields["updated_at"] = timezone.now()
        updated = FlowRun.objects.filter(pk=self.pk, status__in=allowed_from).update(**fields)
        if updated:
            for name, value in fields.items():
                setattr(self, name, value)
        return bool(updated)

    def mark_processing(self) -> bool:
        """Mark the run as claimed by a processor."""
        return self._transition(
            ACTIVE_STATUSES,
            status=RunStatus.PROCESSING,
            started_at=timezone.now(),
        )

    def mark_completed(self, output) -> bool:
        """Mark the run as completed with its output."""
        return self._transition(
            ACTIVE_STATUSES,
            status=RunStatus.COMPLETED,
            output=output,
            error="",
            completed_at=timezone.now(),
        )

    def mark_failed(self, error: str) -> bool:
        """Mark the run as failed. No output is kept."""
        return self._transition(
            ACTIVE_STATUSES,
            status=RunStatus.FAILED,
            output=None,
            error=error,
            completed_at=timezone.now(),
        )

    def mark_pending(self) -> bool:
        """Return a processing run to the pending state (lease expiry, transient error)."""
        return self._transition((RunStatus.PROCESSING,), status=RunStatus.PENDING)
