"""Admin configuration for queue models."""

from django.contrib import admin
from django.db import models as db_models
from django.db.models import Count, Q
from django.utils.html import format_html
from django_json_widget.widgets import JSONEditorWidget
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.flows.models import RunStatus
from apps.queues.models import BackgroundJob, JobStatus, Queue, QueueItem
from apps.queues.processor import QueueProcessor
from apps.queues.services import requeue_stale_items


@admin.register(Queue)
class QueueAdmin(DjangoObjectActions, admin.ModelAdmin):
    list_display = ["name", "is_enabled", "pending", "processing", "failed", "updated_at"]
    list_filter = ["is_enabled"]
    search_fields = ["name", "description"]
    readonly_fields = ["created_at", "updated_at"]
    change_actions = ["run_now", "requeue_stale"]

    def get_queryset(self, request):
        return (
            super()
            .get_queryset(request)
            .annotate(
                _pending=Count("items", filter=Q(items__status=RunStatus.PENDING)),
                _processing=Count("items", filter=Q(items__status=RunStatus.PROCESSING)),
                _failed=Count("items", filter=Q(items__status=RunStatus.FAILED)),
            )
        )

    @admin.display(description="Pending", ordering="_pending")
    def pending(self, obj):
        return obj._pending

    @admin.display(description="Processing", ordering="_processing")
    def processing(self, obj):
        return obj._processing

    @admin.display(description="Failed", ordering="_failed")
    def failed(self, obj):
        return obj._failed

    @object_action(label="Run Now", description="Process one batch from this queue")
    def run_now(self, request, obj):
        if not obj.is_enabled:
            self.message_user(request, f"Queue '{obj.name}' is disabled.", level="warning")
            return
        processed = QueueProcessor().process(obj.name)
        self.message_user(request, f"Queue '{obj.name}': {processed} item(s) completed.")

    @object_action(label="Requeue Stale", description="Recover items with an expired lease")
    def requeue_stale(self, request, obj):
        result = requeue_stale_items(obj)
        self.message_user(
            request,
            f"Queue '{obj.name}': {result.requeued} requeued, {result.failed} failed.",
        )


@admin.register(QueueItem)
class QueueItemAdmin(admin.ModelAdmin):
    list_display = ["id", "queue", "flow", "flow_run", "status_badge", "attempts", "created_at"]
    list_filter = ["status", "queue"]
    search_fields = ["flow__name", "error"]
    readonly_fields = [
        "queue",
        "flow",
        "flow_run",
        "status",
        "attempts",
        "error",
        "lease_token",
        "lease_expires_at",
        "claimed_at",
        "created_at",
        "updated_at",
    ]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("queue", "flow", "flow_run")

    def has_add_permission(self, request):
        return False

    @admin.display(description="Status", ordering="status")
    def status_badge(self, obj):
        colors = {
            RunStatus.PENDING: "#6c757d",
            RunStatus.PROCESSING: "#0d6efd",
            RunStatus.COMPLETED: "#198754",
            RunStatus.FAILED: "#dc3545",
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            colors.get(obj.status, "#000"),
            obj.get_status_display(),
        )


@admin.register(BackgroundJob)
class BackgroundJobAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "status", "started_at", "completed_at", "total_processed"]
    list_filter = ["status", "name"]
    readonly_fields = ["name", "status", "started_at", "completed_at", "error", "metadata"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}

    def has_add_permission(self, request):
        return False

    @admin.display(description="Processed")
    def total_processed(self, obj):
        if obj.status == JobStatus.RUNNING:
            return "-"
        return obj.total_processed
