"""Admin configuration for flow models."""

from django.contrib import admin
from django.db import models as db_models
from django.utils.html import format_html
from django_json_widget.widgets import JSONEditorWidget
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.flows.engine import validate_steps
from apps.flows.models import Flow, FlowRun, RunStatus


class ChildFlowInline(admin.TabularInline):
    """Read-only list of the flows nested under a flow."""

    model = Flow
    fk_name = "parent_flow"
    fields = ["name", "is_enabled"]
    readonly_fields = ["name", "is_enabled"]
    extra = 0
    can_delete = False
    show_change_link = True
    verbose_name = "Child flow"
    verbose_name_plural = "Child flows"

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Flow)
class FlowAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for Flow. Step configuration and linkage are checked by ``Flow.clean()``."""

    list_display = ["name", "parent_flow", "is_enabled", "step_count", "webhook_count", "updated_at"]
    list_filter = ["is_enabled"]
    search_fields = ["name", "description"]
    filter_horizontal = ["webhooks"]
    readonly_fields = ["created_at", "updated_at"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}
    inlines = [ChildFlowInline]
    change_actions = ["check_steps"]

    fieldsets = [
        (None, {"fields": ["name", "description", "is_enabled"]}),
        ("Triggers", {"fields": ["parent_flow", "webhooks"]}),
        ("Steps", {"fields": ["config"]}),
        ("Timestamps", {"fields": ["created_at", "updated_at"], "classes": ["collapse"]}),
    ]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("parent_flow").prefetch_related("webhooks")

    @admin.display(description="Steps")
    def step_count(self, obj):
        return len(obj.get_steps())

    @admin.display(description="Webhooks")
    def webhook_count(self, obj):
        return len(obj.webhooks.all())

    @object_action(label="Check Steps", description="Validate this flow's step configuration")
    def check_steps(self, request, obj):
        errors = validate_steps(obj.get_steps())
        if errors:
            self.message_user(request, "; ".join(errors), level="error")
        else:
            self.message_user(request, f"Flow '{obj.name}': {len(obj.get_steps())} step(s) valid.")


@admin.register(FlowRun)
class FlowRunAdmin(admin.ModelAdmin):
    """Flow runs are written by the queue processor only."""

    list_display = ["id", "flow", "status_badge", "depth", "parent_run", "created_at", "duration"]
    list_filter = ["status", "flow"]
    search_fields = ["flow__name", "error"]
    readonly_fields = [
        "flow",
        "webhook_event",
        "parent_run",
        "lineage",
        "status",
        "input",
        "output",
        "error",
        "started_at",
        "completed_at",
        "created_at",
        "updated_at",
    ]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("flow", "parent_run")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
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

    @admin.display(description="Duration")
    def duration(self, obj):
        if obj.duration_ms is None:
            return "-"
        return f"{obj.duration_ms:.0f} ms"
