"""Admin configuration for webhook models."""

from django.contrib import admin, messages
from django.db import models as db_models
from django_json_widget.widgets import JSONEditorWidget
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.webhooks.models import Webhook, WebhookEvent


@admin.register(Webhook)
class WebhookAdmin(DjangoObjectActions, admin.ModelAdmin):
    """
    Admin for Webhook.

    Tokens are generated server-side and displayed once, in the message shown
    after creation or after "Reset Token".
    """

    list_display = ["name", "id", "is_enabled", "redacted_token", "flow_count", "updated_at"]
    list_filter = ["is_enabled"]
    search_fields = ["name", "description"]
    readonly_fields = ["id", "redacted_token", "created_at", "updated_at"]
    change_actions = ["reset_token"]

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related("flows")

    @admin.display(description="Flows")
    def flow_count(self, obj):
        return len(obj.flows.all())

    @admin.display(description="Token")
    def redacted_token(self, obj):
        return obj.redacted_token or "-"

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        if not obj.has_token:
            token = obj.issue_token()
            self._show_token(request, obj, token)

    @object_action(label="Reset Token", description="Issue a new token; the old one stops working")
    def reset_token(self, request, obj):
        token = obj.issue_token()
        self._show_token(request, obj, token)

    def _show_token(self, request, obj, token):
        self.message_user(
            request,
            f"New token for '{obj.name}' (shown only once): {token}",
            level=messages.WARNING,
        )


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """Events are immutable records of accepted deliveries."""

    list_display = ["id", "webhook", "status", "flow_run_count", "received_at"]
    list_filter = ["status", "webhook"]
    readonly_fields = ["webhook", "status", "error", "raw_payload", "received_at", "updated_at"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("webhook").prefetch_related("flow_runs")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    @admin.display(description="Flow runs")
    def flow_run_count(self, obj):
        return len(obj.flow_runs.all())
