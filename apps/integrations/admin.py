"""Admin configuration for integration models."""

from django.contrib import admin
from django.db import models as db_models
from django_json_widget.widgets import JSONEditorWidget

from apps.integrations.models import App, Integration


@admin.register(App)
class AppAdmin(admin.ModelAdmin):
    list_display = ["name", "type", "integration_count", "updated_at"]
    list_filter = ["type"]
    search_fields = ["name", "description"]

    @admin.display(description="Integrations")
    def integration_count(self, obj):
        return obj.integrations.count()


@admin.register(Integration)
class IntegrationAdmin(admin.ModelAdmin):
    list_display = ["name", "app", "is_enabled", "updated_at"]
    list_filter = ["is_enabled", "app__type"]
    search_fields = ["name", "app__name"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("app")
