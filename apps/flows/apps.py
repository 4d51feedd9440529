"""Django app configuration for the flows app."""

from django.apps import AppConfig


class FlowsConfig(AppConfig):
    """Configuration for the Flows app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.flows"
    verbose_name = "Flows"
