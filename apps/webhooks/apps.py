"""Django app configuration for the webhooks app."""

from django.apps import AppConfig


class WebhooksConfig(AppConfig):
    """Configuration for the Webhooks app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.webhooks"
    verbose_name = "Webhooks"
