"""Django app configuration for the queues app."""

from django.apps import AppConfig


class QueuesConfig(AppConfig):
    """Configuration for the Queues app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.queues"
    verbose_name = "Queues"

    def ready(self):
        from apps.queues import checks  # noqa: F401
