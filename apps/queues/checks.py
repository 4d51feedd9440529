"""
Django system checks for the queues app.

Run with `python manage.py check` (or `--tag queues`).
"""

from django.conf import settings
from django.core.checks import Error, register


@register("queues")
def check_lease_outlives_item_timeout(app_configs, **kwargs):
    """
    A claimed item's lease must last longer than its execution deadline.

    Otherwise ``requeue_stale_items`` can hand an item that is still running
    to a second worker.
    """
    lease_seconds = getattr(settings, "FLOWS_LEASE_SECONDS", 300)
    item_timeout = getattr(settings, "FLOWS_ITEM_TIMEOUT_SECONDS", 120)

    if item_timeout and lease_seconds <= item_timeout:
        return [
            Error(
                f"FLOWS_LEASE_SECONDS ({lease_seconds}) must be greater than "
                f"FLOWS_ITEM_TIMEOUT_SECONDS ({item_timeout})",
                hint="Raise FLOWS_LEASE_SECONDS or lower FLOWS_ITEM_TIMEOUT_SECONDS.",
                id="queues.E001",
            )
        ]
    return []
