"""Custom admin site for the flow queue ops console."""

from datetime import timedelta

from django.contrib.admin import AdminSite
from django.db.models import Count, Q
from django.utils import timezone


class FlowsAdminSite(AdminSite):
    site_header = "Flow Queues"
    site_title = "Flow Queues"
    index_title = "Dashboard"
    index_template = "admin/dashboard.html"

    def index(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context.update(self._get_dashboard_context())
        return super().index(request, extra_context=extra_context)

    def _get_dashboard_context(self):
        from apps.flows.models import FlowRun, RunStatus
        from apps.queues.models import BackgroundJob, Queue
        from apps.webhooks.models import WebhookEvent

        now = timezone.now()
        last_24h = now - timedelta(hours=24)
        last_7d = now - timedelta(days=7)

        # --- Queue depths ---
        queue_depths = list(
            Queue.objects.annotate(
                pending=Count("items", filter=Q(items__status=RunStatus.PENDING)),
                processing=Count("items", filter=Q(items__status=RunStatus.PROCESSING)),
                failed=Count("items", filter=Q(items__status=RunStatus.FAILED)),
            )
            .order_by("name")
            .values("id", "name", "is_enabled", "pending", "processing", "failed")
        )

        # --- Run health (24h) ---
        status_counts = dict(
            FlowRun.objects.filter(created_at__gte=last_24h)
            .values_list("status")
            .annotate(count=Count("id"))
            .values_list("status", "count")
        )
        total_runs = sum(status_counts.values())
        completed = status_counts.get(RunStatus.COMPLETED, 0)
        run_health = {
            "total": total_runs,
            "completed": completed,
            "failed": status_counts.get(RunStatus.FAILED, 0),
            "in_flight": status_counts.get(RunStatus.PENDING, 0)
            + status_counts.get(RunStatus.PROCESSING, 0),
            "success_rate": round(completed / total_runs * 100, 1) if total_runs else 0,
        }

        # --- Failed runs (last 5) ---
        failed_runs = list(
            FlowRun.objects.filter(status=RunStatus.FAILED)
            .select_related("flow")
            .order_by("-created_at")[:5]
        )

        # --- Recent background jobs (last 5) ---
        recent_jobs = list(BackgroundJob.objects.order_by("-started_at")[:5])

        # --- 7-day deliveries per webhook ---
        deliveries = list(
            WebhookEvent.objects.filter(received_at__gte=last_7d)
            .values("webhook__name")
            .annotate(count=Count("id"))
            .order_by("-count")[:5]
        )

        return {
            "queue_depths": queue_depths,
            "run_health": run_health,
            "failed_runs": failed_runs,
            "recent_jobs": recent_jobs,
            "top_webhooks": deliveries,
        }
