import io
import json
from datetime import timedelta
from unittest import mock

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from apps.flows.models import FlowRun, RunStatus
from apps.queues.models import BackgroundJob, QueueItem
from apps.queues.services import claim_item


@pytest.mark.django_db
class TestProcessQueuesCommand:
    def test_processes_all_queues(self, make_flow, enqueue_run):
        enqueue_run(make_flow("f"))

        out = io.StringIO()
        call_command("process_queues", stdout=out)

        assert "Processed 1 item(s) across 1 queue(s)" in out.getvalue()
        assert QueueItem.objects.get().status == RunStatus.COMPLETED
        assert BackgroundJob.objects.count() == 1

    def test_single_queue_json(self, make_flow, enqueue_run):
        enqueue_run(make_flow("f"))

        out = io.StringIO()
        call_command("process_queues", "--queue", "default", "--json", stdout=out)

        assert json.loads(out.getvalue()) == {"processed": {"default": 1}}
        assert not BackgroundJob.objects.exists()

    def test_no_queues(self, db):
        out = io.StringIO()
        call_command("process_queues", stdout=out)
        assert "No enabled queues" in out.getvalue()

    def test_invalid_batch_size(self, db):
        with pytest.raises(CommandError):
            call_command("process_queues", "--batch-size", "0")

    @mock.patch("apps.queues.tasks.process_all_queues.delay")
    def test_async(self, mock_delay, db):
        mock_delay.return_value.id = "task-123"

        out = io.StringIO()
        call_command("process_queues", "--async", stdout=out)

        assert "Queued task task-123" in out.getvalue()
        mock_delay.assert_called_once_with(batch_size=None)


@pytest.mark.django_db
class TestRequeueStaleCommand:
    def test_requeues(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))
        claim_item(item)
        QueueItem.objects.filter(pk=item.pk).update(lease_expires_at=timezone.now() - timedelta(seconds=1))

        out = io.StringIO()
        call_command("requeue_stale", "--queue", "default", stdout=out)

        assert "Requeued 1 item(s), failed 0 item(s)" in out.getvalue()
        item.refresh_from_db()
        assert item.status == RunStatus.PENDING

    def test_unknown_queue(self, db):
        with pytest.raises(CommandError):
            call_command("requeue_stale", "--queue", "missing")


@pytest.mark.django_db
class TestMonitorQueuesCommand:
    def test_queue_depths(self, make_flow, enqueue_run):
        enqueue_run(make_flow("f"))

        out = io.StringIO()
        call_command("monitor_queues", stdout=out)

        lines = [line for line in out.getvalue().splitlines() if line.startswith("default")]
        assert lines and lines[0].split()[1:3] == ["yes", "1"]

    def test_runs_and_details(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("triage"))
        FlowRun.objects.filter(pk=item.flow_run_id).update(status=RunStatus.FAILED, error="boom")

        out = io.StringIO()
        call_command("monitor_queues", "--runs", "--status", "failed", stdout=out)
        assert "triage" in out.getvalue()

        out = io.StringIO()
        call_command("monitor_queues", "--run-id", str(item.flow_run_id), stdout=out)
        assert "Error: boom" in out.getvalue()
        assert "default" in out.getvalue()

    def test_jobs(self, db):
        out = io.StringIO()
        call_command("monitor_queues", "--jobs", stdout=out)
        assert "No background jobs found." in out.getvalue()
