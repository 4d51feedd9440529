"""Tests for the batch orchestrator."""

from unittest import mock

import pytest

from apps.flows.models import RunStatus
from apps.queues.models import BackgroundJob, JobStatus, Queue, QueueItem
from apps.queues.orchestrator import JOB_NAME, BatchOrchestrator
from apps.queues.processor import QueueProcessor
from apps.queues.services import find_or_create_queue


@pytest.mark.django_db
class TestRunOnce:
    def test_processes_enabled_queues_in_name_order(self, make_flow, enqueue_run):
        flow = make_flow("f")
        enqueue_run(flow)
        enqueue_run(flow, queue=find_or_create_queue("alpha"))
        Queue.objects.create(name="beta", is_enabled=False)

        processor = QueueProcessor()
        with mock.patch.object(processor, "process", wraps=processor.process) as process:
            results = BatchOrchestrator(processor=processor).run_once()

        assert [call.args[0] for call in process.call_args_list] == ["alpha", "default"]
        assert results == {"alpha": 1, "default": 1}

    def test_job_completed_with_metadata(self, make_flow, enqueue_run, default_queue):
        enqueue_run(make_flow("f"))

        BatchOrchestrator().run_once()

        job = BackgroundJob.objects.get()
        assert job.name == JOB_NAME
        assert job.status == JobStatus.COMPLETED
        assert job.completed_at is not None
        assert set(job.metadata) == {"started_at", "completed_at", "results"}
        assert job.metadata["results"] == [
            {"queue_id": default_queue.pk, "queue_name": "default", "processed_count": 1}
        ]
        assert job.total_processed == 1

    def test_no_queues(self, db):
        assert BatchOrchestrator().run_once() == {}
        assert BackgroundJob.objects.get().status == JobStatus.COMPLETED

    def test_failure_marks_job_failed_and_reraises(self, make_flow, enqueue_run):
        first = find_or_create_queue("alpha")
        enqueue_run(make_flow("f"), queue=first)
        find_or_create_queue("beta")

        processor = QueueProcessor()
        real_process = processor.process

        def process(name, batch_size=None):
            if name == "beta":
                raise RuntimeError("storage exploded")
            return real_process(name, batch_size=batch_size)

        with mock.patch.object(processor, "process", side_effect=process):
            with pytest.raises(RuntimeError, match="storage exploded"):
                BatchOrchestrator(processor=processor).run_once()

        job = BackgroundJob.objects.get()
        assert job.status == JobStatus.FAILED
        assert job.error == "storage exploded"
        assert set(job.metadata) == {"started_at", "failed_at", "results"}
        assert job.metadata["results"] == [
            {"queue_id": first.pk, "queue_name": "alpha", "processed_count": 1}
        ]

    def test_batch_size_passed_through(self, make_flow, enqueue_run):
        flow = make_flow("f")
        for _ in range(3):
            enqueue_run(flow)

        assert BatchOrchestrator(batch_size=2).run_once() == {"default": 2}
        assert BackgroundJob.objects.get().metadata["results"][0]["processed_count"] == 2
        assert QueueItem.objects.filter(status=RunStatus.PENDING).count() == 1
