"""Tests for queue store operations."""

import uuid
from datetime import timedelta
from unittest import mock

import pytest
from django.db import IntegrityError
from django.utils import timezone

from apps.flows.models import RunStatus
from apps.queues.models import Queue, QueueItem
from apps.queues.services import (
    claim_item,
    complete_item,
    fail_item,
    find_or_create_queue,
    list_enabled_queues,
    release_item,
    requeue_stale_items,
)


@pytest.mark.django_db
class TestQueues:
    def test_find_or_create_is_idempotent(self):
        first = find_or_create_queue("alpha", description="first")
        second = find_or_create_queue("alpha", description="ignored")

        assert first.pk == second.pk
        assert Queue.objects.get(name="alpha").description == "first"

    def test_find_or_create_lost_race(self):
        existing = Queue.objects.create(name="raced")

        with mock.patch("apps.queues.services.Queue.objects.get_or_create", side_effect=IntegrityError):
            assert find_or_create_queue("raced").pk == existing.pk

    def test_list_enabled_queues_by_name(self):
        for name in ["zeta", "alpha", "mid"]:
            Queue.objects.create(name=name)
        Queue.objects.create(name="beta", is_enabled=False)

        assert [q.name for q in list_enabled_queues()] == ["alpha", "mid", "zeta"]


@pytest.mark.django_db
class TestClaim:
    def test_claim_sets_lease(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))

        token = claim_item(item, lease_seconds=60)

        assert token is not None
        item.refresh_from_db()
        assert item.status == RunStatus.PROCESSING
        assert item.lease_token == token
        assert item.attempts == 1
        assert item.claimed_at is not None
        assert item.lease_expires_at > timezone.now() + timedelta(seconds=50)

    def test_second_claim_is_already_taken(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))
        stale_copy = QueueItem.objects.get(pk=item.pk)

        assert claim_item(item) is not None
        assert claim_item(stale_copy) is None
        item.refresh_from_db()
        assert item.attempts == 1

    def test_terminal_writes_require_the_lease(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))
        token = claim_item(item)

        other = QueueItem.objects.get(pk=item.pk)
        assert fail_item(other, uuid.uuid4(), "x") is False
        assert complete_item(item, token) is True
        item.refresh_from_db()
        assert item.status == RunStatus.COMPLETED
        assert item.lease_token is None

        # Already completed: no further transition.
        assert release_item(item, token) is False


@pytest.mark.django_db
class TestRequeueStale:
    def _expire(self, item):
        QueueItem.objects.filter(pk=item.pk).update(lease_expires_at=timezone.now() - timedelta(seconds=1))

    def test_expired_lease_is_requeued(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))
        claim_item(item)
        item.flow_run.mark_processing()
        self._expire(item)

        result = requeue_stale_items(max_attempts=3)

        assert result.to_dict() == {"requeued": 1, "failed": 0}
        item.refresh_from_db()
        assert item.status == RunStatus.PENDING
        assert item.lease_token is None
        assert item.flow_run.status == RunStatus.PENDING

    def test_exhausted_attempts_fail(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))
        claim_item(item)
        item.flow_run.mark_processing()
        self._expire(item)

        result = requeue_stale_items(max_attempts=1)

        assert result.to_dict() == {"requeued": 0, "failed": 1}
        item.refresh_from_db()
        item.flow_run.refresh_from_db()
        assert item.status == RunStatus.FAILED
        assert "Lease expired" in item.error
        assert item.flow_run.status == RunStatus.FAILED

    def test_live_lease_untouched(self, make_flow, enqueue_run):
        item = enqueue_run(make_flow("f"))
        claim_item(item, lease_seconds=300)

        assert requeue_stale_items().to_dict() == {"requeued": 0, "failed": 0}
        item.refresh_from_db()
        assert item.status == RunStatus.PROCESSING

    def test_scoped_to_queue(self, make_flow, enqueue_run):
        other_queue = find_or_create_queue("other")
        item = enqueue_run(make_flow("f"), queue=other_queue)
        claim_item(item)
        self._expire(item)

        assert requeue_stale_items(find_or_create_queue("default")).requeued == 0
        assert requeue_stale_items(other_queue).requeued == 1
