"""Shared test fixtures for the queues app."""

import pytest

from apps.flows.models import FlowRun
from apps.queues.services import enqueue, find_or_create_queue


@pytest.fixture
def default_queue(db):
    return find_or_create_queue("default")


@pytest.fixture
def enqueue_run(default_queue):
    """Factory: create a pending run of ``flow`` and its queue item."""

    def _enqueue_run(flow, payload=None, queue=None):
        payload = payload if payload is not None else {}
        run = FlowRun.objects.create(flow=flow, input=payload)
        return enqueue(queue or default_queue, flow, run, payload)

    return _enqueue_run
