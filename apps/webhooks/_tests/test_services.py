"""Tests for the webhook receiver."""

import json
import uuid
from unittest import mock

import pytest
from django.db import OperationalError

from apps.flows.exceptions import (
    AuthenticationError,
    NotFoundError,
    TransientInfraError,
    ValidationError,
)
from apps.flows.models import FlowRun, RunStatus
from apps.queues.models import Queue, QueueItem
from apps.webhooks.models import WebhookEvent, WebhookEventStatus
from apps.webhooks.services import WebhookReceiver, parse_payload


def _row_counts():
    return (WebhookEvent.objects.count(), FlowRun.objects.count(), QueueItem.objects.count())


@pytest.mark.django_db
class TestReceive:
    def test_fans_out_to_every_enabled_flow(self, webhook_with_token, make_flow):
        webhook, token = webhook_with_token
        flows = [make_flow(f"flow-{i}", webhooks=[webhook]) for i in range(3)]
        make_flow("disabled", webhooks=[webhook], is_enabled=False)
        make_flow("unbound")

        result = WebhookReceiver().receive(webhook.pk, token, b'{"event": "push"}')

        assert WebhookEvent.objects.count() == 1
        event = WebhookEvent.objects.get(pk=result.event_id)
        assert event.status == WebhookEventStatus.PROCESSING
        assert event.raw_payload == {"event": "push"}

        runs = list(FlowRun.objects.filter(pk__in=result.flow_run_ids).order_by("flow_id"))
        assert [run.flow for run in runs] == flows
        for run in runs:
            assert run.status == RunStatus.PENDING
            assert run.input == {"event": "push"}
            assert run.webhook_event == event
            assert run.lineage == []

        items = list(QueueItem.objects.all())
        assert len(items) == 3
        assert {item.flow_run_id for item in items} == set(result.flow_run_ids)
        assert all(item.queue.name == "default" for item in items)
        assert all(item.payload == {"event": "push"} for item in items)

    def test_default_queue_created_once(self, webhook_with_token, make_flow):
        webhook, token = webhook_with_token
        make_flow("f", webhooks=[webhook])

        WebhookReceiver().receive(webhook.pk, token, b"{}")
        WebhookReceiver().receive(webhook.pk, token, b"{}")

        assert Queue.objects.filter(name="default").count() == 1
        assert QueueItem.objects.count() == 2

    def test_zero_flows_records_pending_event(self, webhook_with_token):
        webhook, token = webhook_with_token

        result = WebhookReceiver().receive(webhook.pk, token, b"[1, 2]")

        event = WebhookEvent.objects.get(pk=result.event_id)
        assert event.status == WebhookEventStatus.PENDING
        assert event.raw_payload == [1, 2]
        assert result.flow_run_ids == []
        assert not Queue.objects.exists()

    @pytest.mark.parametrize("token", [None, "", "wrong-token"])
    def test_bad_token_writes_nothing(self, webhook_with_token, make_flow, token):
        webhook, _ = webhook_with_token
        make_flow("f", webhooks=[webhook])

        with pytest.raises(AuthenticationError):
            WebhookReceiver().receive(webhook.pk, token, b"{}")

        assert _row_counts() == (0, 0, 0)

    def test_unknown_webhook(self, db):
        with pytest.raises(NotFoundError):
            WebhookReceiver().receive(uuid.uuid4(), "token", b"{}")

    def test_malformed_id(self, db):
        with pytest.raises(NotFoundError):
            WebhookReceiver().receive("not-a-uuid", "token", b"{}")

    def test_disabled_webhook_looks_missing(self, webhook_with_token):
        webhook, token = webhook_with_token
        webhook.is_enabled = False
        webhook.save()

        with pytest.raises(NotFoundError):
            WebhookReceiver().receive(webhook.pk, token, b"{}")
        assert _row_counts() == (0, 0, 0)

    @pytest.mark.parametrize("body", [b"", b"   ", b"{not json", b"\xff\xfe"])
    def test_bad_payload_writes_nothing(self, webhook_with_token, make_flow, body):
        webhook, token = webhook_with_token
        make_flow("f", webhooks=[webhook])

        with pytest.raises(ValidationError, match="BadPayload"):
            WebhookReceiver().receive(webhook.pk, token, body)
        assert _row_counts() == (0, 0, 0)

    def test_fan_out_is_atomic(self, webhook_with_token, make_flow):
        webhook, token = webhook_with_token
        make_flow("a", webhooks=[webhook])
        make_flow("b", webhooks=[webhook])

        with mock.patch("apps.queues.services.QueueItem.objects.create", side_effect=[mock.DEFAULT, RuntimeError("disk")]):
            with pytest.raises(RuntimeError):
                WebhookReceiver().receive(webhook.pk, token, b"{}")

        assert _row_counts() == (0, 0, 0)

    def test_storage_error_is_transient(self, webhook_with_token):
        webhook, token = webhook_with_token

        with mock.patch(
            "apps.webhooks.services.WebhookEvent.objects.create", side_effect=OperationalError("db down")
        ):
            with pytest.raises(TransientInfraError, match="db down") as exc_info:
                WebhookReceiver().receive(webhook.pk, token, b"{}")
        assert exc_info.value.retryable is True


@pytest.mark.django_db
class TestVerify:
    def test_reports_active_flows_without_writing(self, webhook_with_token, make_flow):
        webhook, token = webhook_with_token
        make_flow("a", webhooks=[webhook])
        make_flow("b", webhooks=[webhook], is_enabled=False)

        result = WebhookReceiver().verify(webhook.pk, token)

        assert result.webhook_id == str(webhook.pk)
        assert result.name == "test-webhook"
        assert result.is_enabled is True
        assert result.active_flow_count == 1
        assert _row_counts() == (0, 0, 0)

    def test_wrong_token(self, webhook_with_token):
        webhook, _ = webhook_with_token
        with pytest.raises(AuthenticationError):
            WebhookReceiver().verify(webhook.pk, "nope")


class TestParsePayload:
    def test_accepts_any_json_value(self):
        assert parse_payload(b'{"a": 1}') == {"a": 1}
        assert parse_payload('"text"') == "text"
        assert parse_payload(json.dumps([1, 2]).encode()) == [1, 2]

    def test_rejects_invalid(self):
        with pytest.raises(ValidationError, match="invalid JSON"):
            parse_payload(b"{")
