"""
Webhook receiver.

Authenticates an inbound delivery and fans it out: one WebhookEvent, then
one FlowRun and one queue item in the default queue for every enabled flow
bound to the webhook. The fan-out is a single transaction.

Usage:
    receiver = WebhookReceiver()
    result = receiver.receive(webhook_id, token, request.body)
    result.event_id, result.flow_run_ids
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import InterfaceError, OperationalError, transaction

from apps.flows.exceptions import (
    AuthenticationError,
    NotFoundError,
    TransientInfraError,
    ValidationError,
)
from apps.flows.models import FlowRun, RunStatus
from apps.webhooks.models import Webhook, WebhookEvent, WebhookEventStatus

logger = logging.getLogger(__name__)


@dataclass
class ReceiveResult:
    event_id: int
    flow_run_ids: list[int] = field(default_factory=list)

    @property
    def flow_run_count(self) -> int:
        return len(self.flow_run_ids)


@dataclass
class VerifyResult:
    webhook_id: str
    name: str
    is_enabled: bool
    active_flow_count: int


def parse_payload(raw_body: bytes | str) -> Any:
    """
    Decode a delivery body as JSON.

    Raises:
        ValidationError: Empty body, bad encoding or invalid JSON.
    """
    if isinstance(raw_body, bytes):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"BadPayload: body is not valid UTF-8 ({e.reason})") from e
    if not raw_body or not raw_body.strip():
        raise ValidationError("BadPayload: empty body")
    try:
        return json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"BadPayload: invalid JSON ({e.msg} at position {e.pos})") from e


class WebhookReceiver:
    """Authenticate deliveries and turn them into queued flow runs."""

    def receive(self, webhook_id, presented_token: str | None, raw_body: bytes | str) -> ReceiveResult:
        """
        Accept one delivery.

        Raises:
            NotFoundError: Unknown or disabled webhook.
            AuthenticationError: Missing or wrong token.
            ValidationError: Body is not JSON.
            TransientInfraError: Storage unavailable.

        Nothing is written unless all checks pass.
        """
        try:
            webhook = self._authenticate(webhook_id, presented_token)
            payload = parse_payload(raw_body)
            return self._fan_out(webhook, payload)
        except (OperationalError, InterfaceError) as e:
            logger.exception("Storage error while receiving webhook %s", webhook_id)
            raise TransientInfraError(f"Storage unavailable: {e}") from e

    def verify(self, webhook_id, presented_token: str | None) -> VerifyResult:
        """Check a webhook id and token without writing anything."""
        try:
            webhook = self._authenticate(webhook_id, presented_token)
            active_flows = webhook.flows.filter(is_enabled=True).count()
        except (OperationalError, InterfaceError) as e:
            raise TransientInfraError(f"Storage unavailable: {e}") from e

        return VerifyResult(
            webhook_id=str(webhook.pk),
            name=webhook.name,
            is_enabled=webhook.is_enabled,
            active_flow_count=active_flows,
        )

    def _authenticate(self, webhook_id, presented_token: str | None) -> Webhook:
        try:
            webhook = Webhook.objects.get(pk=webhook_id)
        except (Webhook.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError(f"Webhook {webhook_id} not found")

        # Disabled webhooks are indistinguishable from missing ones.
        if not webhook.is_enabled:
            raise NotFoundError(f"Webhook {webhook_id} not found")

        if not webhook.check_token(presented_token):
            logger.warning(
                "Rejected delivery for webhook %s: %s token",
                webhook.pk,
                "missing" if not presented_token else "invalid",
                extra={"webhook_id": str(webhook.pk)},
            )
            raise AuthenticationError("Missing or invalid webhook token")
        return webhook

    def _fan_out(self, webhook: Webhook, payload: Any) -> ReceiveResult:
        from apps.queues.services import enqueue, get_default_queue

        with transaction.atomic():
            event = WebhookEvent.objects.create(
                webhook=webhook,
                raw_payload=payload,
                status=WebhookEventStatus.PENDING,
            )
            flows = list(webhook.flows.filter(is_enabled=True).order_by("id"))

            run_ids: list[int] = []
            if flows:
                queue = get_default_queue()
                for flow in flows:
                    run = FlowRun.objects.create(
                        flow=flow,
                        webhook_event=event,
                        lineage=[],
                        status=RunStatus.PENDING,
                        input=payload,
                    )
                    enqueue(queue, flow, run, payload)
                    run_ids.append(run.pk)
                event.mark_processing()

        logger.info(
            "Webhook %s delivery recorded as event %s; %d flow run(s) queued",
            webhook.name,
            event.pk,
            len(run_ids),
            extra={"webhook_id": str(webhook.pk), "event_id": event.pk},
        )
        return ReceiveResult(event_id=event.pk, flow_run_ids=run_ids)
