"""Shared test fixtures for all apps."""

import pytest

from apps.flows.models import Flow
from apps.integrations.models import App, Integration
from apps.webhooks.models import Webhook


@pytest.fixture
def webhook_with_token(db):
    """An enabled webhook and its plaintext token."""
    webhook = Webhook.objects.create(name="test-webhook")
    token = webhook.issue_token()
    return webhook, token


@pytest.fixture
def make_flow(db):
    """Factory for flows: make_flow("name", steps=[...], parent=flow, webhooks=[...])."""

    def _make_flow(name="flow", steps=None, parent=None, webhooks=(), is_enabled=True):
        flow = Flow.objects.create(
            name=name,
            config={"steps": steps} if steps is not None else {},
            parent_flow=parent,
            is_enabled=is_enabled,
        )
        if webhooks:
            flow.webhooks.set(webhooks)
        return flow

    return _make_flow


@pytest.fixture
def passthrough_integration(db):
    """An enabled integration whose app has no executor of its own."""
    app = App.objects.create(name="Generic", type="passthrough")
    return Integration.objects.create(name="generic-integration", app=app, config={})
