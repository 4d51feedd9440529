"""
Inbound webhook endpoint.

    POST /webhooks/receive/<webhook_id>/   deliver an event
    GET  /webhooks/receive/<webhook_id>/   check id and token, no writes

The token travels in the header named by ``WEBHOOK_TOKEN_HEADER``.
"""

import logging
from typing import Any

from django.conf import settings
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.flows.exceptions import (
    AuthenticationError,
    FlowEngineError,
    NotFoundError,
    TransientInfraError,
    ValidationError,
)
from apps.webhooks.services import WebhookReceiver

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AuthenticationError: 401,
    NotFoundError: 404,
    ValidationError: 400,
    TransientInfraError: 503,
}


class JSONResponseMixin:
    """Mixin for JSON responses."""

    def json_response(self, data: Any, status: int = 200) -> JsonResponse:
        return JsonResponse(data, status=status)

    def error_response(self, message: str, status: int = 400) -> JsonResponse:
        return JsonResponse({"success": False, "error": message}, status=status)


def presented_token(request) -> str | None:
    header = getattr(settings, "WEBHOOK_TOKEN_HEADER", "X-Webhook-Token")
    return request.headers.get(header)


@method_decorator(csrf_exempt, name="dispatch")
class WebhookReceiveView(JSONResponseMixin, View):
    """Receive deliveries for one webhook."""

    receiver_class = WebhookReceiver

    def post(self, request, webhook_id):
        try:
            result = self.receiver_class().receive(webhook_id, presented_token(request), request.body)
        except FlowEngineError as e:
            return self._engine_error(e)

        return self.json_response(
            {
                "success": True,
                "event_id": result.event_id,
                "flow_runs": result.flow_run_count,
            }
        )

    def get(self, request, webhook_id):
        try:
            result = self.receiver_class().verify(webhook_id, presented_token(request))
        except FlowEngineError as e:
            return self._engine_error(e)

        return self.json_response(
            {
                "success": True,
                "webhook": {
                    "id": result.webhook_id,
                    "name": result.name,
                    "is_enabled": result.is_enabled,
                    "active_flows": result.active_flow_count,
                },
            }
        )

    def _engine_error(self, error: FlowEngineError) -> JsonResponse:
        for error_class, status in ERROR_STATUS.items():
            if isinstance(error, error_class):
                return self.error_response(error.message, status=status)
        logger.error("Unexpected engine error in webhook view: %s", error)
        return self.error_response("Internal error", status=500)
