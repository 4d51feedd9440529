"""HTTP executor: POST the payload to an endpoint and merge the JSON response."""

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from apps.integrations.executors.base import BaseIntegrationExecutor, IntegrationExecutionError

logger = logging.getLogger(__name__)


class HttpExecutor(BaseIntegrationExecutor):
    """
    Send the payload to ``config["endpoint"]`` and store the reply under
    ``config.get("response_key", "response")``.

    Config:
        endpoint: http(s) URL (required).
        method: POST (default), PUT or PATCH.
        headers: Extra request headers.
        timeout: Request timeout in seconds (capped by the flow deadline).
        response_key: Payload key for the decoded response body.
    """

    name = "http"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        endpoint = config.get("endpoint", "")
        if not endpoint:
            errors.append("Missing required field: endpoint")
        elif not (endpoint.startswith("http://") or endpoint.startswith("https://")):
            errors.append(f"Endpoint must be an http(s) URL: {endpoint}")
        method = str(config.get("method", "POST")).upper()
        if method not in ("POST", "PUT", "PATCH"):
            errors.append(f"Unsupported method: {method}")
        return errors

    def execute(
        self,
        payload: dict[str, Any],
        config: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        errors = self.validate_config(config)
        if errors:
            raise IntegrationExecutionError("; ".join(errors))

        endpoint = config["endpoint"]
        method = str(config.get("method", "POST")).upper()
        request_timeout = float(config.get("timeout", 30))
        if timeout is not None:
            request_timeout = min(request_timeout, timeout)

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "FlowQueues/1.0",
        }
        headers.update(config.get("headers", {}))

        request = urllib.request.Request(
            endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers=headers,
            method=method,
        )

        try:
            with urllib.request.urlopen(request, timeout=request_timeout) as response:
                body = response.read().decode("utf-8")
                status_code = response.getcode()
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else str(e)
            raise IntegrationExecutionError(f"HTTP error ({e.code}): {error_body}") from e
        except urllib.error.URLError as e:
            raise IntegrationExecutionError(f"Connection error: {e.reason}") from e

        try:
            response_data: Any = json.loads(body) if body else {}
        except json.JSONDecodeError:
            response_data = {"raw": body}

        logger.info("HTTP integration call to %s returned %s", endpoint, status_code)

        result = dict(payload)
        result[config.get("response_key", "response")] = response_data
        return result
