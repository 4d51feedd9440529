"""Passthrough executor: returns the payload unchanged.

Used for apps that have no executor of their own; the engine still stamps the
``_integration`` provenance marker on the result.
"""

from typing import Any

from apps.integrations.executors.base import BaseIntegrationExecutor


class PassthroughExecutor(BaseIntegrationExecutor):
    name = "passthrough"

    def execute(
        self,
        payload: dict[str, Any],
        config: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return dict(payload)
