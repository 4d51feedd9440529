"""Base executor for running integrations from flow steps.

Executors call out to an external service on behalf of a flow ``integration``
step and return the enriched payload. They must not touch the database: the
engine loads the Integration row before calling them, and runs them under the
flow run's execution deadline.

Public API:
- IntegrationExecutionError
- BaseIntegrationExecutor
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class IntegrationExecutionError(Exception):
    """Raised by executors when the external call fails."""


class BaseIntegrationExecutor(ABC):
    """Abstract base class for integration executors."""

    name: str = "base"

    @abstractmethod
    def execute(
        self,
        payload: dict[str, Any],
        config: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Run the integration against a payload.

        Args:
            payload: Current flow payload (must not be mutated).
            config: The Integration's configuration.
            timeout: Seconds left before the flow run deadline, if any.

        Returns:
            The enriched payload.

        Raises:
            IntegrationExecutionError: If the external call fails.
        """

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        """Return configuration errors (empty if valid)."""
        return []
