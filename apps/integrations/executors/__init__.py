"""
Integration executors keyed by ``App.type``.
"""

from apps.integrations.executors.base import BaseIntegrationExecutor, IntegrationExecutionError
from apps.integrations.executors.http import HttpExecutor
from apps.integrations.executors.passthrough import PassthroughExecutor

__all__ = [
    "BaseIntegrationExecutor",
    "IntegrationExecutionError",
    "HttpExecutor",
    "PassthroughExecutor",
    "EXECUTOR_REGISTRY",
    "register_executor",
    "get_executor",
]

# App types without an entry fall back to the passthrough executor.
EXECUTOR_REGISTRY: dict[str, type[BaseIntegrationExecutor]] = {
    "passthrough": PassthroughExecutor,
    "http": HttpExecutor,
}


def register_executor(app_type: str, executor_class: type[BaseIntegrationExecutor]) -> None:
    """Register an executor for an app type (overrides any existing one)."""
    EXECUTOR_REGISTRY[app_type] = executor_class


def get_executor(app_type: str) -> BaseIntegrationExecutor:
    """
    Get an executor instance for an app type.

    Args:
        app_type: The ``App.type`` of the integration being run.

    Returns:
        Executor instance; the passthrough executor for unregistered types.
    """
    return EXECUTOR_REGISTRY.get(app_type, PassthroughExecutor)()
