"""
Flow step types and handlers.

Steps are the building blocks of flows. Each step type handles one kind of
operation (calling an integration, transforming the payload, branching).
"""

from typing import Any

from apps.flows.steps.base import (
    BaseStepHandler,
    StepContext,
    StepResult,
    StepType,
)
from apps.flows.steps.condition import ConditionStepHandler
from apps.flows.steps.integration import IntegrationStepHandler
from apps.flows.steps.transform import TransformStepHandler

# Registry of step handlers by type
_STEP_HANDLERS: dict[str, type[BaseStepHandler]] = {}


def register_step_handler(step_type: str, handler_class: type[BaseStepHandler]) -> None:
    """Register a step handler for a specific type."""
    _STEP_HANDLERS[step_type] = handler_class


def get_step_handler(step_type: str) -> BaseStepHandler:
    """
    Get a step handler instance by type.

    Raises:
        KeyError: If the step type is not registered.
    """
    if step_type not in _STEP_HANDLERS:
        raise KeyError(f"Unknown step type: {step_type}. Available: {list(_STEP_HANDLERS.keys())}")
    return _STEP_HANDLERS[step_type]()


def list_step_types() -> list[str]:
    """List all registered step types."""
    return list(_STEP_HANDLERS.keys())


def validate_steps(steps: Any) -> list[str]:
    """
    Validate a step list without running it.

    Returns:
        List of validation error messages (empty if valid).
    """
    if not isinstance(steps, list):
        return ["Steps must be a list"]

    errors = []
    available_types = list_step_types()
    for i, step in enumerate(steps):
        if not isinstance(step, dict):
            errors.append(f"Step {i} must be an object")
            continue
        step_type = step.get("type")
        if not step_type:
            errors.append(f"Step {i} missing 'type'")
        elif step_type not in available_types:
            errors.append(f"Step {i} has unknown type: {step_type}. Available: {available_types}")
        else:
            handler = get_step_handler(step_type)
            errors.extend(f"Step {i} ({step_type}): {e}" for e in handler.validate_config(step))
    return errors


# Register built-in handlers
register_step_handler("integration", IntegrationStepHandler)
register_step_handler("transform", TransformStepHandler)
register_step_handler("condition", ConditionStepHandler)


__all__ = [
    "BaseStepHandler",
    "StepContext",
    "StepResult",
    "StepType",
    "get_step_handler",
    "list_step_types",
    "register_step_handler",
    "validate_steps",
]
