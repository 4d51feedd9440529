"""Base step handler and types for flow steps."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from apps.flows.models import Flow, FlowRun


class StepType(Enum):
    """Kinds of steps in a flow."""

    INTEGRATION = "integration"  # Call an external service through an Integration
    TRANSFORM = "transform"  # Reshape the payload with expressions
    CONDITION = "condition"  # Select a branch / short-circuit


@dataclass
class StepResult:
    """
    Result of one step.

    ``halt`` stops the remaining steps of the flow; the run still completes
    with ``payload`` as its output.
    """

    payload: Any
    halt: bool = False
    branch: str = ""


@dataclass
class StepContext:
    """
    Context passed to step handlers.

    ``run_steps`` executes a nested step list (condition branches) with the
    same engine, returning the branch's StepResult.
    """

    flow: "Flow"
    run: "FlowRun | None" = None
    step_index: int = 0
    deadline: float | None = None
    run_steps: Callable[[list, Any, list[str]], StepResult] | None = None
    path: list[str] = field(default_factory=list)

    def remaining_seconds(self) -> float | None:
        """Seconds left before the deadline (``time.monotonic`` based), or None."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    @property
    def location(self) -> str:
        return ".".join([*self.path, str(self.step_index)])


def as_object(payload: Any) -> dict[str, Any]:
    """Steps that merge keys need an object; wrap anything else under ``data``."""
    if isinstance(payload, dict):
        return dict(payload)
    return {"data": payload}


class BaseStepHandler(ABC):
    """
    Abstract base class for flow step handlers.

    Handlers raise ``FlowEngineError`` subclasses (usually
    ``StepExecutionError``) on failure; any other exception is wrapped by the
    engine.
    """

    step_type: StepType
    name: str = "base"

    @abstractmethod
    def execute(self, ctx: StepContext, step: dict[str, Any], payload: Any) -> StepResult:
        """
        Execute the step.

        Args:
            ctx: Flow/run context and deadline.
            step: The step definition from the flow config.
            payload: Output of the previous step (or the run input).

        Returns:
            StepResult with the new payload.
        """
        raise NotImplementedError

    def validate_config(self, step: dict[str, Any]) -> list[str]:
        """Return configuration errors (empty if valid)."""
        return []
