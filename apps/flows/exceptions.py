"""
Error taxonomy for the webhook → queue → flow engine.

Every error carries a ``retryable`` flag. Only storage-level failures
(``TransientInfraError``) are retryable; step logic failures are terminal for
the flow run that raised them.
"""

from __future__ import annotations


class FlowEngineError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)

    @property
    def error_type(self) -> str:
        return type(self).__name__


class AuthenticationError(FlowEngineError):
    """Missing or invalid webhook token."""


class NotFoundError(FlowEngineError):
    """Unknown (or disabled) webhook, flow, queue or integration."""


class ValidationError(FlowEngineError):
    """Malformed payload, invalid step configuration or invalid flow linkage."""


class ExpressionError(ValidationError):
    """An expression could not be compiled or evaluated."""


class PermanentLogicError(FlowEngineError):
    """Failure that will never succeed on retry (unknown step kind, disabled flow)."""


class StepExecutionError(FlowEngineError):
    """A specific step failed. Aborts the rest of the flow run."""

    def __init__(self, message: str, step_type: str = "", step_index: int | None = None):
        self.step_type = step_type
        self.step_index = step_index
        super().__init__(message)


class ExecutionTimeoutError(FlowEngineError):
    """The per-item execution deadline was exceeded."""


class TransientInfraError(FlowEngineError):
    """Storage (or other infrastructure) temporarily unavailable."""

    retryable = True
