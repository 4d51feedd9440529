"""Condition step handler: choose a branch or short-circuit the flow."""

import logging
from typing import Any

from apps.flows.exceptions import ExpressionError, StepExecutionError
from apps.flows.expressions import compile_expression
from apps.flows.steps.base import BaseStepHandler, StepContext, StepResult, StepType

logger = logging.getLogger(__name__)

ON_FALSE_CHOICES = ("stop", "continue")


class ConditionStepHandler(BaseStepHandler):
    """
    Evaluate a condition against the payload.

        {
            "type": "condition",
            "condition": "severity == 'critical'",
            "then": [ ...steps... ],      # optional
            "else": [ ...steps... ],      # optional
            "on_false": "stop"            # or "continue"; used when no "else"
        }

    A truthy condition runs ``then`` (or passes the payload through). A falsy
    one runs ``else`` if present; otherwise ``on_false`` either stops the
    remaining steps ("stop", the default) or passes the payload through.
    A branch that halts halts the whole flow.

    A halted run still completes with the current payload, but its child
    flows are not triggered.
    """

    step_type = StepType.CONDITION
    name = "condition"

    def execute(self, ctx: StepContext, step: dict[str, Any], payload: Any) -> StepResult:
        source = step.get("condition")
        try:
            matched = bool(compile_expression(source).evaluate(payload))
        except ExpressionError as e:
            raise StepExecutionError(f"Condition error: {e}", step_type=self.name) from e

        branch_name = "then" if matched else "else"
        branch = step.get(branch_name)

        logger.info(
            "Condition %r at step %s evaluated %s",
            source,
            ctx.location,
            matched,
            extra={"flow_id": ctx.flow.pk, "branch": branch_name},
        )

        if branch:
            branch_result = ctx.run_steps(branch, payload, [*ctx.path, str(ctx.step_index), branch_name])
            return StepResult(payload=branch_result.payload, halt=branch_result.halt, branch=branch_name)

        if not matched and step.get("on_false", "stop") == "stop":
            return StepResult(payload=payload, halt=True, branch=branch_name)

        return StepResult(payload=payload, branch=branch_name)

    def validate_config(self, step: dict[str, Any]) -> list[str]:
        from apps.flows.steps import validate_steps

        errors = []
        source = step.get("condition")
        if not source:
            errors.append("Missing required field: condition")
        else:
            try:
                compile_expression(source)
            except ExpressionError as e:
                errors.append(str(e))

        on_false = step.get("on_false", "stop")
        if on_false not in ON_FALSE_CHOICES:
            errors.append(f"'on_false' must be one of {ON_FALSE_CHOICES}, got {on_false!r}")

        for branch_name in ("then", "else"):
            branch = step.get(branch_name)
            if branch is None:
                continue
            if not isinstance(branch, list):
                errors.append(f"'{branch_name}' must be a list of steps")
                continue
            errors.extend(f"{branch_name}: {e}" for e in validate_steps(branch))
        return errors
