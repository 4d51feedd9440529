"""Transform step handler: reshape the payload with expressions."""

import logging
from typing import Any

from apps.flows.exceptions import ExpressionError, StepExecutionError
from apps.flows.expressions import compile_expression
from apps.flows.steps.base import BaseStepHandler, StepContext, StepResult, StepType, as_object

logger = logging.getLogger(__name__)


class TransformStepHandler(BaseStepHandler):
    """
    Transform the payload.

    Two forms:
        {"type": "transform", "transform": "{'title': upper(title), 'n': len(items)}"}
            The expression must evaluate to an object, which becomes the payload.

        {"type": "transform", "transform": {"title": "upper(title)", "n": "len(items)"}}
            Each expression is evaluated against the incoming payload and the
            results are merged into a copy of it.

    Set ``"drop": [...]`` to remove keys after the transform.
    """

    step_type = StepType.TRANSFORM
    name = "transform"

    def execute(self, ctx: StepContext, step: dict[str, Any], payload: Any) -> StepResult:
        definition = step.get("transform")

        try:
            if isinstance(definition, str):
                result = compile_expression(definition).evaluate(payload)
                if not isinstance(result, dict):
                    raise StepExecutionError(
                        f"Transform must produce an object, got {type(result).__name__}",
                        step_type=self.name,
                    )
            else:
                result = as_object(payload)
                for key, source in definition.items():
                    result[key] = compile_expression(source).evaluate(payload)
        except ExpressionError as e:
            raise StepExecutionError(f"Transform error: {e}", step_type=self.name) from e

        for key in step.get("drop", []):
            result.pop(key, None)

        logger.debug(
            "Transform step %s produced keys %s",
            ctx.location,
            sorted(result),
            extra={"flow_id": ctx.flow.pk},
        )
        return StepResult(payload=result)

    def validate_config(self, step: dict[str, Any]) -> list[str]:
        definition = step.get("transform")
        if not definition:
            return ["Missing required field: transform"]

        sources: list[str]
        if isinstance(definition, str):
            sources = [definition]
        elif isinstance(definition, dict):
            bad_values = [key for key, value in definition.items() if not isinstance(value, str)]
            if bad_values:
                return [f"Transform values must be expressions (strings): {bad_values}"]
            sources = list(definition.values())
        else:
            return ["'transform' must be an expression or a mapping of key → expression"]

        errors = []
        for source in sources:
            try:
                compile_expression(source)
            except ExpressionError as e:
                errors.append(str(e))

        drop = step.get("drop", [])
        if not isinstance(drop, list):
            errors.append("'drop' must be a list of keys")
        return errors
