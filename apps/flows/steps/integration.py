"""Integration step handler: run an external service through an Integration."""

import concurrent.futures
import logging
from typing import Any

from apps.flows.exceptions import ExecutionTimeoutError, StepExecutionError
from apps.flows.steps.base import BaseStepHandler, StepContext, StepResult, StepType, as_object

logger = logging.getLogger(__name__)


class IntegrationStepHandler(BaseStepHandler):
    """
    Invoke the executor registered for the integration's app type.

        {"type": "integration", "integration_id": 42}

    The result is stamped with an ``_integration`` provenance marker
    ``{"id", "name", "app"}``. A missing or disabled integration fails the step.
    """

    step_type = StepType.INTEGRATION
    name = "integration"

    def execute(self, ctx: StepContext, step: dict[str, Any], payload: Any) -> StepResult:
        from apps.integrations.executors import IntegrationExecutionError, get_executor
        from apps.integrations.models import Integration

        integration_id = step.get("integration_id")
        integration = Integration.objects.select_related("app").filter(pk=integration_id).first()
        if integration is None:
            raise StepExecutionError(f"Integration {integration_id} not found", step_type=self.name)
        if not integration.is_enabled:
            raise StepExecutionError(f"Integration {integration_id} is disabled", step_type=self.name)

        executor = get_executor(integration.app.type)
        logger.info(
            "Executing integration %s (%s) at step %s",
            integration.name,
            integration.app.name,
            ctx.location,
            extra={
                "flow_id": ctx.flow.pk,
                "flow_run_id": getattr(ctx.run, "pk", None),
                "integration_id": integration.pk,
            },
        )

        try:
            result = self._call_with_deadline(
                ctx, executor.execute, as_object(payload), dict(integration.config or {})
            )
        except IntegrationExecutionError as e:
            raise StepExecutionError(
                f"Integration {integration.name} failed: {e}", step_type=self.name
            ) from e

        if not isinstance(result, dict):
            raise StepExecutionError(
                f"Integration {integration.name} returned {type(result).__name__}, expected an object",
                step_type=self.name,
            )

        result = dict(result)
        result["_integration"] = {
            "id": integration.pk,
            "name": integration.name,
            "app": integration.app.name,
        }
        return StepResult(payload=result)

    def _call_with_deadline(self, ctx: StepContext, func, payload, config):
        """Run the executor; with a deadline set, abandon it once the deadline passes."""
        remaining = ctx.remaining_seconds()
        if remaining is None:
            return func(payload, config, None)
        if remaining <= 0:
            raise ExecutionTimeoutError(f"Deadline exceeded before step {ctx.location}")

        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        future = pool.submit(func, payload, config, remaining)
        try:
            return future.result(timeout=remaining)
        except concurrent.futures.TimeoutError:
            logger.warning("Integration call timed out at step %s", ctx.location)
            raise ExecutionTimeoutError(
                f"Integration step {ctx.location} timed out after {remaining:.1f}s"
            ) from None
        finally:
            # The worker thread of a hung call is abandoned, not joined.
            pool.shutdown(wait=False, cancel_futures=True)

    def validate_config(self, step: dict[str, Any]) -> list[str]:
        integration_id = step.get("integration_id")
        if integration_id in (None, ""):
            return ["Missing required field: integration_id"]
        if isinstance(integration_id, bool) or not str(integration_id).isdigit():
            return [f"integration_id must be a numeric id, got {integration_id!r}"]
        return []
