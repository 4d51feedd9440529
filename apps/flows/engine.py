"""
Flow execution engine.

Runs a flow's step list against a payload and, on success, fans the output
out to the flow's enabled child flows by creating child FlowRuns and queue
items.

Usage:
    engine = FlowEngine()
    result = engine.execute(flow, payload={"severity": "high"}, run=run)
    result.output    # final payload
    result.children  # child FlowRuns created by the cascade
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings
from django.db import transaction

from apps.flows.exceptions import (
    ExecutionTimeoutError,
    FlowEngineError,
    PermanentLogicError,
    StepExecutionError,
)
from apps.flows.models import Flow, FlowRun, RunStatus
from apps.flows.steps import StepContext, StepResult, get_step_handler, list_step_types, validate_steps

logger = logging.getLogger(__name__)

__all__ = ["ExecutionResult", "FlowEngine", "validate_steps"]


@dataclass
class ExecutionResult:
    """Outcome of one successful flow execution."""

    output: Any
    children: list[FlowRun] = field(default_factory=list)
    halted: bool = False


class FlowEngine:
    """
    Execute flows step by step.

    Steps run strictly in order; each receives the previous step's output.
    The first failing step aborts the flow with a ``StepExecutionError``
    carrying its index and type. ``deadline`` is a ``time.monotonic()``
    timestamp checked between steps.
    """

    def __init__(self, max_cascade_depth: int | None = None):
        if max_cascade_depth is None:
            max_cascade_depth = getattr(settings, "FLOWS_MAX_CASCADE_DEPTH", 10)
        self.max_cascade_depth = max_cascade_depth

    def execute(
        self,
        flow: Flow,
        payload: Any,
        run: FlowRun | None = None,
        deadline: float | None = None,
    ) -> ExecutionResult:
        """
        Run ``flow`` against ``payload``.

        Args:
            flow: The flow to execute.
            payload: Input document (the run's input).
            run: The FlowRun being executed. Required for the child cascade;
                without it the flow runs in isolation.
            deadline: Optional ``time.monotonic()`` deadline.

        Returns:
            ExecutionResult with the final payload and any child runs created.

        Raises:
            PermanentLogicError: Flow disabled or unknown step type.
            StepExecutionError: A step failed.
            ExecutionTimeoutError: The deadline passed between steps.
        """
        if not flow.is_enabled:
            raise PermanentLogicError(f"Flow {flow.pk} ({flow.name}) is disabled")

        steps = flow.get_steps()
        logger.info(
            "Executing flow %s with %d step(s)",
            flow.name,
            len(steps),
            extra={"flow_id": flow.pk, "flow_run_id": getattr(run, "pk", None)},
        )

        result = self._run_steps(flow, run, steps, payload, deadline, path=[])

        children: list[FlowRun] = []
        if run is not None and not result.halt:
            children = self.cascade(flow, result.payload, run)
        elif result.halt:
            logger.info(
                "Flow %s halted by a condition; children not triggered",
                flow.name,
                extra={"flow_id": flow.pk, "flow_run_id": getattr(run, "pk", None)},
            )

        return ExecutionResult(output=result.payload, children=children, halted=result.halt)

    def _run_steps(
        self,
        flow: Flow,
        run: FlowRun | None,
        steps: list,
        payload: Any,
        deadline: float | None,
        path: list[str],
    ) -> StepResult:
        current = payload

        for index, step in enumerate(steps):
            if deadline is not None and time.monotonic() >= deadline:
                location = ".".join([*path, str(index)])
                raise ExecutionTimeoutError(f"Execution deadline exceeded before step {location}")

            step_type = step.get("type") if isinstance(step, dict) else None
            if step_type not in list_step_types():
                raise PermanentLogicError(f"Unknown step type at step {index}: {step_type!r}")

            handler = get_step_handler(step_type)
            errors = handler.validate_config(step)
            if errors:
                raise StepExecutionError(
                    f"Invalid {step_type} step: {'; '.join(errors)}",
                    step_type=step_type,
                    step_index=index,
                )

            ctx = StepContext(
                flow=flow,
                run=run,
                step_index=index,
                deadline=deadline,
                run_steps=lambda branch, data, branch_path: self._run_steps(
                    flow, run, branch, data, deadline, branch_path
                ),
                path=path,
            )

            try:
                result = handler.execute(ctx, step, current)
            except StepExecutionError as e:
                if e.step_index is None:
                    e.step_index = index
                if not e.step_type:
                    e.step_type = step_type
                logger.warning(
                    "Step %s (%s) failed in flow %s: %s",
                    ctx.location,
                    step_type,
                    flow.name,
                    e,
                    extra={"flow_id": flow.pk, "flow_run_id": getattr(run, "pk", None)},
                )
                raise
            except FlowEngineError:
                raise
            except Exception as e:
                logger.exception(
                    "Unexpected error in step %s (%s) of flow %s",
                    ctx.location,
                    step_type,
                    flow.name,
                    extra={"flow_id": flow.pk, "flow_run_id": getattr(run, "pk", None)},
                )
                raise StepExecutionError(
                    f"Step {index} ({step_type}) failed: {e}",
                    step_type=step_type,
                    step_index=index,
                ) from e

            current = result.payload
            if result.halt:
                return StepResult(payload=current, halt=True)

        return StepResult(payload=current)

    def cascade(self, flow: Flow, output: Any, run: FlowRun) -> list[FlowRun]:
        """
        Create a pending child run and queue item for every enabled child flow.

        Each child gets its own queue (``flow-<childId>``) and its own atomic
        block. Refused when the child lineage would exceed the configured
        maximum depth; a child already present in the lineage is skipped, and
        so is a child that already has a run under ``run``.
        """
        from apps.queues.services import enqueue, find_or_create_queue

        child_flows = list(flow.child_flows.filter(is_enabled=True).order_by("id"))
        if not child_flows:
            return []

        lineage = [*(run.lineage or []), flow.pk]
        if len(lineage) > self.max_cascade_depth:
            logger.warning(
                "Cascade from flow %s refused: depth %d exceeds limit %d",
                flow.name,
                len(lineage),
                self.max_cascade_depth,
                extra={"flow_id": flow.pk, "flow_run_id": run.pk},
            )
            return []

        # A retried parent run keeps the children an earlier attempt committed.
        already_triggered = set(
            FlowRun.objects.filter(parent_run=run).values_list("flow_id", flat=True)
        )

        children: list[FlowRun] = []
        for child in child_flows:
            if child.pk in already_triggered:
                logger.info(
                    "Child flow %s already triggered by run %s; skipping",
                    child.name,
                    run.pk,
                    extra={"flow_id": flow.pk, "flow_run_id": run.pk},
                )
                continue
            if child.pk in lineage:
                logger.warning(
                    "Cascade from flow %s to %s refused: cycle in lineage %s",
                    flow.name,
                    child.name,
                    lineage,
                    extra={"flow_id": flow.pk, "flow_run_id": run.pk},
                )
                continue

            with transaction.atomic():
                child_run = FlowRun.objects.create(
                    flow=child,
                    parent_run=run,
                    lineage=lineage,
                    status=RunStatus.PENDING,
                    input=output,
                )
                queue = find_or_create_queue(
                    child.queue_name, description=f"Work for child flow {child.name}"
                )
                enqueue(queue, child, child_run, output)
            children.append(child_run)

        if children:
            logger.info(
                "Flow %s triggered %d child run(s)",
                flow.name,
                len(children),
                extra={"flow_id": flow.pk, "flow_run_id": run.pk},
            )
        return children
