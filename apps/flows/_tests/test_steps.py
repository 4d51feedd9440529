"""Tests for flow step handlers."""

import time
from unittest import mock

import pytest

from apps.flows.exceptions import ExecutionTimeoutError, StepExecutionError
from apps.flows.steps import get_step_handler, list_step_types, validate_steps
from apps.flows.steps.base import StepContext, StepResult
from apps.flows.steps.condition import ConditionStepHandler
from apps.flows.steps.integration import IntegrationStepHandler
from apps.flows.steps.transform import TransformStepHandler
from apps.integrations.executors import IntegrationExecutionError


def _ctx(flow=None, **kwargs):
    return StepContext(flow=flow or mock.Mock(pk=1), **kwargs)


class TestRegistry:
    def test_builtin_types(self):
        assert set(list_step_types()) >= {"integration", "transform", "condition"}

    def test_unknown_type(self):
        with pytest.raises(KeyError, match="Unknown step type"):
            get_step_handler("loop")

    def test_validate_steps(self):
        assert validate_steps([{"type": "transform", "transform": {"a": "1"}}]) == []
        assert validate_steps("nope") == ["Steps must be a list"]

        errors = validate_steps(
            [
                "not-a-step",
                {"transform": {}},
                {"type": "loop"},
                {"type": "condition"},
            ]
        )
        assert errors[0] == "Step 0 must be an object"
        assert errors[1] == "Step 1 missing 'type'"
        assert errors[2].startswith("Step 2 has unknown type: loop")
        assert errors[3] == "Step 3 (condition): Missing required field: condition"


class TestTransformStep:
    def test_mapping_merges_into_copy(self):
        payload = {"title": "disk full", "items": [1, 2]}
        result = TransformStepHandler().execute(
            _ctx(), {"type": "transform", "transform": {"title": "upper(title)", "n": "len(items)"}}, payload
        )

        assert result.payload == {"title": "DISK FULL", "items": [1, 2], "n": 2}
        assert payload["title"] == "disk full"

    def test_expression_replaces_payload(self):
        result = TransformStepHandler().execute(
            _ctx(), {"type": "transform", "transform": "{'only': title}"}, {"title": "x", "other": 1}
        )
        assert result.payload == {"only": "x"}

    def test_expression_must_produce_object(self):
        with pytest.raises(StepExecutionError, match="must produce an object"):
            TransformStepHandler().execute(_ctx(), {"type": "transform", "transform": "len(items)"}, {"items": []})

    def test_drop(self):
        result = TransformStepHandler().execute(
            _ctx(),
            {"type": "transform", "transform": {"b": "a + 1"}, "drop": ["a"]},
            {"a": 1},
        )
        assert result.payload == {"b": 2}

    def test_non_object_payload_is_wrapped(self):
        result = TransformStepHandler().execute(
            _ctx(), {"type": "transform", "transform": {"count": "len(payload)"}}, [1, 2, 3]
        )
        assert result.payload == {"data": [1, 2, 3], "count": 3}

    def test_evaluation_error(self):
        with pytest.raises(StepExecutionError, match="Transform error"):
            TransformStepHandler().execute(_ctx(), {"type": "transform", "transform": {"x": "1 / 0"}}, {})

    def test_validate_config(self):
        handler = TransformStepHandler()
        assert handler.validate_config({"transform": {"a": "b"}}) == []
        assert handler.validate_config({}) == ["Missing required field: transform"]
        assert handler.validate_config({"transform": {"a": 1}})
        assert handler.validate_config({"transform": ["a"]})
        assert handler.validate_config({"transform": "open('x')"})
        assert handler.validate_config({"transform": {"a": "b"}, "drop": "a"})


class TestConditionStep:
    def _run_steps(self, branch, payload, path):
        return StepResult(payload={**payload, "branch_ran": path[-1]})

    def test_true_without_branch_passes_through(self):
        result = ConditionStepHandler().execute(_ctx(), {"condition": "x > 1"}, {"x": 2})
        assert result == StepResult(payload={"x": 2}, halt=False, branch="then")

    def test_false_stops_by_default(self):
        result = ConditionStepHandler().execute(_ctx(), {"condition": "x > 1"}, {"x": 0})
        assert result.halt is True
        assert result.payload == {"x": 0}

    def test_false_continue(self):
        result = ConditionStepHandler().execute(
            _ctx(), {"condition": "x > 1", "on_false": "continue"}, {"x": 0}
        )
        assert result.halt is False

    def test_branches(self):
        ctx = _ctx(run_steps=self._run_steps)
        step = {"condition": "x > 1", "then": [{"type": "transform"}], "else": [{"type": "transform"}]}

        assert ConditionStepHandler().execute(ctx, step, {"x": 5}).payload["branch_ran"] == "then"
        result = ConditionStepHandler().execute(ctx, step, {"x": 0})
        assert result.payload["branch_ran"] == "else"
        assert result.halt is False

    def test_expression_error(self):
        with pytest.raises(StepExecutionError, match="Condition error"):
            ConditionStepHandler().execute(_ctx(), {"condition": "x / 0"}, {"x": 1})

    def test_validate_config(self):
        handler = ConditionStepHandler()
        assert handler.validate_config({"condition": "a"}) == []
        assert handler.validate_config({}) == ["Missing required field: condition"]
        assert handler.validate_config({"condition": "a", "on_false": "skip"})
        assert handler.validate_config({"condition": "a", "then": {}}) == ["'then' must be a list of steps"]
        assert handler.validate_config({"condition": "a", "else": [{"type": "loop"}]})[0].startswith(
            "else: Step 0 has unknown type"
        )


@pytest.mark.django_db
class TestIntegrationStep:
    def test_passthrough_adds_provenance(self, passthrough_integration):
        result = IntegrationStepHandler().execute(
            _ctx(), {"integration_id": passthrough_integration.pk}, {"a": 1}
        )

        assert result.payload == {
            "a": 1,
            "_integration": {
                "id": passthrough_integration.pk,
                "name": "generic-integration",
                "app": "Generic",
            },
        }

    def test_missing_integration(self):
        with pytest.raises(StepExecutionError, match="not found"):
            IntegrationStepHandler().execute(_ctx(), {"integration_id": 999}, {})

    def test_disabled_integration(self, passthrough_integration):
        passthrough_integration.is_enabled = False
        passthrough_integration.save()

        with pytest.raises(StepExecutionError, match="disabled"):
            IntegrationStepHandler().execute(_ctx(), {"integration_id": passthrough_integration.pk}, {})

    @mock.patch("apps.integrations.executors.get_executor")
    def test_executor_error(self, mock_get_executor, passthrough_integration):
        mock_get_executor.return_value.execute.side_effect = IntegrationExecutionError("boom")

        with pytest.raises(StepExecutionError, match="generic-integration failed: boom"):
            IntegrationStepHandler().execute(_ctx(), {"integration_id": passthrough_integration.pk}, {})

    @mock.patch("apps.integrations.executors.get_executor")
    def test_executor_must_return_object(self, mock_get_executor, passthrough_integration):
        mock_get_executor.return_value.execute.return_value = ["not", "an", "object"]

        with pytest.raises(StepExecutionError, match="expected an object"):
            IntegrationStepHandler().execute(_ctx(), {"integration_id": passthrough_integration.pk}, {})

    @mock.patch("apps.integrations.executors.get_executor")
    def test_deadline_passes_remaining_time(self, mock_get_executor, passthrough_integration):
        mock_get_executor.return_value.execute.return_value = {}

        IntegrationStepHandler().execute(
            _ctx(deadline=time.monotonic() + 30), {"integration_id": passthrough_integration.pk}, {}
        )

        timeout = mock_get_executor.return_value.execute.call_args[0][2]
        assert 0 < timeout <= 30

    @mock.patch("apps.integrations.executors.get_executor")
    def test_hung_executor_times_out(self, mock_get_executor, passthrough_integration):
        mock_get_executor.return_value.execute.side_effect = lambda payload, config, timeout: time.sleep(2)

        started = time.monotonic()
        with pytest.raises(ExecutionTimeoutError, match="timed out"):
            IntegrationStepHandler().execute(
                _ctx(deadline=time.monotonic() + 0.2),
                {"integration_id": passthrough_integration.pk},
                {},
            )
        assert time.monotonic() - started < 1.5

    def test_deadline_already_passed(self, passthrough_integration):
        with pytest.raises(ExecutionTimeoutError):
            IntegrationStepHandler().execute(
                _ctx(deadline=time.monotonic() - 1), {"integration_id": passthrough_integration.pk}, {}
            )

    def test_validate_config(self):
        handler = IntegrationStepHandler()
        assert handler.validate_config({"integration_id": 3}) == []
        assert handler.validate_config({"integration_id": "3"}) == []
        assert handler.validate_config({}) == ["Missing required field: integration_id"]
        assert handler.validate_config({"integration_id": "abc"})
        assert handler.validate_config({"integration_id": True})
