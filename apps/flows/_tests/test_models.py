"""Tests for flow models."""

import pytest
from django.core.exceptions import ValidationError
from django.db.models import ProtectedError
from django.test import TestCase

from apps.flows.models import Flow, FlowRun, RunStatus


class FlowModelTest(TestCase):
    def test_str_and_queue_name(self):
        flow = Flow.objects.create(name="enrich")
        self.assertEqual(str(flow), "enrich")
        self.assertEqual(flow.queue_name, f"flow-{flow.pk}")
        self.assertTrue(flow.is_root)

    def test_get_steps(self):
        self.assertEqual(Flow(config={}).get_steps(), [])
        self.assertEqual(Flow(config={"steps": None}).get_steps(), [])
        self.assertEqual(Flow(config={"steps": [{"type": "transform"}]}).get_steps(), [{"type": "transform"}])

    def test_ancestors(self):
        root = Flow.objects.create(name="root")
        middle = Flow.objects.create(name="middle", parent_flow=root)
        leaf = Flow.objects.create(name="leaf", parent_flow=middle)

        self.assertEqual(leaf.ancestors(), [middle, root])
        self.assertEqual(root.ancestors(), [])

    def test_clean_rejects_self_parent(self):
        flow = Flow.objects.create(name="loop")
        flow.parent_flow = flow

        with self.assertRaises(ValidationError) as ctx:
            flow.clean()
        self.assertIn("parent_flow", ctx.exception.message_dict)

    def test_clean_rejects_descendant_parent(self):
        root = Flow.objects.create(name="root")
        child = Flow.objects.create(name="child", parent_flow=root)
        grandchild = Flow.objects.create(name="grandchild", parent_flow=child)

        root.parent_flow = grandchild
        with self.assertRaises(ValidationError) as ctx:
            root.clean()
        self.assertIn("descendants", ctx.exception.message_dict["parent_flow"][0])

    def test_clean_validates_steps(self):
        flow = Flow(name="bad", config={"steps": [{"type": "loop"}]})
        with self.assertRaises(ValidationError) as ctx:
            flow.clean()
        self.assertIn("unknown type: loop", ctx.exception.message_dict["config"][0])

    def test_clean_rejects_non_list_steps(self):
        flow = Flow(name="bad", config={"steps": {"type": "transform"}})
        with self.assertRaises(ValidationError) as ctx:
            flow.clean()
        self.assertEqual(ctx.exception.message_dict["config"], ["'steps' must be a list."])

    def test_clean_accepts_valid_flow(self):
        root = Flow.objects.create(name="root")
        flow = Flow(
            name="ok",
            parent_flow=root,
            config={"steps": [{"type": "condition", "condition": "a > 1", "then": [{"type": "transform", "transform": {"b": "a"}}]}]},
        )
        flow.clean()

    def test_delete_with_children_is_refused(self):
        root = Flow.objects.create(name="root")
        Flow.objects.create(name="child", parent_flow=root)

        with self.assertRaises(ProtectedError):
            root.delete()


@pytest.mark.django_db
class TestFlowRunTransitions:
    @pytest.fixture
    def run(self, make_flow):
        return FlowRun.objects.create(flow=make_flow("f"), input={"a": 1})

    def test_happy_path(self, run):
        assert run.mark_processing() is True
        assert run.status == RunStatus.PROCESSING

        assert run.mark_completed({"out": 1}) is True
        run.refresh_from_db()
        assert run.status == RunStatus.COMPLETED
        assert run.output == {"out": 1}
        assert run.completed_at is not None
        assert run.duration_ms is not None
        assert run.is_terminal

    def test_failed_keeps_no_output(self, run):
        run.mark_processing()
        assert run.mark_failed("step 1 failed") is True
        run.refresh_from_db()
        assert run.status == RunStatus.FAILED
        assert run.output is None
        assert run.error == "step 1 failed"

    def test_terminal_state_is_final(self, run):
        run.mark_processing()
        run.mark_failed("nope")

        assert run.mark_processing() is False
        assert run.mark_completed({"late": True}) is False
        assert run.mark_pending() is False
        run.refresh_from_db()
        assert run.status == RunStatus.FAILED
        assert run.output is None

    def test_mark_pending_only_from_processing(self, run):
        assert run.mark_pending() is False
        run.mark_processing()
        assert run.mark_pending() is True
        assert run.status == RunStatus.PENDING

    def test_depth(self, run):
        assert run.depth == 0
        run.lineage = [1, 2]
        assert run.depth == 2
