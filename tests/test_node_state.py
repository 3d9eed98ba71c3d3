# ============================================================================
# NODE STATE TESTS
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Tests - Node lifecycle transitions
# PURPOSE: Verify allowed/forbidden transitions and recorded metadata
# CREATED: 17 OCT 2026
# ============================================================================
"""
Node State Tests

Run with:
    pytest tests/test_node_state.py -v
"""

import pytest

from core.contracts import ABSENT, NodeStatus, RunStatus, SkipReason, is_absent
from core.errors import InvalidTransitionError, ReferenceResolutionError
from core.models import NodeState, RunResult


@pytest.fixture
def state():
    return NodeState(run_id="run-1", node_id="capture_vm", resource_type="Microsoft.Compute/virtualMachines")


class TestTransitions:

    def test_happy_path(self, state):
        state.mark_ready()
        state.mark_applying({"name": "vm"})
        state.mark_satisfied(changed=True)

        assert state.status == NodeStatus.SATISFIED
        assert state.is_terminal
        assert state.changed is True
        assert state.resolved_properties == {"name": "vm"}
        assert state.duration_seconds is not None

    def test_failure_keeps_error(self, state):
        state.mark_ready()
        state.mark_applying({})
        state.mark_failed("Quota exceeded", "ProviderError")

        assert state.status == NodeStatus.FAILED
        assert state.error_message == "Quota exceeded"
        assert state.error_type == "ProviderError"

    def test_ready_can_fail_before_apply(self, state):
        state.mark_ready()
        state.mark_failed("cannot render", "ReferenceResolutionError")
        assert state.status == NodeStatus.FAILED
        assert state.started_at is None

    def test_skip_records_reason(self, state):
        state.mark_skipped(SkipReason.UPSTREAM_FAILED, failed_dependency="capture_nic")
        assert state.status == NodeStatus.SKIPPED
        assert state.skip_reason == SkipReason.UPSTREAM_FAILED
        assert state.failed_dependency == "capture_nic"

    @pytest.mark.parametrize("terminal", ["satisfied", "failed", "skipped"])
    def test_terminal_states_are_final(self, state, terminal):
        if terminal == "skipped":
            state.mark_skipped(SkipReason.CANCELLED)
        else:
            state.mark_ready()
            state.mark_applying({})
            if terminal == "satisfied":
                state.mark_satisfied()
            else:
                state.mark_failed("boom")

        with pytest.raises(InvalidTransitionError):
            state.mark_ready()
        with pytest.raises(InvalidTransitionError):
            state.mark_skipped(SkipReason.CANCELLED)

    def test_applying_cannot_be_skipped(self, state):
        state.mark_ready()
        state.mark_applying({})
        assert not state.can_transition_to(NodeStatus.SKIPPED)
        with pytest.raises(InvalidTransitionError):
            state.mark_skipped(SkipReason.UPSTREAM_FAILED)

    def test_pending_cannot_apply_directly(self, state):
        with pytest.raises(InvalidTransitionError):
            state.mark_applying({})

    def test_long_error_truncated(self, state):
        state.mark_ready()
        state.mark_applying({})
        state.mark_failed("x" * 5000)
        assert len(state.error_message) == 2000


class TestAbsentMarker:

    def test_singleton_and_falsy(self):
        assert is_absent(ABSENT)
        assert not ABSENT
        assert ABSENT is not None
        assert not is_absent(None)
        assert not is_absent("")

    def test_refuses_text_conversion(self):
        assert repr(ABSENT) == "<absent>"
        with pytest.raises(ReferenceResolutionError):
            str(ABSENT)
        with pytest.raises(ReferenceResolutionError):
            f"{ABSENT}/keys"
        with pytest.raises(ReferenceResolutionError):
            "%s/keys" % ABSENT


class TestRunResult:

    def test_partitions_and_json_summary(self):
        satisfied = NodeState(run_id="r", node_id="vm", resource_type="T/vm")
        satisfied.mark_ready()
        satisfied.mark_applying({})
        satisfied.mark_satisfied(changed=False)
        skipped = NodeState(run_id="r", node_id="automation", resource_type="T/aa")
        skipped.mark_skipped(SkipReason.CONDITION_FALSE)

        result = RunResult(
            run_id="r",
            deployment_id="d",
            status=RunStatus.SUCCEEDED,
            nodes={"vm": satisfied, "automation": skipped},
            node_outputs={"vm": {"id": "/vm"}, "automation": {"id": ABSENT}},
            outputs={"automation_id": ABSENT, "vm_id": "/vm"},
        )

        assert result.succeeded
        assert result.satisfied == ["vm"]
        assert result.skipped == ["automation"]
        assert result.skipped_for(SkipReason.CONDITION_FALSE) == ["automation"]
        assert result.status_of("vm") == NodeStatus.SATISFIED

        summary = result.to_dict()
        assert summary["status"] == "succeeded"
        assert summary["node_outputs"]["automation"] == {"id": None}
        assert summary["absent"] == ["automation.id"]
        assert summary["absent_outputs"] == ["automation_id"]
        assert summary["nodes"]["vm"]["changed"] is False
        assert summary["nodes"]["automation"]["skip_reason"] == "condition_false"
