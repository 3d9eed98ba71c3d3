# ============================================================================
# APPLY ENGINE TESTS
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Tests - Group-ordered concurrent apply
# PURPOSE: Verify scheduling, failure cascade, idempotent re-runs,
#          timeouts and cancellation against the in-memory provider
# CREATED: 17 OCT 2026
# ============================================================================
"""
Apply Engine Tests

Tests:
1. Network/Automation -> VM -> Storage scenario, with and without a VM failure
2. Dependents never observe an unsatisfied producer
3. Independent branches keep running after a failure
4. Re-running converges to no-op applies
5. Per-node timeouts, concurrency bound, cancellation

Run with:
    pytest tests/test_apply_engine.py -v
"""

import asyncio
from typing import Any, Dict, List

import pytest

from core.contracts import ABSENT, NodeStatus, RunStatus, SkipReason
from core.errors import UnresolvedReferenceError
from core.models import ResourceNodeDefinition
from orchestrator.engine.apply import ApplyEngine
from orchestrator.planner import DeploymentPlanner
from providers.base import ProviderContext, ProviderResult, ResourceProvider


def _node(properties=None, depends_on=None, outputs=("id",), condition=None, timeout=None):
    return ResourceNodeDefinition(
        type="Microsoft.Test/resources",
        properties={"name": "r", "resourceGroup": "rg", **(properties or {})},
        depends_on=depends_on or [],
        outputs=list(outputs),
        condition=condition,
        timeout_seconds=timeout,
    )


@pytest.fixture
def scenario(make_definition):
    """Network (no deps) -> VM -> Storage; Automation (no deps) -> Storage."""
    return make_definition(
        nodes={
            "network": _node({"name": "net"}),
            "automation": _node({"name": "aa"}),
            "vm": _node({"name": "vm", "subnet": "{{ nodes.network.outputs.id }}"}),
            "storage": _node(
                {"name": "st", "writer": "{{ nodes.vm.outputs.id }}"},
                depends_on=["automation"],
            ),
        },
        outputs={"storage_id": "{{ nodes.storage.outputs.id }}"},
    )


def _plan(definition, params=None):
    return DeploymentPlanner().plan(definition, params or {})


class RecordingProvider(ResourceProvider):
    """Records call order and checks producers are published before consumers."""

    name = "recording"

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.events: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def apply_resource(self, resource_type: str, properties: Dict[str, Any], context: ProviderContext):
        self.events.append(f"start:{context.node_id}")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        self.events.append(f"end:{context.node_id}")
        return ProviderResult.success_result({"id": f"/{context.node_id}"})


# ============================================================================
# SCENARIO
# ============================================================================

class TestScenario:

    def test_all_satisfied(self, scenario, provider):
        result = asyncio.run(ApplyEngine(provider).run(_plan(scenario)))

        assert result.status == RunStatus.SUCCEEDED
        assert result.groups == [["automation", "network"], ["vm"], ["storage"]]
        assert result.satisfied == ["automation", "network", "storage", "vm"]
        assert result.outputs["storage_id"] == result.node_outputs["storage"]["id"]

    def test_vm_failure(self, scenario, provider):
        provider.fail("vm", "AllocationFailed: no capacity")

        result = asyncio.run(ApplyEngine(provider).run(_plan(scenario)))

        assert result.status == RunStatus.FAILED
        assert result.status_of("network") == NodeStatus.SATISFIED
        assert result.status_of("automation") == NodeStatus.SATISFIED
        assert result.status_of("vm") == NodeStatus.FAILED
        assert result.status_of("storage") == NodeStatus.SKIPPED

        storage = result.nodes["storage"]
        assert storage.skip_reason == SkipReason.UPSTREAM_FAILED
        assert storage.failed_dependency == "vm"
        assert storage.started_at is None
        assert "storage" not in provider.calls

        vm = result.nodes["vm"]
        assert vm.error_message == "AllocationFailed: no capacity"
        assert vm.error_type == "ProviderError"

        # Failed nodes publish nothing; skipped nodes publish absent markers
        assert "vm" not in result.node_outputs
        assert result.node_outputs["storage"] == {"id": ABSENT}
        assert result.outputs["storage_id"] is ABSENT

    def test_producers_finish_before_consumers_start(self, scenario):
        recorder = RecordingProvider(delay=0.01)

        asyncio.run(ApplyEngine(recorder).run(_plan(scenario)))

        events = recorder.events
        assert events.index("end:network") < events.index("start:vm")
        assert events.index("end:vm") < events.index("start:storage")
        assert events.index("end:automation") < events.index("start:storage")

    def test_independent_branch_continues_after_failure(self, make_definition, provider):
        definition = make_definition(
            nodes={
                "a": _node({"name": "a"}),
                "b": _node({"name": "b", "x": "{{ nodes.a.outputs.id }}"}),
                "c": _node({"name": "c"}),
                "d": _node({"name": "d", "x": "{{ nodes.c.outputs.id }}"}),
                "e": _node({"name": "e", "x": "{{ nodes.b.outputs.id }}"}),
            }
        )
        provider.fail("a")

        result = asyncio.run(ApplyEngine(provider).run(_plan(definition)))

        assert result.failed == ["a"]
        assert result.skipped_for(SkipReason.UPSTREAM_FAILED) == ["b", "e"]
        assert result.satisfied == ["c", "d"]
        assert result.nodes["e"].failed_dependency == "a"


# ============================================================================
# CONDITIONS AND OUTPUTS
# ============================================================================

class TestConditionalNodes:

    def test_condition_false_node_is_skipped_with_absent_outputs(self, make_definition, provider):
        definition = make_definition(
            nodes={
                "automation": _node({"name": "aa"}, outputs=["id", "principal_id"], condition="params.enabled"),
                "runbook_ref": _node({
                    "name": "ref",
                    "principal": "{{ nodes.automation.outputs.principal_id }}",
                }),
            },
            parameters={"enabled": {"type": "boolean"}},
        )

        result = asyncio.run(ApplyEngine(provider).run(_plan(definition, {"enabled": False})))

        assert result.status == RunStatus.SUCCEEDED
        assert result.skipped_for(SkipReason.CONDITION_FALSE) == ["automation"]
        assert result.node_outputs["automation"] == {"id": ABSENT, "principal_id": ABSENT}
        # Whole-value absent properties are dropped before the provider call
        assert "principal" not in result.nodes["runbook_ref"].resolved_properties
        assert provider.calls == ["runbook_ref"]

    def test_interpolating_absent_output_fails_node(self, make_definition, provider):
        definition = make_definition(
            nodes={
                "automation": _node({"name": "aa"}, condition="params.enabled"),
                "runbook": _node({"name": "rb", "parentId": "{{ nodes.automation.outputs.id }}/runbooks"}),
                "after": _node({"name": "z", "x": "{{ nodes.runbook.outputs.id }}"}),
            },
            parameters={"enabled": {"type": "boolean"}},
        )

        result = asyncio.run(ApplyEngine(provider).run(_plan(definition, {"enabled": False})))

        assert result.status == RunStatus.FAILED
        assert result.nodes["runbook"].error_type == "ReferenceResolutionError"
        assert result.status_of("after") == NodeStatus.SKIPPED
        assert provider.call_count == 0

    @pytest.mark.parametrize("expression", [
        "{{ nodes.vault.outputs.id ~ '/keys/capture' }}",
        "{{ nodes.vault.outputs.id | string }}",
        "{{ [nodes.vault.outputs.id, 'keys'] | join('/') }}",
    ])
    def test_absent_output_never_becomes_text(self, make_definition, provider, expression):
        definition = make_definition(
            nodes={
                "vault": _node({"name": "kv"}, condition="params.enabled"),
                "key": _node({"name": "k", "vaultRef": expression}),
                "other": _node({"name": "o"}),
            },
            parameters={"enabled": {"type": "boolean"}},
        )

        result = asyncio.run(ApplyEngine(provider).run(_plan(definition, {"enabled": False})))

        assert result.status == RunStatus.FAILED
        assert result.nodes["key"].error_type == "ReferenceResolutionError"
        assert result.nodes["key"].resolved_properties is None
        assert provider.calls == ["other"]

    def test_expression_error_fails_node_with_attribution(self, make_definition, provider):
        definition = make_definition(
            nodes={
                "vault": _node({"name": "kv"}, outputs=["count"], condition="params.enabled"),
                "storage": _node({"name": "st", "replicas": "{{ nodes.vault.outputs.count + 1 }}"}),
                "container": _node({"name": "c", "parentId": "{{ nodes.storage.outputs.id }}"}),
                "other": _node({"name": "o"}),
            },
            parameters={"enabled": {"type": "boolean"}},
            outputs={"replicas": "{{ nodes.vault.outputs.count * 2 }}"},
        )

        result = asyncio.run(ApplyEngine(provider).run(_plan(definition, {"enabled": False})))

        assert result.status == RunStatus.FAILED
        storage = result.nodes["storage"]
        assert storage.status == NodeStatus.FAILED
        assert storage.error_type == "ReferenceResolutionError"
        assert "TypeError" in storage.error_message
        assert result.nodes["container"].failed_dependency == "storage"
        assert result.status_of("other") == NodeStatus.SATISFIED
        assert result.outputs["replicas"] is ABSENT

    def test_missing_declared_output_fails_node(self, make_definition):
        class SparseProvider(ResourceProvider):
            async def apply_resource(self, resource_type, properties, context):
                return ProviderResult.success_result({"id": "/x"})

        definition = make_definition(nodes={"vault": _node(outputs=["id", "vault_uri"])})

        result = asyncio.run(ApplyEngine(SparseProvider()).run(_plan(definition)))

        assert result.nodes["vault"].error_type == "MissingOutputError"
        assert "vault_uri" in result.nodes["vault"].error_message

    def test_provider_exception_becomes_failure(self, make_definition):
        class ExplodingProvider(ResourceProvider):
            async def apply_resource(self, resource_type, properties, context):
                raise ConnectionError("endpoint unreachable")

        definition = make_definition(nodes={"vault": _node()})

        result = asyncio.run(ApplyEngine(ExplodingProvider()).run(_plan(definition)))

        assert result.status == RunStatus.FAILED
        assert result.nodes["vault"].error_type == "ConnectionError"
        assert "endpoint unreachable" in result.nodes["vault"].error_message


# ============================================================================
# IDEMPOTENCE
# ============================================================================

class TestIdempotence:

    def test_second_run_is_noop(self, scenario, provider):
        engine = ApplyEngine(provider)

        first = asyncio.run(engine.run(_plan(scenario)))
        second = asyncio.run(engine.run(_plan(scenario)))

        assert first.status == second.status == RunStatus.SUCCEEDED
        assert all(state.changed is True for state in first.nodes.values())
        assert all(state.changed is False for state in second.nodes.values())
        assert first.node_outputs == second.node_outputs
        assert len(provider.resources) == 4

    def test_rerun_after_failure_converges(self, scenario, provider):
        provider.fail("vm", times=1)
        engine = ApplyEngine(provider)

        first = asyncio.run(engine.run(_plan(scenario)))
        second = asyncio.run(engine.run(_plan(scenario)))

        assert first.status == RunStatus.FAILED
        assert second.status == RunStatus.SUCCEEDED
        assert second.nodes["network"].changed is False
        assert second.nodes["vm"].changed is True
        assert second.nodes["storage"].changed is True


# ============================================================================
# CONCURRENCY, TIMEOUTS, CANCELLATION
# ============================================================================

class TestExecutionControl:

    def test_concurrency_bound(self, make_definition):
        definition = make_definition(
            nodes={f"n{i}": _node({"name": f"n{i}"}) for i in range(6)}
        )
        recorder = RecordingProvider(delay=0.02)

        asyncio.run(ApplyEngine(recorder, max_concurrency=2).run(_plan(definition)))

        assert recorder.max_in_flight == 2

    def test_group_runs_concurrently(self, make_definition):
        definition = make_definition(
            nodes={f"n{i}": _node({"name": f"n{i}"}) for i in range(4)}
        )
        recorder = RecordingProvider(delay=0.02)

        asyncio.run(ApplyEngine(recorder, max_concurrency=8).run(_plan(definition)))

        assert recorder.max_in_flight == 4

    def test_node_timeout(self, make_definition, provider):
        definition = make_definition(
            nodes={
                "slow": _node({"name": "slow"}, timeout=1),
                "after": _node({"name": "after", "x": "{{ nodes.slow.outputs.id }}"}),
            }
        )
        provider.delay("slow", 5)
        engine = ApplyEngine(provider)
        engine.apply_timeout_seconds = 60

        result = asyncio.run(engine.run(_plan(definition)))

        assert result.nodes["slow"].error_type == "TimeoutError"
        assert result.nodes["after"].skip_reason == SkipReason.UPSTREAM_FAILED

    def test_cancel_stops_scheduling(self, scenario, provider):
        engine = ApplyEngine(provider)
        provider.delay("network", 0.05)
        provider.delay("automation", 0.05)

        async def scenario_run():
            task = asyncio.ensure_future(engine.run(_plan(scenario)))
            await asyncio.sleep(0.01)
            engine.cancel()
            return await task

        result = asyncio.run(scenario_run())

        assert result.status == RunStatus.CANCELLED
        assert result.satisfied == ["automation", "network"]
        assert result.skipped_for(SkipReason.CANCELLED) == ["storage", "vm"]
        assert result.node_outputs["vm"] == {"id": ABSENT}
        assert "vm" not in provider.calls

    def test_task_cancellation_lets_in_flight_finish(self, scenario, provider):
        engine = ApplyEngine(provider)
        provider.delay("network", 0.05)
        provider.delay("automation", 0.05)

        async def scenario_run():
            task = asyncio.ensure_future(engine.run(_plan(scenario)))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario_run())

        result = engine.last_result
        assert result.status == RunStatus.CANCELLED
        assert result.status_of("network") == NodeStatus.SATISFIED
        assert result.status_of("vm") == NodeStatus.SKIPPED

    def test_unresolved_reference_is_fatal(self, scenario, provider):
        plan = _plan(scenario)
        # Simulate an edge discovery bug: vm no longer waits on network
        plan.graph.forward_edges["network"].remove("vm")
        plan.graph.backward_edges["vm"].remove("network")
        provider.delay("network", 0.05)

        with pytest.raises(UnresolvedReferenceError):
            asyncio.run(ApplyEngine(provider).run(plan))
