# ============================================================================
# TOPOLOGICAL SCHEDULER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Ready-group ordering
# PURPOSE: Order active nodes into groups that may apply concurrently
# CREATED: 17 OCT 2026
# ============================================================================
"""
Topological Scheduler

Produces "ready groups": sets of nodes whose dependencies are all
satisfied. Applying groups in order, and the nodes of a group in any order
(including in parallel), is always correct. No ordering is promised between
nodes of one group.

Two entry points:
- plan_groups(): static grouping used for plan output
- ScheduleState.next_group(): runtime grouping driven by node statuses
"""

from typing import Dict, FrozenSet, List, Set

from core.contracts import NodeStatus
from core.errors import SchedulingError
from core.models import NodeState
from orchestrator.engine.graph import DependencyGraph


def plan_groups(graph: DependencyGraph) -> List[FrozenSet[str]]:
    """
    Group nodes by dependency depth (Kahn's algorithm, one level at a time).

    Raises:
        SchedulingError: Nodes remain but none are ready (undetected cycle)
    """
    remaining: Set[str] = set(graph.nodes)
    done: Set[str] = set()
    groups: List[FrozenSet[str]] = []

    while remaining:
        ready = frozenset(
            node for node in remaining
            if all(dep in done for dep in graph.get_dependencies(node))
        )
        if not ready:
            raise SchedulingError(
                f"No progress possible; remaining nodes {sorted(remaining)} wait on each other"
            )
        groups.append(ready)
        done |= ready
        remaining -= ready

    return groups


class ScheduleState:
    """
    Runtime scheduler over live node states.

    A node becomes ready when it is still PENDING and every dependency is
    SATISFIED. Nodes outside the graph (skipped by condition) are ignored.
    """

    def __init__(self, graph: DependencyGraph):
        self.graph = graph
        self.groups: List[FrozenSet[str]] = []

    def next_group(self, states: Dict[str, NodeState]) -> FrozenSet[str]:
        """
        Compute the next ready group and mark its nodes READY.

        Returns:
            Ready node names (empty when nothing can start)
        """
        ready = frozenset(
            node for node in self.graph.nodes
            if states[node].status == NodeStatus.PENDING
            and all(
                states[dep].status == NodeStatus.SATISFIED
                for dep in self.graph.get_dependencies(node)
            )
        )
        for node in ready:
            states[node].mark_ready()
        if ready:
            self.groups.append(ready)
        return ready

    def pending(self, states: Dict[str, NodeState]) -> List[str]:
        """Graph nodes still waiting to start."""
        return sorted(
            node for node in self.graph.nodes
            if states[node].status in (NodeStatus.PENDING, NodeStatus.READY)
        )

    def check_progress(self, states: Dict[str, NodeState]) -> None:
        """
        Raise if nodes are pending but none can ever become ready.

        Called after next_group() returned empty with nothing in flight.
        """
        stuck = self.pending(states)
        if stuck:
            raise SchedulingError(
                f"No progress possible; pending nodes {stuck} have unsatisfied dependencies"
            )


__all__ = [
    "plan_groups",
    "ScheduleState",
]
