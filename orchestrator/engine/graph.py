# ============================================================================
# DEPENDENCY GRAPH BUILDER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - DAG construction and cycle detection
# PURPOSE: Build producer -> consumer edges over the active node subset
# CREATED: 17 OCT 2026
# ============================================================================
"""
Dependency Graph Builder

Edges come from two places:
- Explicit depends_on declarations
- References discovered in property values ({{ nodes.X.outputs.Y }})

A -> B means "B depends on A" (A must be satisfied before B applies).

Only active nodes take part. Names are looked up through the capability
alias map, so depending on 'resource_group' means depending on whichever
variant is active. Edges to skipped nodes are dropped: those nodes are
already settled with absent outputs.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from core.errors import CyclicDependencyError
from core.logging import get_logger, ComponentType
from core.models import DeploymentDefinition
from orchestrator.engine.references import Reference, ReferenceResolver, get_resolver

logger = get_logger(__name__, ComponentType.PLANNER)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class DependencyGraph:
    """
    Dependency graph over the active nodes of a run.

    Nodes are connected by edges representing dependencies.
    A -> B means "B depends on A" (A must complete before B).
    """
    # Node ID -> nodes that depend on it
    forward_edges: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # Node ID -> nodes it depends on
    backward_edges: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # All node IDs
    nodes: Set[str] = field(default_factory=set)

    def add_node(self, node_id: str) -> None:
        self.nodes.add(node_id)

    def add_edge(self, from_node: str, to_node: str) -> None:
        """Add a dependency edge: to_node depends on from_node."""
        self.nodes.add(from_node)
        self.nodes.add(to_node)
        if to_node in self.forward_edges[from_node]:
            return
        self.forward_edges[from_node].append(to_node)
        self.backward_edges[to_node].append(from_node)

    def get_dependencies(self, node_id: str) -> List[str]:
        """Get nodes that this node depends on."""
        return list(self.backward_edges.get(node_id, []))

    def get_dependents(self, node_id: str) -> List[str]:
        """Get nodes that depend on this node."""
        return list(self.forward_edges.get(node_id, []))

    def transitive_dependents(self, node_id: str) -> Set[str]:
        """Every node reachable downstream of node_id (excluding itself)."""
        seen: Set[str] = set()
        queue = deque(self.forward_edges.get(node_id, []))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.forward_edges.get(current, []))
        seen.discard(node_id)
        return seen

    def edges(self) -> List[Tuple[str, str]]:
        """All (producer, consumer) pairs, sorted."""
        return sorted(
            (src, dst)
            for src, targets in self.forward_edges.items()
            for dst in targets
        )

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.forward_edges.values())

    def roots(self) -> List[str]:
        """Nodes with no dependencies."""
        return sorted(n for n in self.nodes if not self.backward_edges.get(n))


# ============================================================================
# CYCLE DETECTION
# ============================================================================

_WHITE, _GRAY, _BLACK = 0, 1, 2


def find_cycles(graph: DependencyGraph) -> List[List[str]]:
    """
    Find dependency cycles with a depth-first traversal.

    Every back edge found yields one cycle, rotated to start at its
    smallest node name so the same cycle is not reported twice.
    """
    color: Dict[str, int] = {node: _WHITE for node in graph.nodes}
    path: List[str] = []
    cycles: List[List[str]] = []
    seen: Set[Tuple[str, ...]] = set()

    def visit(node: str) -> None:
        color[node] = _GRAY
        path.append(node)
        for dependent in sorted(graph.forward_edges.get(node, [])):
            state = color.get(dependent, _WHITE)
            if state == _GRAY:
                cycle = path[path.index(dependent):]
                pivot = cycle.index(min(cycle))
                normalized = tuple(cycle[pivot:] + cycle[:pivot])
                if normalized not in seen:
                    seen.add(normalized)
                    cycles.append(list(normalized))
            elif state == _WHITE:
                visit(dependent)
        path.pop()
        color[node] = _BLACK

    for node in sorted(graph.nodes):
        if color[node] == _WHITE:
            visit(node)

    return cycles


# ============================================================================
# GRAPH BUILDER
# ============================================================================

class GraphBuilder:
    """Builds the dependency graph for the active subset of a deployment."""

    def __init__(self, resolver: Optional[ReferenceResolver] = None):
        self.resolver = resolver or get_resolver()

    def dependencies_of(
        self,
        definition: DeploymentDefinition,
        node_id: str,
        references: Optional[Mapping[str, Set[Reference]]] = None,
    ) -> Set[str]:
        """Declared plus discovered dependency names of a node (before aliasing)."""
        node = definition.get_node(node_id)
        names = set(node.depends_on)
        if references is not None and node_id in references:
            names |= {ref.node for ref in references[node_id]}
        else:
            names |= self.resolver.referenced_nodes(node.properties, node_id)
        return names

    def build(
        self,
        definition: DeploymentDefinition,
        active: Iterable[str],
        aliases: Optional[Mapping[str, str]] = None,
        skipped: Iterable[str] = (),
        references: Optional[Mapping[str, Set[Reference]]] = None,
    ) -> DependencyGraph:
        """
        Build dependency graph over active nodes.

        Args:
            definition: Deployment definition
            active: Names of nodes whose condition is true
            aliases: Capability -> active variant
            skipped: Names of nodes skipped by condition
            references: Precomputed node -> references (rescanned if None)

        Returns:
            DependencyGraph instance

        Raises:
            CyclicDependencyError: If the active graph contains cycles
        """
        aliases = aliases or {}
        active = list(active)
        active_set = set(active)
        skipped_set = set(skipped)
        graph = DependencyGraph()

        for node_id in active:
            graph.add_node(node_id)
            for name in sorted(self.dependencies_of(definition, node_id, references)):
                target = aliases.get(name, name)
                if target in skipped_set:
                    logger.debug(f"Dropping edge {target} -> {node_id}: {target} is skipped")
                    continue
                if target not in active_set:
                    # Unknown names are reported by reference validation
                    continue
                graph.add_edge(target, node_id)

        cycles = find_cycles(graph)
        if cycles:
            raise CyclicDependencyError(cycles)

        logger.debug(
            f"Built graph for '{definition.deployment_id}': "
            f"{len(graph.nodes)} nodes, {graph.edge_count} edges"
        )
        return graph


__all__ = [
    "DependencyGraph",
    "GraphBuilder",
    "find_cycles",
]
