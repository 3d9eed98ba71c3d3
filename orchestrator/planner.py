# ============================================================================
# DEPLOYMENT PLANNER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Plan construction and configuration validation
# PURPOSE: Turn a definition plus parameters into an ordered, validated plan
# CREATED: 17 OCT 2026
# ============================================================================
"""
Deployment Planner

Runs everything that happens before the first provider call:

1. Structural validation of the definition
2. Condition evaluation (active/skipped partition, alternate checks)
3. Reference discovery and validation (unknown nodes, outputs, parameters)
4. Dependency graph construction and cycle detection
5. Ready-group ordering

Every configuration error found is collected and raised together as one
PlanValidationError, so a broken deployment is reported in full with no
side effects.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Set

from core.errors import (
    ConfigurationError,
    CyclicDependencyError,
    DefinitionValidationError,
    PlanValidationError,
)
from core.logging import get_logger, log_checkpoint, log_context, ComponentType
from core.models import DeploymentDefinition
from orchestrator.engine.conditions import ConditionEvaluator, ConditionPartition, get_evaluator
from orchestrator.engine.graph import DependencyGraph, GraphBuilder
from orchestrator.engine.references import Reference, ReferenceResolver, get_resolver
from orchestrator.engine.scheduler import plan_groups

logger = get_logger(__name__, ComponentType.PLANNER)


@dataclass
class DeploymentPlan:
    """
    A validated plan for one run.

    Holds the definition, the frozen parameter set, the active/skipped
    partition, the dependency graph and the static ready groups.
    """
    definition: DeploymentDefinition
    params: Mapping[str, Any]
    partition: ConditionPartition
    graph: DependencyGraph
    groups: List[FrozenSet[str]] = field(default_factory=list)
    references: Dict[str, Set[Reference]] = field(default_factory=dict)

    @property
    def deployment_id(self) -> str:
        return self.definition.deployment_id

    @property
    def active(self) -> List[str]:
        return list(self.partition.active)

    @property
    def skipped(self) -> List[str]:
        return list(self.partition.skipped)

    @property
    def aliases(self) -> Dict[str, str]:
        return self.partition.aliases

    @property
    def selected_variants(self) -> Dict[str, str]:
        return dict(self.partition.selected_variants)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe summary for plan output."""
        return {
            "deployment_id": self.deployment_id,
            "version": self.definition.version,
            "active": sorted(self.partition.active),
            "skipped": sorted(self.partition.skipped),
            "selected_variants": self.selected_variants,
            "groups": [sorted(g) for g in self.groups],
            "edges": [list(e) for e in self.graph.edges()],
        }


class DeploymentPlanner:
    """
    Builds DeploymentPlans.

    Stateless - can be reused across runs.
    """

    def __init__(
        self,
        resolver: Optional[ReferenceResolver] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.resolver = resolver or get_resolver()
        self.evaluator = evaluator or get_evaluator()
        self.graph_builder = GraphBuilder(self.resolver)

    def plan(
        self,
        definition: DeploymentDefinition,
        params: Mapping[str, Any],
    ) -> DeploymentPlan:
        """
        Build and validate a plan.

        Args:
            definition: Deployment definition
            params: Resolved parameter set (see services.parameter_service)

        Returns:
            DeploymentPlan

        Raises:
            PlanValidationError: Every configuration error found
        """
        if not isinstance(params, MappingProxyType):
            params = MappingProxyType(dict(params))

        with log_context(deployment_id=definition.deployment_id, component=ComponentType.PLANNER.value):
            structural = definition.validate_structure()
            if structural:
                raise PlanValidationError([
                    DefinitionValidationError(structural, source=definition.deployment_id)
                ])

            errors: List[ConfigurationError] = []

            partition = self.evaluator.partition(definition, params)
            errors.extend(partition.errors)

            references, reference_errors = self._collect_references(definition, params)
            errors.extend(reference_errors)

            # Built even when conditions failed: nodes whose condition did
            # evaluate, wired through the variants that could be selected
            graph = DependencyGraph()
            try:
                graph = self.graph_builder.build(
                    definition,
                    partition.active,
                    aliases=partition.aliases,
                    skipped=partition.skipped,
                    references=references,
                )
            except CyclicDependencyError as e:
                errors.append(e)

            if errors:
                logger.warning(
                    f"Plan for '{definition.deployment_id}' rejected with {len(errors)} error(s)"
                )
                raise PlanValidationError(errors)

            groups = plan_groups(graph)

            plan = DeploymentPlan(
                definition=definition,
                params=params,
                partition=partition,
                graph=graph,
                groups=groups,
                references=references,
            )

            log_checkpoint("plan_built", {
                "deployment_id": definition.deployment_id,
                "active": len(partition.active),
                "skipped": len(partition.skipped),
                "groups": len(groups),
                "edges": graph.edge_count,
            })
            return plan

    def validate(
        self,
        definition: DeploymentDefinition,
        params: Mapping[str, Any],
    ) -> List[ConfigurationError]:
        """Return every configuration error (empty if the plan is valid)."""
        try:
            self.plan(definition, params)
        except PlanValidationError as e:
            return list(e.errors)
        return []

    def _collect_references(
        self,
        definition: DeploymentDefinition,
        params: Mapping[str, Any],
    ):
        """Scan and validate every node's properties and the top-level outputs."""
        declared: Dict[str, List[str]] = {
            name: list(node.outputs) for name, node in definition.nodes.items()
        }
        for capability in definition.capabilities():
            declared[capability] = definition.declared_outputs(capability) or []

        references: Dict[str, Set[Reference]] = {}
        errors: List[ConfigurationError] = []

        for node_id, node in definition.nodes.items():
            scan = self.resolver.scan(node.properties, node_id)
            errors.extend(scan.errors)
            errors.extend(self.resolver.validate(scan, declared, params, node_id))
            references[node_id] = set(scan.references)

        for name, expression in definition.outputs.items():
            owner = f"outputs.{name}"
            scan = self.resolver.scan(expression, owner)
            errors.extend(scan.errors)
            errors.extend(self.resolver.validate(scan, declared, params, owner))

        return references, errors


_planner: Optional[DeploymentPlanner] = None


def get_planner() -> DeploymentPlanner:
    """Get shared planner instance."""
    global _planner
    if _planner is None:
        _planner = DeploymentPlanner()
    return _planner


__all__ = [
    "DeploymentPlan",
    "DeploymentPlanner",
    "get_planner",
]
