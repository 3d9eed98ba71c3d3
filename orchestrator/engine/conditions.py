# ============================================================================
# CONDITIONAL EVALUATOR
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Existence conditions and alternate-scope checking
# PURPOSE: Partition nodes into active/skipped before graph construction
# CREATED: 17 OCT 2026
# ============================================================================
"""
Conditional Evaluator

Evaluates each node's existence condition as a pure function of the
parameter set. Conditions are Jinja2 expressions with only `params` in
scope:

    condition: "params.create_resource_group"
    condition: "not params.create_resource_group"
    condition: "params.network_mode == 'new' and params.enable_capture"

Alternate variants of one capability (e.g. a new and an existing resource
group) must be mutually exclusive and jointly exhaustive. The evaluator
checks that for the current parameters and, when the parameters the
variants read have a finite domain, for every combination of them.
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from jinja2 import Environment, BaseLoader, StrictUndefined, TemplateSyntaxError, Undefined
from jinja2 import meta, nodes as jnodes
from jinja2.exceptions import UndefinedError

from core.errors import (
    AlternateConditionError,
    ConditionError,
    ConfigurationError,
    UnknownParameterError,
)
from core.logging import get_logger, ComponentType
from core.models import DeploymentDefinition
from orchestrator.engine.references import AttributeView, PARAMS_ROOT, access_chain

logger = get_logger(__name__, ComponentType.PLANNER)

# Upper bound on parameter combinations enumerated per capability
MAX_ENUMERATION = 256


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class ConditionPartition:
    """Active/skipped split of a deployment's nodes for one parameter set."""
    # Nodes whose condition is true, in declaration order
    active: List[str] = field(default_factory=list)

    # Nodes whose condition is false (Skipped with reason condition_false)
    skipped: List[str] = field(default_factory=list)

    # Capability -> the one active variant
    selected_variants: Dict[str, str] = field(default_factory=dict)

    # Node -> evaluated condition
    results: Dict[str, bool] = field(default_factory=dict)

    # Configuration errors found while evaluating
    errors: List[ConfigurationError] = field(default_factory=list)

    def is_active(self, node_id: str) -> bool:
        return self.results.get(node_id, False)

    @property
    def aliases(self) -> Dict[str, str]:
        """Capability -> active variant, for reference and dependency lookup."""
        return dict(self.selected_variants)


# ============================================================================
# CONDITION EVALUATOR
# ============================================================================

class ConditionEvaluator:
    """
    Evaluates existence conditions with Jinja2 expressions.

    Empty condition is always true. Results are coerced with bool().
    """

    def __init__(self):
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            undefined=StrictUndefined,
        )

    def _parse(self, condition: str, node_id: Optional[str]) -> Tuple[jnodes.Template, jnodes.Node]:
        """Parse a condition into its template and single expression node."""
        try:
            template = self._env.parse("{{ " + condition + " }}")
        except TemplateSyntaxError as e:
            raise ConditionError(
                f"Invalid condition on '{node_id}': {e.message}", node_id=node_id
            ) from e
        body = template.body
        if len(body) != 1 or not isinstance(body[0], jnodes.Output) or len(body[0].nodes) != 1:
            raise ConditionError(
                f"Condition on '{node_id}' must be a single expression", node_id=node_id
            )
        return template, body[0].nodes[0]

    def parameters_read(self, condition: Optional[str], node_id: Optional[str] = None) -> Set[str]:
        """
        Names of parameters a condition reads.

        Raises:
            ConditionError: If the condition reads anything but params.<name>
        """
        if not condition:
            return set()

        template, expr = self._parse(condition, node_id)
        others = meta.find_undeclared_variables(template) - {PARAMS_ROOT}
        if others:
            raise ConditionError(
                f"Condition on '{node_id}' reads {sorted(others)}; "
                f"conditions may read only '{PARAMS_ROOT}'",
                node_id=node_id,
            )

        names: Set[str] = set()
        accessors = list(expr.find_all((jnodes.Getattr, jnodes.Getitem)))
        if isinstance(expr, (jnodes.Getattr, jnodes.Getitem)):
            accessors.append(expr)
        inner = {id(a.node) for a in accessors}
        for accessor in accessors:
            if id(accessor) in inner:
                continue
            chain = access_chain(accessor)
            if not chain or chain[0] != PARAMS_ROOT:
                continue
            if len(chain) < 2 or chain[1] is None:
                raise ConditionError(
                    f"Condition on '{node_id}' uses dynamic parameter access", node_id=node_id
                )
            names.add(chain[1])

        bare = [n for n in expr.find_all(jnodes.Name) if n.name == PARAMS_ROOT and id(n) not in inner]
        if isinstance(expr, jnodes.Name) and expr.name == PARAMS_ROOT:
            bare.append(expr)
        if bare:
            raise ConditionError(
                f"Condition on '{node_id}' must read {PARAMS_ROOT}.<name>", node_id=node_id
            )
        return names

    def evaluate(
        self,
        condition: Optional[str],
        params: Mapping[str, Any],
        node_id: Optional[str] = None,
    ) -> bool:
        """
        Evaluate a condition against a parameter set.

        Args:
            condition: Condition expression (None/empty means true)
            params: Resolved parameter set
            node_id: Node owning the condition (for error attribution)

        Returns:
            True if the node should exist

        Raises:
            ConditionError: Malformed condition or evaluation failure
            UnknownParameterError: Condition reads an undeclared parameter
        """
        if not condition:
            return True

        for name in sorted(self.parameters_read(condition, node_id)):
            if name not in params:
                raise UnknownParameterError(name, node_id=node_id)

        try:
            expression = self._env.compile_expression(condition, undefined_to_none=False)
            result = expression(**{PARAMS_ROOT: AttributeView(PARAMS_ROOT, params)})
            if isinstance(result, Undefined):
                raise ConditionError(
                    f"Condition on '{node_id}' is undefined: {condition}", node_id=node_id
                )
            return bool(result)
        except ConditionError:
            raise
        except (TemplateSyntaxError, UndefinedError, TypeError, ValueError, AttributeError) as e:
            raise ConditionError(
                f"Failed to evaluate condition on '{node_id}' ({condition}): {e}",
                node_id=node_id,
            ) from e

    def are_complements(self, first: Optional[str], second: Optional[str]) -> bool:
        """
        True when one condition is syntactically the negation of the other.

        'params.x' / 'not params.x' qualifies; 'params.x' / 'params.x == false'
        does not (that pair falls back to enumeration).
        """
        if not first or not second:
            return False
        try:
            _, a = self._parse(first, None)
            _, b = self._parse(second, None)
        except ConditionError:
            return False
        if isinstance(a, jnodes.Not) and a.node == b:
            return True
        if isinstance(b, jnodes.Not) and b.node == a:
            return True
        return False

    # ------------------------------------------------------------------
    # Partitioning
    # ------------------------------------------------------------------

    def partition(
        self,
        definition: DeploymentDefinition,
        params: Mapping[str, Any],
    ) -> ConditionPartition:
        """
        Split nodes into active and skipped for a parameter set.

        Errors are collected on the partition rather than raised so the
        planner can report every configuration problem in one pass.
        """
        result = ConditionPartition()

        for node_id, node in definition.nodes.items():
            try:
                active = self.evaluate(node.condition, params, node_id)
            except ConfigurationError as e:
                result.errors.append(e)
                continue
            result.results[node_id] = active
            if active:
                result.active.append(node_id)
            else:
                result.skipped.append(node_id)

        if not result.errors:
            result.errors.extend(self.check_alternates(definition, params, result))

        for capability, variants in definition.capabilities().items():
            chosen = [v for v in variants if result.results.get(v)]
            if len(chosen) == 1:
                result.selected_variants[capability] = chosen[0]

        logger.debug(
            f"Partitioned {len(definition.nodes)} nodes: "
            f"{len(result.active)} active, {len(result.skipped)} skipped"
        )
        return result

    def check_alternates(
        self,
        definition: DeploymentDefinition,
        params: Mapping[str, Any],
        partition: Optional[ConditionPartition] = None,
    ) -> List[AlternateConditionError]:
        """
        Check that every capability has exactly one active variant.

        Always checked for the current parameters; additionally checked for
        every combination of finite-domain parameters the variants read.
        """
        errors: List[AlternateConditionError] = []

        for capability, variants in definition.capabilities().items():
            conditions = {v: definition.nodes[v].condition for v in variants}

            if partition is not None:
                current = {v: partition.results.get(v, False) for v in variants}
            else:
                current = {v: self.evaluate(c, params, v) for v, c in conditions.items()}

            read: Set[str] = set()
            for v, c in conditions.items():
                read |= self.parameters_read(c, v)

            active = [v for v, on in current.items() if on]
            if len(active) != 1:
                errors.append(AlternateConditionError(
                    capability,
                    f"{self._describe(active)} for parameters "
                    f"{self._assignment({k: params.get(k) for k in sorted(read)})}",
                ))
                continue

            if len(variants) == 2 and self.are_complements(*conditions.values()):
                continue

            offending = self._first_violation(definition, conditions, read, params)
            if offending is not None:
                assignment, active = offending
                errors.append(AlternateConditionError(
                    capability,
                    f"{self._describe(active)} for parameters {self._assignment(assignment)}",
                ))

        return errors

    def _first_violation(
        self,
        definition: DeploymentDefinition,
        conditions: Dict[str, Optional[str]],
        read: Set[str],
        params: Mapping[str, Any],
    ) -> Optional[Tuple[Dict[str, Any], List[str]]]:
        """Enumerate finite domains looking for a both-active or none-active assignment."""
        names = sorted(read)
        domains = []
        for name in names:
            declared = definition.parameters.get(name)
            if declared is None or not declared.has_finite_domain():
                logger.debug(f"Parameter '{name}' has no finite domain; skipping enumeration")
                return None
            domains.append(declared.domain())

        for assignment in self._combinations(names, domains):
            trial = {**params, **assignment}
            try:
                active = [v for v, c in conditions.items() if self.evaluate(c, trial, v)]
            except ConditionError:
                # Unreachable combination the condition cannot handle (e.g. None comparisons)
                continue
            if len(active) != 1:
                return assignment, active
        return None

    @staticmethod
    def _combinations(names: List[str], domains: List[List[Any]]) -> Iterator[Dict[str, Any]]:
        total = 1
        for domain in domains:
            total *= len(domain)
        if total > MAX_ENUMERATION:
            logger.warning(
                f"Skipping alternate enumeration over {names}: {total} combinations"
            )
            return
        for values in itertools.product(*domains):
            yield dict(zip(names, values))

    @staticmethod
    def _describe(active: List[str]) -> str:
        if not active:
            return "no variant is active"
        return f"variants {sorted(active)} are all active"

    @staticmethod
    def _assignment(values: Mapping[str, Any]) -> str:
        return "{" + ", ".join(f"{k}={v!r}" for k, v in values.items()) + "}"


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_evaluator: Optional[ConditionEvaluator] = None


def get_evaluator() -> ConditionEvaluator:
    """Get shared condition evaluator instance."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ConditionEvaluator()
    return _evaluator


__all__ = [
    "ConditionPartition",
    "ConditionEvaluator",
    "get_evaluator",
    "MAX_ENUMERATION",
]
