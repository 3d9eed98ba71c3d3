# ============================================================================
# REFERENCE RESOLVER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Reference discovery and substitution with Jinja2
# PURPOSE: Find {{ nodes.X.outputs.Y }} edges and substitute satisfied outputs
# CREATED: 17 OCT 2026
# ============================================================================
"""
Reference Resolver

Property values may read other nodes' outputs and deployment parameters:

- {{ nodes.<name>.outputs.<key> }} - Output of another node (or capability)
- {{ params.<name> }}              - Deployment parameter

Examples:
    properties:
      location: "{{ params.location }}"
      subnetId: "{{ nodes.capture_subnet.outputs.id }}"
      principalId: "{{ nodes.capture_vm.outputs.principal_id }}"
      resourceGroup: "{{ nodes.resource_group.outputs.name }}"   # capability

Two jobs:
1. discover() parses every templated string and returns the referenced
   outputs. The graph builder turns these into wait edges.
2. resolve() substitutes values once every referenced node has published
   its outputs. A string that is exactly one expression keeps its native
   type (lists, dicts, numbers, ABSENT); mixed strings render to text.
"""

import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from jinja2 import Environment, BaseLoader, StrictUndefined, TemplateSyntaxError, Undefined
from jinja2 import meta, nodes as jnodes

from core.contracts import ABSENT
from core.errors import (
    ConfigurationError,
    InvalidReferenceError,
    ReferenceResolutionError,
    UnknownNodeError,
    UnknownOutputError,
    UnknownParameterError,
    UnresolvedReferenceError,
)
from core.logging import get_logger

logger = get_logger(__name__)

NODES_ROOT = "nodes"
PARAMS_ROOT = "params"
OUTPUTS_ATTR = "outputs"


@dataclass(frozen=True, order=True)
class Reference:
    """Pointer to output `output` of node (or capability) `node`."""
    node: str
    output: str

    def __str__(self) -> str:
        return f"{NODES_ROOT}.{self.node}.{OUTPUTS_ATTR}.{self.output}"


@dataclass
class ReferenceScan:
    """Everything a value reads, plus problems found while parsing it."""
    references: Set[Reference] = field(default_factory=set)
    parameters: Set[str] = field(default_factory=set)
    errors: List[ConfigurationError] = field(default_factory=list)

    @property
    def nodes(self) -> Set[str]:
        return {ref.node for ref in self.references}

    def merge(self, other: "ReferenceScan") -> None:
        self.references |= other.references
        self.parameters |= other.parameters
        self.errors.extend(other.errors)


class AttributeView:
    """
    Attribute and item access over a mapping.

    Keeps output keys like 'items' or 'values' from hitting dict methods
    when Jinja2 tries getattr before getitem.
    """

    __slots__ = ("_label", "_values")

    def __init__(self, label: str, values: Mapping[str, Any]):
        self._label = label
        self._values = values

    def __getattr__(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise AttributeError(f"{self._label} has no attribute '{key}'") from None

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __repr__(self) -> str:
        return f"<{self._label}>"


def deterministic_guid(*parts: Any) -> str:
    """Stable GUID from its inputs (role assignment names and the like)."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, "/".join(str(p) for p in parts)))


def _refuse_absent(value: Any) -> Any:
    """Jinja2 finalize hook: absent outputs cannot become text."""
    if value is ABSENT:
        raise ReferenceResolutionError(
            "An absent output cannot be interpolated into a string; "
            "select it with the same condition that gates its node"
        )
    return value


def access_chain(node: jnodes.Node) -> Optional[List[Optional[str]]]:
    """
    Flatten an attribute/subscript chain into names, root first.

    nodes.vm.outputs['id'] -> ['nodes', 'vm', 'outputs', 'id']
    Dynamic subscripts yield None in their position.
    """
    parts: List[Optional[str]] = []
    while True:
        if isinstance(node, jnodes.Getattr):
            parts.append(node.attr)
            node = node.node
        elif isinstance(node, jnodes.Getitem):
            arg = node.arg
            if isinstance(arg, jnodes.Const) and isinstance(arg.value, str):
                parts.append(arg.value)
            else:
                parts.append(None)
            node = node.node
        elif isinstance(node, jnodes.Name):
            parts.append(node.name)
            break
        else:
            return None
    parts.reverse()
    return parts


class ReferenceResolver:
    """
    Jinja2-based reference resolver for node properties.

    Thread-safe, can be reused across runs.
    """

    def __init__(self):
        """Initialize the resolver with a strict Jinja2 environment."""
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            undefined=StrictUndefined,
            finalize=_refuse_absent,
        )
        self._env.filters["guid"] = deterministic_guid
        # Simple pattern for quick detection
        self._template_pattern = re.compile(r"\{\{.*?\}\}|\{%.*?%\}", re.DOTALL)
        self._parse_cache: Dict[str, jnodes.Template] = {}

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def has_references(self, value: Any) -> bool:
        """Check if a value contains any template expressions."""
        if isinstance(value, str):
            return bool(self._template_pattern.search(value))
        if isinstance(value, dict):
            return any(self.has_references(v) for v in value.values())
        if isinstance(value, (list, tuple)):
            return any(self.has_references(item) for item in value)
        return False

    def scan(self, value: Any, node_id: Optional[str] = None) -> ReferenceScan:
        """
        Collect every reference and parameter read in a value.

        Parse problems are collected rather than raised so a planning pass
        can report all of them at once.
        """
        result = ReferenceScan()
        self._scan_value(value, node_id, result)
        return result

    def discover(self, value: Any, node_id: Optional[str] = None) -> Set[Reference]:
        """
        Return the references in a value.

        Raises:
            InvalidReferenceError: If a template is malformed
        """
        result = self.scan(value, node_id)
        if result.errors:
            raise result.errors[0]
        return result.references

    def referenced_nodes(self, value: Any, node_id: Optional[str] = None) -> Set[str]:
        """Names of nodes/capabilities a value reads from."""
        return {ref.node for ref in self.discover(value, node_id)}

    def _scan_value(self, value: Any, node_id: Optional[str], result: ReferenceScan) -> None:
        if isinstance(value, str):
            if self._template_pattern.search(value):
                self._scan_string(value, node_id, result)
        elif isinstance(value, dict):
            for v in value.values():
                self._scan_value(v, node_id, result)
        elif isinstance(value, (list, tuple)):
            for item in value:
                self._scan_value(item, node_id, result)

    def _parse(self, source: str) -> jnodes.Template:
        ast = self._parse_cache.get(source)
        if ast is None:
            ast = self._env.parse(source)
            self._parse_cache[source] = ast
        return ast

    def _scan_string(self, source: str, node_id: Optional[str], result: ReferenceScan) -> None:
        where = f" in '{node_id}'" if node_id else ""
        try:
            ast = self._parse(source)
        except TemplateSyntaxError as e:
            result.errors.append(
                InvalidReferenceError(f"Template syntax error{where}: {e.message}", node_id=node_id)
            )
            return

        for name in sorted(meta.find_undeclared_variables(ast)):
            if name not in (NODES_ROOT, PARAMS_ROOT):
                result.errors.append(InvalidReferenceError(
                    f"Unknown variable '{name}'{where}; "
                    f"templates may read only '{NODES_ROOT}' and '{PARAMS_ROOT}'",
                    node_id=node_id,
                ))

        accessors = list(ast.find_all((jnodes.Getattr, jnodes.Getitem)))
        inner = {id(a.node) for a in accessors}

        # Bare names used without any attribute access
        for name_node in ast.find_all(jnodes.Name):
            if id(name_node) in inner or name_node.ctx != "load":
                continue
            if name_node.name == NODES_ROOT:
                result.errors.append(InvalidReferenceError(
                    f"'{NODES_ROOT}' must be read as "
                    f"{NODES_ROOT}.<name>.{OUTPUTS_ATTR}.<key>{where}",
                    node_id=node_id,
                ))
            elif name_node.name == PARAMS_ROOT:
                result.errors.append(InvalidReferenceError(
                    f"'{PARAMS_ROOT}' must be read as {PARAMS_ROOT}.<name>{where}",
                    node_id=node_id,
                ))

        # Only outermost chains; inner links are prefixes of them
        for accessor in accessors:
            if id(accessor) in inner:
                continue
            chain = access_chain(accessor)
            if not chain:
                continue
            root = chain[0]
            if root == NODES_ROOT:
                if (
                    len(chain) >= 4
                    and chain[1] is not None
                    and chain[2] == OUTPUTS_ATTR
                    and chain[3] is not None
                ):
                    result.references.add(Reference(node=chain[1], output=chain[3]))
                else:
                    rendered = ".".join(p if p is not None else "[?]" for p in chain)
                    result.errors.append(InvalidReferenceError(
                        f"Malformed reference '{rendered}'{where}; expected "
                        f"{NODES_ROOT}.<name>.{OUTPUTS_ATTR}.<key>",
                        node_id=node_id,
                    ))
            elif root == PARAMS_ROOT:
                if len(chain) >= 2 and chain[1] is not None:
                    result.parameters.add(chain[1])
                else:
                    result.errors.append(InvalidReferenceError(
                        f"Dynamic parameter access{where} is not supported",
                        node_id=node_id,
                    ))

    # ------------------------------------------------------------------
    # Validation against a deployment
    # ------------------------------------------------------------------

    def validate(
        self,
        scan: ReferenceScan,
        declared_outputs: Mapping[str, Iterable[str]],
        parameters: Optional[Mapping[str, Any]] = None,
        node_id: Optional[str] = None,
    ) -> List[ConfigurationError]:
        """
        Check references against declared nodes/capabilities and outputs.

        Args:
            scan: Result of scan()
            declared_outputs: name -> declared output keys, for every node
                and capability
            parameters: Resolved parameter set (skip parameter checks if None)
            node_id: Node owning the value (for error attribution)

        Returns:
            List of UnknownNodeError / UnknownOutputError / UnknownParameterError
        """
        errors: List[ConfigurationError] = []
        for ref in sorted(scan.references):
            if ref.node not in declared_outputs:
                errors.append(UnknownNodeError(ref.node, node_id=node_id))
            elif ref.output not in set(declared_outputs[ref.node]):
                errors.append(UnknownOutputError(ref.node, ref.output, node_id=node_id))
        if parameters is not None:
            for name in sorted(scan.parameters):
                if name not in parameters:
                    errors.append(UnknownParameterError(name, node_id=node_id))
        return errors

    # ------------------------------------------------------------------
    # Substitution
    # ------------------------------------------------------------------

    def resolve(
        self,
        value: Any,
        *,
        params: Mapping[str, Any],
        outputs: "OutputLookup",
        aliases: Optional[Mapping[str, str]] = None,
        node_id: Optional[str] = None,
    ) -> Any:
        """
        Substitute references in a value.

        Args:
            value: Property value (str, dict, list or scalar)
            params: Resolved parameter set
            outputs: Published Output Set (see outputs.OutputStore)
            aliases: capability -> active variant node name
            node_id: Node being resolved (for error attribution)

        Returns:
            New value with all references substituted

        Raises:
            UnresolvedReferenceError: A referenced node has not published
            ReferenceResolutionError: The template could not be rendered
        """
        references = self.discover(value, node_id)
        context = self._build_context(references, params, outputs, aliases or {}, node_id)
        return self._resolve_value(value, context, node_id)

    def _build_context(
        self,
        references: Set[Reference],
        params: Mapping[str, Any],
        outputs: "OutputLookup",
        aliases: Mapping[str, str],
        node_id: Optional[str],
    ) -> Dict[str, Any]:
        node_views: Dict[str, Any] = {}
        for name in sorted({ref.node for ref in references}):
            target = aliases.get(name, name)
            if not outputs.is_published(target):
                raise UnresolvedReferenceError(name, node_id=node_id)
            node_views[name] = AttributeView(
                f"{NODES_ROOT}.{name}",
                {OUTPUTS_ATTR: AttributeView(f"{NODES_ROOT}.{name}.{OUTPUTS_ATTR}", outputs.get(target))},
            )
        return {
            NODES_ROOT: AttributeView(NODES_ROOT, node_views),
            PARAMS_ROOT: AttributeView(PARAMS_ROOT, params),
        }

    def _resolve_value(self, value: Any, context: Dict[str, Any], node_id: Optional[str]) -> Any:
        """Recursively resolve template expressions in a value."""
        if isinstance(value, str):
            return self._resolve_string(value, context, node_id)
        if isinstance(value, dict):
            return {k: self._resolve_value(v, context, node_id) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve_value(item, context, node_id) for item in value]
        return value

    def _resolve_string(self, value: str, context: Dict[str, Any], node_id: Optional[str]) -> Any:
        """Resolve template expressions in a string value."""
        if not self._template_pattern.search(value):
            return value

        try:
            # A single expression keeps its native type
            stripped = value.strip()
            if stripped.startswith("{{") and stripped.endswith("}}"):
                inner = stripped[2:-2].strip()
                if "{{" not in inner and "}}" not in inner:
                    result = self._env.compile_expression(inner, undefined_to_none=False)(**context)
                    if isinstance(result, Undefined):
                        raise ReferenceResolutionError(
                            f"Failed to resolve '{value}': expression is undefined"
                        )
                    return result

            # Multiple expressions or mixed content - render as string
            return self._env.from_string(value).render(context)
        except (ReferenceResolutionError, UnresolvedReferenceError) as e:
            if e.node_id is None:
                e.node_id = node_id
            raise
        except Exception as e:
            # Any evaluation error (TypeError on an absent operand, division
            # by zero, undefined names) belongs to the node being resolved
            raise ReferenceResolutionError(
                f"Failed to resolve '{value}': {type(e).__name__}: {e}", node_id=node_id
            ) from e


def strip_absent(value: Any) -> Any:
    """
    Drop absent values from a resolved property bag.

    A property that resolved to ABSENT is omitted rather than sent to the
    provider.
    """
    if isinstance(value, dict):
        return {k: strip_absent(v) for k, v in value.items() if v is not ABSENT}
    if isinstance(value, list):
        return [strip_absent(item) for item in value if item is not ABSENT]
    return value


class OutputLookup:
    """Read interface the resolver needs from an Output Set."""

    def is_published(self, node_id: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def get(self, node_id: str) -> Mapping[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_resolver: Optional[ReferenceResolver] = None


def get_resolver() -> ReferenceResolver:
    """Get shared reference resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = ReferenceResolver()
    return _resolver


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "Reference",
    "ReferenceScan",
    "AttributeView",
    "ReferenceResolver",
    "OutputLookup",
    "strip_absent",
    "deterministic_guid",
    "get_resolver",
    "NODES_ROOT",
    "PARAMS_ROOT",
    "OUTPUTS_ATTR",
]
