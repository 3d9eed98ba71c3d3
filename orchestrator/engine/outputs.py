# ============================================================================
# OUTPUT PROPAGATOR
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Write-once Output Set
# PURPOSE: Expose node outputs to dependents and to the run result
# CREATED: 17 OCT 2026
# ============================================================================
"""
Output Propagator

The Output Set maps node name -> output key -> value. An entry is written
exactly once:
- Satisfied nodes publish the declared keys of their provider outputs
- Skipped nodes publish ABSENT for every declared key
- Failed nodes publish nothing

Readers only see published entries, as read-only mappings. The lock is
the single write barrier per node; reads need none.
"""

import threading
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

from core.contracts import ABSENT
from core.errors import OutputAlreadyPublishedError, ReferenceResolutionError
from core.logging import get_logger, ComponentType
from core.models import DeploymentDefinition
from orchestrator.engine.references import OutputLookup, ReferenceResolver, get_resolver

logger = get_logger(__name__, ComponentType.ENGINE)


class OutputStore(OutputLookup):
    """Write-once Output Set shared by the apply engine and the resolver."""

    def __init__(self):
        self._entries: Dict[str, Mapping[str, Any]] = {}
        self._lock = threading.Lock()

    def publish(
        self,
        node_id: str,
        outputs: Mapping[str, Any],
        declared: Optional[Iterable[str]] = None,
    ) -> Mapping[str, Any]:
        """
        Publish a satisfied node's outputs.

        Args:
            node_id: Node name
            outputs: Values returned by the provider
            declared: Declared output keys; only these are kept

        Raises:
            OutputAlreadyPublishedError: If the node already has an entry
        """
        if declared is None:
            values = dict(outputs)
        else:
            values = {key: outputs[key] for key in declared}
        return self._store(node_id, values)

    def publish_absent(self, node_id: str, declared: Iterable[str]) -> Mapping[str, Any]:
        """Publish ABSENT for every declared key of a skipped node."""
        return self._store(node_id, {key: ABSENT for key in declared})

    def _store(self, node_id: str, values: Dict[str, Any]) -> Mapping[str, Any]:
        with self._lock:
            if node_id in self._entries:
                raise OutputAlreadyPublishedError(node_id)
            entry = MappingProxyType(values)
            self._entries[node_id] = entry
        return entry

    def is_published(self, node_id: str) -> bool:
        return node_id in self._entries

    def get(self, node_id: str) -> Mapping[str, Any]:
        """Published outputs of a node (KeyError if unpublished)."""
        return self._entries[node_id]

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Plain-dict copy of the whole Output Set."""
        with self._lock:
            return {node: dict(values) for node, values in self._entries.items()}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def resolve_top_level_outputs(
    definition: DeploymentDefinition,
    store: OutputLookup,
    params: Mapping[str, Any],
    aliases: Optional[Mapping[str, str]] = None,
    resolver: Optional[ReferenceResolver] = None,
) -> Dict[str, Any]:
    """
    Resolve the deployment's top-level outputs after a run.

    An output that reads a failed or unpublished node resolves to ABSENT.
    """
    resolver = resolver or get_resolver()
    aliases = aliases or {}
    results: Dict[str, Any] = {}

    for name, expression in definition.outputs.items():
        targets = resolver.referenced_nodes(expression)
        missing = sorted(t for t in targets if not store.is_published(aliases.get(t, t)))
        if missing:
            logger.debug(f"Output '{name}' is absent: {missing} did not publish")
            results[name] = ABSENT
            continue
        try:
            results[name] = resolver.resolve(
                expression, params=params, outputs=store, aliases=aliases
            )
        except ReferenceResolutionError as e:
            logger.warning(f"Output '{name}' is absent: {e}")
            results[name] = ABSENT

    return results


__all__ = [
    "OutputStore",
    "resolve_top_level_outputs",
]
