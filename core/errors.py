# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Configuration, internal and provider errors with node attribution
# CREATED: 17 OCT 2026
# ============================================================================
"""
Error Taxonomy

Three families:
- ConfigurationError: detected while planning, before any provider call.
  The run aborts with no side effects.
- Internal errors (UnresolvedReferenceError, SchedulingError): ordering bugs
  in the planner itself. Fatal, never retried.
- ProviderError: provider registry problems. Provider call failures never
  raise out of the engine; they become FAILED nodes.
"""

from typing import Iterable, List, Optional, Sequence


class ProvisioningError(Exception):
    """Base exception for the provisioning core."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message)


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigurationError(ProvisioningError):
    """Base class for errors found while planning."""
    pass


class UnknownNodeError(ConfigurationError):
    """A reference or dependency names a node that is not declared."""

    def __init__(self, target: str, node_id: Optional[str] = None):
        self.target = target
        where = f" (referenced from '{node_id}')" if node_id else ""
        super().__init__(f"Unknown node '{target}'{where}", node_id=node_id)


class UnknownOutputError(ConfigurationError):
    """A reference reads an output the target node does not declare."""

    def __init__(self, target: str, output: str, node_id: Optional[str] = None):
        self.target = target
        self.output = output
        where = f" (referenced from '{node_id}')" if node_id else ""
        super().__init__(
            f"Node '{target}' does not declare output '{output}'{where}",
            node_id=node_id,
        )


class InvalidReferenceError(ConfigurationError):
    """A template reads 'nodes' in a shape other than nodes.<name>.outputs.<key>."""
    pass


class UnknownParameterError(ConfigurationError):
    """A template or condition reads a parameter that is not in the parameter set."""

    def __init__(self, parameter: str, node_id: Optional[str] = None):
        self.parameter = parameter
        where = f" (read by '{node_id}')" if node_id else ""
        super().__init__(f"Unknown parameter '{parameter}'{where}", node_id=node_id)


class ConditionError(ConfigurationError):
    """A condition is malformed or reads something other than parameters."""
    pass


class AlternateConditionError(ConfigurationError):
    """Variants of one capability are not mutually exclusive and jointly exhaustive."""

    def __init__(self, capability: str, message: str):
        self.capability = capability
        super().__init__(f"Capability '{capability}': {message}")


class CyclicDependencyError(ConfigurationError):
    """The active graph contains one or more dependency cycles."""

    def __init__(self, cycles: Sequence[Sequence[str]]):
        self.cycles = [list(c) for c in cycles]
        rendered = "; ".join(" -> ".join(list(c) + [c[0]]) for c in self.cycles)
        super().__init__(f"Dependency cycle detected: {rendered}")

    @property
    def participants(self) -> List[str]:
        """All node names taking part in any cycle, sorted."""
        return sorted({n for cycle in self.cycles for n in cycle})


class ParameterValidationError(ConfigurationError):
    """The supplied parameter set does not satisfy the declared parameters."""

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__("Invalid parameters: " + "; ".join(self.problems))


class DefinitionValidationError(ConfigurationError):
    """A deployment definition is structurally invalid."""

    def __init__(self, problems: Iterable[str], source: Optional[str] = None):
        self.problems = list(problems)
        self.source = source
        prefix = f"Invalid deployment definition {source}" if source else "Invalid deployment definition"
        super().__init__(f"{prefix}: " + "; ".join(self.problems))


class PlanValidationError(ConfigurationError):
    """Aggregate of every configuration error found in one planning pass."""

    def __init__(self, errors: Sequence[ConfigurationError]):
        self.errors = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} configuration error(s):\n{lines}")

    def of_type(self, error_type: type) -> List[ConfigurationError]:
        """Return the collected errors of a given type."""
        return [e for e in self.errors if isinstance(e, error_type)]


# ============================================================================
# INTERNAL ERRORS
# ============================================================================

class UnresolvedReferenceError(ProvisioningError):
    """
    Substitution was attempted before the referenced node settled.

    Indicates a reference that bypassed edge discovery.
    """

    def __init__(self, target: str, node_id: Optional[str] = None):
        self.target = target
        super().__init__(
            f"Reference to '{target}' resolved before it was satisfied"
            + (f" (while resolving '{node_id}')" if node_id else ""),
            node_id=node_id,
        )


class SchedulingError(ProvisioningError):
    """The scheduler could not make progress (undetected cycle)."""
    pass


class ReferenceResolutionError(ProvisioningError):
    """A property could not be rendered (e.g. absent value interpolated into text)."""
    pass


class OutputAlreadyPublishedError(ProvisioningError):
    """An Output Set entry was written twice."""

    def __init__(self, node_id: str):
        super().__init__(f"Outputs for '{node_id}' are already published", node_id=node_id)


class InvalidTransitionError(ProvisioningError):
    """A node status transition is not allowed."""
    pass


# ============================================================================
# PROVIDER ERRORS
# ============================================================================

class ProviderError(ProvisioningError):
    """Base exception for provider registry errors."""
    pass


class ProviderNotFoundError(ProviderError):
    """No provider is registered for a resource type."""

    def __init__(self, resource_type: str):
        self.resource_type = resource_type
        super().__init__(f"Provider not found for resource type: {resource_type}")


class DuplicateProviderError(ProviderError):
    """A provider is already registered for a resource type."""

    def __init__(self, resource_type: str):
        self.resource_type = resource_type
        super().__init__(f"Provider already registered for resource type: {resource_type}")


__all__ = [
    "ProvisioningError",
    "ConfigurationError",
    "UnknownNodeError",
    "UnknownOutputError",
    "InvalidReferenceError",
    "UnknownParameterError",
    "ConditionError",
    "AlternateConditionError",
    "CyclicDependencyError",
    "ParameterValidationError",
    "DefinitionValidationError",
    "PlanValidationError",
    "UnresolvedReferenceError",
    "SchedulingError",
    "ReferenceResolutionError",
    "OutputAlreadyPublishedError",
    "InvalidTransitionError",
    "ProviderError",
    "ProviderNotFoundError",
    "DuplicateProviderError",
]
