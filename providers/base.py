# ============================================================================
# PROVIDER CONTRACT
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Provider abstraction consumed by the apply engine
# PURPOSE: Define the idempotent create-or-update interface and its result
# CREATED: 17 OCT 2026
# ============================================================================
"""
Provider Contract

The apply engine's only boundary with the cloud. A provider receives a
resource type tag and a fully resolved property bag and converges the
real resource to it. Calls must be idempotent per node identity: applying
the same properties twice yields the same outputs, and a no-op apply is a
success.

Provider-specific failure detail stays opaque: the engine only looks at
success/failure and the error message.

Resource types prefixed with 'existing:' are lookups of resources the
deployment does not own (e.g. an existing resource group). Providers read
them and never write.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

EXISTING_PREFIX = "existing:"


# ============================================================================
# PROVIDER TYPES
# ============================================================================

@dataclass
class ProviderContext:
    """
    Context passed to provider calls.

    Identifies the node being applied so providers can key idempotency on it.
    """
    run_id: str
    node_id: str
    resource_type: str
    timeout_seconds: int
    deployment_id: Optional[str] = None


@dataclass
class ProviderResult:
    """
    Result returned by a provider call.

    changed=False reports a no-op apply (resource already matched).
    """
    success: bool = True
    outputs: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    changed: Optional[bool] = None

    @classmethod
    def success_result(
        cls,
        outputs: Optional[Dict[str, Any]] = None,
        changed: Optional[bool] = True,
    ) -> "ProviderResult":
        """Create a success result."""
        return cls(success=True, outputs=outputs or {}, changed=changed)

    @classmethod
    def failure_result(cls, error_message: str) -> "ProviderResult":
        """Create a failure result."""
        return cls(success=False, error_message=error_message)


class ResourceProvider(ABC):
    """Base class for providers."""

    name: str = "provider"

    @abstractmethod
    async def apply_resource(
        self,
        resource_type: str,
        properties: Dict[str, Any],
        context: ProviderContext,
    ) -> ProviderResult:
        """
        Create or update one resource.

        Args:
            resource_type: Type tag (e.g. 'Microsoft.Storage/storageAccounts')
            properties: Resolved property bag (no references, no absent values)
            context: Node identity and timeout

        Returns:
            ProviderResult with outputs on success
        """


# ============================================================================
# RESOURCE IDENTITY
# ============================================================================

RESOURCE_GROUP_TYPE = "Microsoft.Resources/resourceGroups"


def is_existing(resource_type: str) -> bool:
    """Check whether a type tag denotes a lookup of an existing resource."""
    return resource_type.startswith(EXISTING_PREFIX)


def base_type(resource_type: str) -> str:
    """Strip the 'existing:' prefix from a type tag."""
    if is_existing(resource_type):
        return resource_type[len(EXISTING_PREFIX):]
    return resource_type


def resource_id_for(
    resource_type: str,
    properties: Dict[str, Any],
    subscription_id: str,
) -> str:
    """
    Build the ARM resource ID a property bag addresses.

    Resolution order:
        id        - explicit resource ID
        resource group type - /subscriptions/{sub}/resourceGroups/{name}
        parentId  - child resource ({parentId}/{child type}/{name})
        scope     - extension resource ({scope}/providers/{type}/{name})
        otherwise - /subscriptions/{sub}/resourceGroups/{resourceGroup}/providers/{type}/{name}

    Raises:
        ValueError: If the bag lacks the fields its shape needs
    """
    if properties.get("id"):
        return str(properties["id"])

    rtype = base_type(resource_type)
    name = properties.get("name")
    if not name:
        raise ValueError(f"Resource of type '{rtype}' needs a 'name' property")

    if rtype == RESOURCE_GROUP_TYPE:
        return f"/subscriptions/{subscription_id}/resourceGroups/{name}"

    if properties.get("parentId"):
        child = rtype.rsplit("/", 1)[-1]
        return f"{properties['parentId']}/{child}/{name}"

    if properties.get("scope"):
        return f"{properties['scope']}/providers/{rtype}/{name}"

    group = properties.get("resourceGroup")
    if not group:
        raise ValueError(f"Resource '{name}' of type '{rtype}' needs a 'resourceGroup' property")
    return f"/subscriptions/{subscription_id}/resourceGroups/{group}/providers/{rtype}/{name}"


__all__ = [
    "ProviderContext",
    "ProviderResult",
    "ResourceProvider",
    "EXISTING_PREFIX",
    "RESOURCE_GROUP_TYPE",
    "is_existing",
    "base_type",
    "resource_id_for",
]
