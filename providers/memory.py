# ============================================================================
# IN-MEMORY PROVIDER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Provider - Deterministic fake cloud for dry runs and tests
# PURPOSE: Idempotent create-or-update against an in-process resource map
# CREATED: 17 OCT 2026
# ============================================================================
"""
In-Memory Provider

A fake cloud keyed by node identity. Outputs are derived only from the
resource type and property bag, so applying the same properties twice
returns the same outputs and reports changed=False the second time.

Outputs:
- id, name, type (plus location / resource_group when given)
- principal_id, tenant_id for resources with a system-assigned identity
- primary_blob_endpoint for storage accounts, vault_uri for key vaults
- every top-level property, echoed back

Failures and latency can be injected per node for testing.
"""

import asyncio
import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.logging import get_logger, ComponentType
from providers.base import (
    ProviderContext,
    ProviderResult,
    ResourceProvider,
    RESOURCE_GROUP_TYPE,
    base_type,
    is_existing,
    resource_id_for,
)

logger = get_logger(__name__, ComponentType.PROVIDER)

DEFAULT_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"
DEFAULT_TENANT_ID = "11111111-1111-1111-1111-111111111111"

STORAGE_ACCOUNT_TYPE = "Microsoft.Storage/storageAccounts"
KEY_VAULT_TYPE = "Microsoft.KeyVault/vaults"


@dataclass
class FakeResource:
    """A resource held by the in-memory provider."""
    resource_type: str
    properties: Dict[str, Any]
    outputs: Dict[str, Any]
    apply_count: int = 1


@dataclass
class InjectedFailure:
    message: str
    remaining: Optional[int] = None  # None = fail every time


class InMemoryProvider(ResourceProvider):
    """
    Idempotent in-process provider.

    Example:
        provider = InMemoryProvider()
        provider.fail("capture_vm", "Quota exceeded")
        result = await ApplyEngine(provider).run(plan)
    """

    name = "memory"

    def __init__(
        self,
        subscription_id: str = DEFAULT_SUBSCRIPTION_ID,
        tenant_id: str = DEFAULT_TENANT_ID,
        latency_seconds: float = 0.0,
    ):
        self.subscription_id = subscription_id
        self.tenant_id = tenant_id
        self.latency_seconds = latency_seconds
        self.resources: Dict[str, FakeResource] = {}
        self.calls: List[str] = []
        self._failures: Dict[str, InjectedFailure] = {}
        self._delays: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------

    def fail(self, node_id: str, message: str = "Injected failure", times: Optional[int] = None) -> None:
        """Make applies of a node fail (every time, or the next `times` calls)."""
        self._failures[node_id] = InjectedFailure(message=message, remaining=times)

    def clear_failures(self) -> None:
        self._failures.clear()

    def delay(self, node_id: str, seconds: float) -> None:
        """Slow down applies of one node."""
        self._delays[node_id] = seconds

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def calls_for(self, node_id: str) -> int:
        return self.calls.count(node_id)

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    async def apply_resource(
        self,
        resource_type: str,
        properties: Dict[str, Any],
        context: ProviderContext,
    ) -> ProviderResult:
        node_id = context.node_id
        self.calls.append(node_id)

        delay = self._delays.get(node_id, self.latency_seconds)
        if delay:
            await asyncio.sleep(delay)

        failure = self._failures.get(node_id)
        if failure is not None:
            if failure.remaining is not None:
                failure.remaining -= 1
                if failure.remaining <= 0:
                    del self._failures[node_id]
            logger.info(f"Injected failure for '{node_id}': {failure.message}")
            return ProviderResult.failure_result(failure.message)

        try:
            outputs = self.describe(resource_type, properties)
        except ValueError as e:
            return ProviderResult.failure_result(str(e))

        if is_existing(resource_type):
            return ProviderResult.success_result(outputs, changed=False)

        existing = self.resources.get(node_id)
        if existing is not None and existing.properties == properties:
            existing.apply_count += 1
            logger.debug(f"No-op apply for '{node_id}'")
            return ProviderResult.success_result(copy.deepcopy(existing.outputs), changed=False)

        self.resources[node_id] = FakeResource(
            resource_type=resource_type,
            properties=copy.deepcopy(properties),
            outputs=copy.deepcopy(outputs),
            apply_count=existing.apply_count + 1 if existing else 1,
        )
        logger.debug(f"{'Updated' if existing else 'Created'} '{node_id}' ({resource_type})")
        return ProviderResult.success_result(outputs, changed=True)

    def describe(self, resource_type: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        """Deterministic outputs for a property bag."""
        rtype = base_type(resource_type)
        resource_id = resource_id_for(rtype, properties, self.subscription_id)
        name = properties.get("name") or resource_id.rsplit("/", 1)[-1]

        outputs: Dict[str, Any] = copy.deepcopy(properties)
        outputs.update({"id": resource_id, "name": name, "type": rtype})

        if properties.get("location"):
            outputs["location"] = properties["location"]
        if rtype == RESOURCE_GROUP_TYPE:
            outputs["resource_group"] = name
        elif properties.get("resourceGroup"):
            outputs["resource_group"] = properties["resourceGroup"]

        identity = properties.get("identity")
        if isinstance(identity, dict) and "SystemAssigned" in str(identity.get("type", "")):
            outputs["principal_id"] = str(uuid.uuid5(uuid.NAMESPACE_URL, resource_id))
            outputs["tenant_id"] = self.tenant_id

        if rtype == STORAGE_ACCOUNT_TYPE:
            outputs["primary_blob_endpoint"] = f"https://{name}.blob.core.windows.net/"
        elif rtype == KEY_VAULT_TYPE:
            outputs["vault_uri"] = f"https://{name}.vault.azure.net/"

        return outputs


__all__ = [
    "InMemoryProvider",
    "FakeResource",
    "DEFAULT_SUBSCRIPTION_ID",
    "DEFAULT_TENANT_ID",
]
