# ============================================================================
# AZURE RESOURCE MANAGER PROVIDER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Provider - Generic ARM create-or-update by resource ID
# PURPOSE: Apply nodes against Azure with azure-mgmt-resource
# CREATED: 17 OCT 2026
# ============================================================================
"""
Azure Resource Manager Provider

Applies each node with a generic PUT by resource ID
(resources.begin_create_or_update_by_id), which ARM treats as an
idempotent create-or-update. 'existing:' types are read with get_by_id.

Property bag layout:
    name, resourceGroup, parentId, scope, id  - address the resource
    apiVersion                                - overrides the per-type default
    location, tags, sku, kind, identity,
    properties, plan, zones                   - sent as the ARM body

Uses DefaultAzureCredential for authentication (works with Managed
Identity). The Azure SDK is imported lazily; install the 'azure' extra.
"""

import asyncio
import functools
import os
from typing import Any, Dict, Optional

from core.logging import get_logger, ComponentType
from providers.base import (
    ProviderContext,
    ProviderResult,
    ResourceProvider,
    base_type,
    is_existing,
    resource_id_for,
)

logger = get_logger(__name__, ComponentType.PROVIDER)

# Keys that address the resource rather than describe it
ADDRESS_KEYS = frozenset({"name", "resourceGroup", "parentId", "scope", "id", "apiVersion"})

# Keys forwarded as the ARM request body
BODY_KEYS = frozenset({"location", "tags", "sku", "kind", "identity", "properties", "plan", "zones"})

DEFAULT_API_VERSIONS: Dict[str, str] = {
    "Microsoft.Resources/resourceGroups": "2022-09-01",
    "Microsoft.Network/virtualNetworks": "2023-09-01",
    "Microsoft.Network/virtualNetworks/subnets": "2023-09-01",
    "Microsoft.Network/networkSecurityGroups": "2023-09-01",
    "Microsoft.Network/networkInterfaces": "2023-09-01",
    "Microsoft.Compute/virtualMachines": "2023-09-01",
    "Microsoft.KeyVault/vaults": "2023-07-01",
    "Microsoft.Storage/storageAccounts": "2023-01-01",
    "Microsoft.Storage/storageAccounts/blobServices/containers": "2023-01-01",
    "Microsoft.Storage/storageAccounts/blobServices/containers/immutabilityPolicies": "2023-01-01",
    "Microsoft.Automation/automationAccounts": "2023-11-01",
    "Microsoft.Automation/automationAccounts/runbooks": "2023-11-01",
    "Microsoft.Authorization/roleAssignments": "2022-04-01",
}


class AzureResourceManagerProvider(ResourceProvider):
    """
    Provider backed by the Azure Resource Manager generic resources API.

    Example:
        provider = AzureResourceManagerProvider(subscription_id=params["subscription_id"])
        result = await ApplyEngine(provider).run(plan)
    """

    name = "azure"

    def __init__(
        self,
        subscription_id: str,
        client: Any = None,
        credential: Any = None,
        api_versions: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize provider.

        Args:
            subscription_id: Target subscription
            client: ResourceManagementClient (created lazily if None)
            credential: Azure credential (DefaultAzureCredential if None)
            api_versions: Per-type API version overrides
        """
        if not subscription_id:
            raise ValueError("AzureResourceManagerProvider requires a subscription_id")
        self.subscription_id = subscription_id
        self._client = client
        self._credential = credential
        self.api_versions = {**DEFAULT_API_VERSIONS, **(api_versions or {})}

    # ========================================================================
    # AZURE CLIENT INITIALIZATION
    # ========================================================================

    def _get_credential(self):
        """Get Azure credential (lazy initialization)."""
        if self._credential is None:
            try:
                client_id = os.environ.get("AZURE_CLIENT_ID")
                if client_id:
                    from azure.identity import ManagedIdentityCredential
                    self._credential = ManagedIdentityCredential(client_id=client_id)
                    logger.debug("ManagedIdentityCredential initialized with client_id")
                else:
                    from azure.identity import DefaultAzureCredential
                    self._credential = DefaultAzureCredential()
                    logger.debug("DefaultAzureCredential initialized")
            except ImportError:
                raise ImportError(
                    "azure-identity package required. "
                    "Install with: pip install forensic-capture-provisioner[azure]"
                )
        return self._credential

    def _get_client(self):
        """Get ResourceManagementClient (lazy initialization)."""
        if self._client is None:
            try:
                from azure.mgmt.resource import ResourceManagementClient
            except ImportError:
                raise ImportError(
                    "azure-mgmt-resource package required. "
                    "Install with: pip install forensic-capture-provisioner[azure]"
                )
            self._client = ResourceManagementClient(self._get_credential(), self.subscription_id)
            logger.debug(f"ResourceManagementClient initialized for {self.subscription_id}")
        return self._client

    # ========================================================================
    # PROVIDER INTERFACE
    # ========================================================================

    async def apply_resource(
        self,
        resource_type: str,
        properties: Dict[str, Any],
        context: ProviderContext,
    ) -> ProviderResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self._apply_sync, resource_type, properties, context)
        )

    def api_version_for(self, resource_type: str, properties: Dict[str, Any]) -> Optional[str]:
        return properties.get("apiVersion") or self.api_versions.get(base_type(resource_type))

    def build_body(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        """
        ARM request body for a property bag.

        Raises:
            ValueError: On keys that are neither address nor body keys
        """
        unknown = sorted(set(properties) - ADDRESS_KEYS - BODY_KEYS)
        if unknown:
            raise ValueError(f"Unsupported top-level properties for ARM: {unknown}")
        return {k: v for k, v in properties.items() if k in BODY_KEYS}

    def _apply_sync(
        self,
        resource_type: str,
        properties: Dict[str, Any],
        context: ProviderContext,
    ) -> ProviderResult:
        try:
            resource_id = resource_id_for(resource_type, properties, self.subscription_id)
            api_version = self.api_version_for(resource_type, properties)
            if not api_version:
                return ProviderResult.failure_result(
                    f"No API version known for '{base_type(resource_type)}'; set 'apiVersion'"
                )

            client = self._get_client()

            if is_existing(resource_type):
                logger.info(f"Reading existing resource {resource_id}")
                resource = client.resources.get_by_id(resource_id, api_version)
                return ProviderResult.success_result(self.extract_outputs(resource), changed=False)

            body = self.build_body(properties)
            logger.info(f"Applying {resource_id} (api-version {api_version})")
            poller = client.resources.begin_create_or_update_by_id(
                resource_id, api_version, body
            )
            resource = poller.result(timeout=context.timeout_seconds)
            return ProviderResult.success_result(self.extract_outputs(resource), changed=None)

        except ImportError:
            raise
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            logger.error(f"ARM apply failed for '{context.node_id}': {message[:500]}")
            return ProviderResult.failure_result(message[:2000])

    @staticmethod
    def extract_outputs(resource: Any) -> Dict[str, Any]:
        """Flatten an ARM resource into node outputs."""
        if hasattr(resource, "as_dict"):
            data = resource.as_dict()
        else:
            data = dict(resource or {})

        props = data.get("properties") or {}
        outputs: Dict[str, Any] = dict(props) if isinstance(props, dict) else {}

        for key in ("id", "name", "type", "location", "tags", "sku", "kind"):
            if data.get(key) is not None:
                outputs[key] = data[key]

        identity = data.get("identity") or {}
        if identity.get("principal_id"):
            outputs["principal_id"] = identity["principal_id"]
            outputs["tenant_id"] = identity.get("tenant_id")

        endpoints = props.get("primaryEndpoints") if isinstance(props, dict) else None
        if isinstance(endpoints, dict) and endpoints.get("blob"):
            outputs["primary_blob_endpoint"] = endpoints["blob"]
        if isinstance(props, dict) and props.get("vaultUri"):
            outputs["vault_uri"] = props["vaultUri"]

        resource_id = str(outputs.get("id", ""))
        if "/resourceGroups/" in resource_id:
            outputs["resource_group"] = resource_id.split("/resourceGroups/", 1)[1].split("/", 1)[0]

        return outputs


__all__ = [
    "AzureResourceManagerProvider",
    "DEFAULT_API_VERSIONS",
    "ADDRESS_KEYS",
    "BODY_KEYS",
]
