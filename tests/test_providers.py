# ============================================================================
# PROVIDER TESTS
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Tests - Provider contract, registry, memory and ARM providers
# PURPOSE: Verify idempotent applies, dispatch and ARM request shaping
# CREATED: 17 OCT 2026
# ============================================================================
"""
Provider Tests

Tests:
1. Resource ID construction for every addressing shape
2. Registry decorator, lookup and dispatch (sync and async callables)
3. In-memory provider idempotence, lookups and injected failures
4. ARM provider request shaping and output extraction (mock client)

Run with:
    pytest tests/test_providers.py -v
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from core.errors import DuplicateProviderError, ProviderNotFoundError
from providers import (
    AzureResourceManagerProvider,
    InMemoryProvider,
    ProviderContext,
    ProviderResult,
    RegistryProvider,
    create_provider,
    get_provider,
    get_provider_or_raise,
    list_providers,
    missing_providers,
    register_provider,
    resource_id_for,
)

SUB = "22222222-2222-2222-2222-222222222222"


def _ctx(node_id="node", resource_type="T/x", timeout=30):
    return ProviderContext(run_id="run-1", node_id=node_id, resource_type=resource_type, timeout_seconds=timeout)


# ============================================================================
# RESOURCE IDS
# ============================================================================

class TestResourceIds:

    def test_resource_group(self):
        assert resource_id_for(
            "Microsoft.Resources/resourceGroups", {"name": "case-rg"}, SUB
        ) == f"/subscriptions/{SUB}/resourceGroups/case-rg"

    def test_group_scoped(self):
        assert resource_id_for(
            "Microsoft.KeyVault/vaults", {"name": "kv", "resourceGroup": "case-rg"}, SUB
        ) == f"/subscriptions/{SUB}/resourceGroups/case-rg/providers/Microsoft.KeyVault/vaults/kv"

    def test_child(self):
        assert resource_id_for(
            "Microsoft.Network/virtualNetworks/subnets",
            {"name": "capture", "parentId": "/vnet"},
            SUB,
        ) == "/vnet/subnets/capture"

    def test_extension(self):
        assert resource_id_for(
            "Microsoft.Authorization/roleAssignments",
            {"name": "guid-1", "scope": "/st"},
            SUB,
        ) == "/st/providers/Microsoft.Authorization/roleAssignments/guid-1"

    def test_explicit_id_and_existing_prefix(self):
        assert resource_id_for("existing:Microsoft.Network/virtualNetworks/subnets", {"id": "/x"}, SUB) == "/x"
        assert resource_id_for(
            "existing:Microsoft.Resources/resourceGroups", {"name": "shared"}, SUB
        ).endswith("/resourceGroups/shared")

    def test_missing_fields(self):
        with pytest.raises(ValueError):
            resource_id_for("Microsoft.KeyVault/vaults", {"resourceGroup": "rg"}, SUB)
        with pytest.raises(ValueError):
            resource_id_for("Microsoft.KeyVault/vaults", {"name": "kv"}, SUB)


# ============================================================================
# REGISTRY
# ============================================================================

class TestRegistry:

    def test_register_and_lookup(self):
        @register_provider("Custom/widgets", description="Widgets")
        async def apply_widget(properties, ctx):
            return ProviderResult.success_result({"id": f"/widgets/{properties['name']}"})

        assert get_provider("Custom/widgets") is apply_widget
        assert get_provider_or_raise("Custom/widgets") is apply_widget
        assert list_providers()[0]["description"] == "Widgets"
        assert list_providers()[0]["is_async"] is True
        assert missing_providers(["Custom/widgets", "Custom/gadgets", "Custom/gadgets"]) == ["Custom/gadgets"]

    def test_duplicate_registration(self):
        @register_provider("Custom/widgets")
        def first(properties, ctx):
            return ProviderResult.success_result()

        with pytest.raises(DuplicateProviderError):
            @register_provider("Custom/widgets")
            def second(properties, ctx):
                return ProviderResult.success_result()

    def test_not_found(self):
        assert get_provider("Custom/none") is None
        with pytest.raises(ProviderNotFoundError):
            get_provider_or_raise("Custom/none")

    def test_dispatch_sync_and_async(self):
        @register_provider("Custom/sync")
        def apply_sync(properties, ctx):
            return ProviderResult.success_result({"id": "sync", "node": ctx.node_id})

        @register_provider("Custom/async")
        async def apply_async(properties, ctx):
            return ProviderResult.success_result({"id": "async"})

        provider = RegistryProvider()
        sync_result = asyncio.run(provider.apply_resource("Custom/sync", {}, _ctx("a")))
        async_result = asyncio.run(provider.apply_resource("Custom/async", {}, _ctx("b")))

        assert sync_result.outputs == {"id": "sync", "node": "a"}
        assert async_result.outputs == {"id": "async"}

    def test_dispatch_failures_become_results(self):
        @register_provider("Custom/broken")
        def apply_broken(properties, ctx):
            raise RuntimeError("API throttled")

        provider = RegistryProvider()
        broken = asyncio.run(provider.apply_resource("Custom/broken", {}, _ctx()))
        unknown = asyncio.run(provider.apply_resource("Custom/unknown", {}, _ctx()))

        assert not broken.success
        assert "API throttled" in broken.error_message
        assert not unknown.success
        assert "Custom/unknown" in unknown.error_message

    def test_private_registry(self):
        async def apply(properties, ctx):
            return ProviderResult.success_result({"id": "private"})

        provider = RegistryProvider({"Custom/x": apply})
        assert asyncio.run(provider.apply_resource("Custom/x", {}, _ctx())).outputs == {"id": "private"}

    def test_create_provider(self):
        assert isinstance(create_provider("memory"), InMemoryProvider)
        assert isinstance(create_provider("registry"), RegistryProvider)
        with pytest.raises(ValueError):
            create_provider("terraform")


# ============================================================================
# IN-MEMORY PROVIDER
# ============================================================================

class TestInMemoryProvider:

    VAULT = {"name": "case-kv", "resourceGroup": "case-rg", "location": "westeurope"}

    def test_create_then_noop(self):
        provider = InMemoryProvider(subscription_id=SUB)

        first = asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", dict(self.VAULT), _ctx("kv")))
        second = asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", dict(self.VAULT), _ctx("kv")))

        assert first.success and first.changed is True
        assert second.success and second.changed is False
        assert first.outputs == second.outputs
        assert first.outputs["vault_uri"] == "https://case-kv.vault.azure.net/"
        assert first.outputs["resource_group"] == "case-rg"
        assert provider.resources["kv"].apply_count == 2

    def test_changed_properties_update(self):
        provider = InMemoryProvider()
        asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", dict(self.VAULT), _ctx("kv")))

        updated = dict(self.VAULT, tags={"case": "42"})
        result = asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", updated, _ctx("kv")))

        assert result.changed is True
        assert provider.resources["kv"].properties["tags"] == {"case": "42"}

    def test_system_assigned_identity(self):
        provider = InMemoryProvider(tenant_id="tenant-1")
        props = {"name": "vm", "resourceGroup": "rg", "identity": {"type": "SystemAssigned"}}

        result = asyncio.run(provider.apply_resource("Microsoft.Compute/virtualMachines", props, _ctx("vm")))

        assert result.outputs["principal_id"]
        assert result.outputs["tenant_id"] == "tenant-1"

    def test_storage_endpoint(self):
        provider = InMemoryProvider()
        props = {"name": "evidence01", "resourceGroup": "rg"}
        result = asyncio.run(provider.apply_resource("Microsoft.Storage/storageAccounts", props, _ctx("st")))
        assert result.outputs["primary_blob_endpoint"] == "https://evidence01.blob.core.windows.net/"

    def test_existing_lookup_never_writes(self):
        provider = InMemoryProvider()
        result = asyncio.run(provider.apply_resource(
            "existing:Microsoft.Resources/resourceGroups", {"name": "shared-rg"}, _ctx("rg")
        ))
        assert result.changed is False
        assert result.outputs["name"] == "shared-rg"
        assert provider.resources == {}

    def test_injected_failure_times(self):
        provider = InMemoryProvider()
        provider.fail("kv", "Conflict", times=1)

        failed = asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", dict(self.VAULT), _ctx("kv")))
        recovered = asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", dict(self.VAULT), _ctx("kv")))

        assert not failed.success and failed.error_message == "Conflict"
        assert recovered.success
        assert provider.calls_for("kv") == 2

    def test_unaddressable_bag_fails(self):
        provider = InMemoryProvider()
        result = asyncio.run(provider.apply_resource("Microsoft.KeyVault/vaults", {"name": "kv"}, _ctx("kv")))
        assert not result.success
        assert "resourceGroup" in result.error_message


# ============================================================================
# ARM PROVIDER
# ============================================================================

class TestAzureResourceManagerProvider:

    @pytest.fixture
    def client(self):
        client = MagicMock()
        resource = MagicMock()
        resource.as_dict.return_value = {
            "id": f"/subscriptions/{SUB}/resourceGroups/case-rg/providers/Microsoft.Storage/storageAccounts/evidence01",
            "name": "evidence01",
            "type": "Microsoft.Storage/storageAccounts",
            "location": "westeurope",
            "identity": {"principal_id": "pid-1", "tenant_id": "tid-1"},
            "properties": {"primaryEndpoints": {"blob": "https://evidence01.blob.core.windows.net/"}},
        }
        client.resources.begin_create_or_update_by_id.return_value.result.return_value = resource
        client.resources.get_by_id.return_value = resource
        return client

    def test_requires_subscription(self):
        with pytest.raises(ValueError):
            AzureResourceManagerProvider(subscription_id="")

    def test_create_or_update(self, client):
        provider = AzureResourceManagerProvider(subscription_id=SUB, client=client)
        props = {
            "name": "evidence01",
            "resourceGroup": "case-rg",
            "location": "westeurope",
            "kind": "StorageV2",
            "sku": {"name": "Standard_ZRS"},
            "properties": {"minimumTlsVersion": "TLS1_2"},
        }

        result = asyncio.run(provider.apply_resource(
            "Microsoft.Storage/storageAccounts", props, _ctx("evidence_storage", timeout=600)
        ))

        assert result.success
        assert result.changed is None
        assert result.outputs["primary_blob_endpoint"] == "https://evidence01.blob.core.windows.net/"
        assert result.outputs["principal_id"] == "pid-1"
        assert result.outputs["resource_group"] == "case-rg"

        resource_id, api_version, body = client.resources.begin_create_or_update_by_id.call_args[0]
        assert resource_id.endswith("/storageAccounts/evidence01")
        assert api_version == "2023-01-01"
        assert body == {
            "location": "westeurope",
            "kind": "StorageV2",
            "sku": {"name": "Standard_ZRS"},
            "properties": {"minimumTlsVersion": "TLS1_2"},
        }
        client.resources.begin_create_or_update_by_id.return_value.result.assert_called_once_with(timeout=600)

    def test_existing_is_read_only(self, client):
        provider = AzureResourceManagerProvider(subscription_id=SUB, client=client)

        result = asyncio.run(provider.apply_resource(
            "existing:Microsoft.Resources/resourceGroups", {"name": "case-rg"}, _ctx("rg")
        ))

        assert result.success and result.changed is False
        client.resources.get_by_id.assert_called_once_with(
            f"/subscriptions/{SUB}/resourceGroups/case-rg", "2022-09-01"
        )
        client.resources.begin_create_or_update_by_id.assert_not_called()

    def test_api_errors_become_failures(self, client):
        client.resources.begin_create_or_update_by_id.side_effect = RuntimeError("AuthorizationFailed")
        provider = AzureResourceManagerProvider(subscription_id=SUB, client=client)

        result = asyncio.run(provider.apply_resource(
            "Microsoft.KeyVault/vaults", {"name": "kv", "resourceGroup": "rg"}, _ctx("kv")
        ))

        assert not result.success
        assert "AuthorizationFailed" in result.error_message

    def test_unknown_api_version(self, client):
        provider = AzureResourceManagerProvider(subscription_id=SUB, client=client)
        result = asyncio.run(provider.apply_resource(
            "Microsoft.Custom/things", {"name": "t", "resourceGroup": "rg"}, _ctx()
        ))
        assert not result.success
        assert "apiVersion" in result.error_message

    def test_explicit_api_version(self, client):
        provider = AzureResourceManagerProvider(subscription_id=SUB, client=client)
        asyncio.run(provider.apply_resource(
            "Microsoft.Custom/things",
            {"name": "t", "resourceGroup": "rg", "apiVersion": "2024-01-01"},
            _ctx(),
        ))
        assert client.resources.begin_create_or_update_by_id.call_args[0][1] == "2024-01-01"

    def test_unknown_top_level_key(self, client):
        provider = AzureResourceManagerProvider(subscription_id=SUB, client=client)
        result = asyncio.run(provider.apply_resource(
            "Microsoft.KeyVault/vaults", {"name": "kv", "resourceGroup": "rg", "tenantId": "t"}, _ctx()
        ))
        assert not result.success
        assert "tenantId" in result.error_message

    def test_extract_outputs_from_plain_dict(self):
        outputs = AzureResourceManagerProvider.extract_outputs({
            "id": "/subscriptions/s/resourceGroups/rg/providers/Microsoft.KeyVault/vaults/kv",
            "name": "kv",
            "properties": {"vaultUri": "https://kv.vault.azure.net/"},
        })
        assert outputs["vault_uri"] == "https://kv.vault.azure.net/"
        assert outputs["resource_group"] == "rg"
