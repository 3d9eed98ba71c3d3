# ============================================================================
# PROVIDERS MODULE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Providers - Apply backends
# PURPOSE: Provider contract, registry, in-memory and Azure providers
# CREATED: 17 OCT 2026
# ============================================================================
"""
Providers

Usage:
    from providers import InMemoryProvider, create_provider

    provider = create_provider("memory")
    result = await provider.apply_resource(resource_type, properties, ctx)
"""

from typing import Any

from providers.base import (
    ProviderContext,
    ProviderResult,
    ResourceProvider,
    EXISTING_PREFIX,
    is_existing,
    base_type,
    resource_id_for,
)
from providers.registry import (
    register_provider,
    get_provider,
    get_provider_or_raise,
    list_providers,
    clear_providers,
    missing_providers,
    RegistryProvider,
)
from providers.memory import InMemoryProvider
from providers.azure_arm import AzureResourceManagerProvider

PROVIDER_NAMES = ("memory", "azure", "registry")


def create_provider(name: str, **kwargs: Any) -> ResourceProvider:
    """
    Create a provider by name.

    Args:
        name: 'memory', 'azure' or 'registry'
        **kwargs: Passed to the provider constructor
    """
    if name == "memory":
        return InMemoryProvider(**kwargs)
    if name == "azure":
        return AzureResourceManagerProvider(**kwargs)
    if name == "registry":
        return RegistryProvider(**kwargs)
    raise ValueError(f"Unknown provider '{name}'; expected one of {PROVIDER_NAMES}")


__all__ = [
    "ProviderContext",
    "ProviderResult",
    "ResourceProvider",
    "EXISTING_PREFIX",
    "is_existing",
    "base_type",
    "resource_id_for",
    "register_provider",
    "get_provider",
    "get_provider_or_raise",
    "list_providers",
    "clear_providers",
    "missing_providers",
    "RegistryProvider",
    "InMemoryProvider",
    "AzureResourceManagerProvider",
    "create_provider",
    "PROVIDER_NAMES",
]
