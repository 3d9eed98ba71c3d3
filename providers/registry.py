# ============================================================================
# PROVIDER REGISTRY
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Per-resource-type provider registration and dispatch
# PURPOSE: Register callables per resource type and dispatch apply calls
# CREATED: 17 OCT 2026
# ============================================================================
"""
Provider Registry

Registry of per-resource-type provider callables, for deployments that
mix resource kinds with different backends (or for tests).

Design:
- Providers are registered at import time via decorator
- Registry is a simple dict (resource_type -> callable)
- Fail-fast on duplicate registration
- Supports both sync and async callables
"""

import asyncio
import functools
import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from core.errors import DuplicateProviderError, ProviderNotFoundError
from core.logging import get_logger, ComponentType
from providers.base import ProviderContext, ProviderResult, ResourceProvider

logger = get_logger(__name__, ComponentType.PROVIDER)

# Provider callable type
ProviderFunc = Callable[
    [Dict[str, Any], ProviderContext],
    Union[ProviderResult, Awaitable[ProviderResult]],
]


# ============================================================================
# REGISTRY
# ============================================================================

# Global registry
_providers: Dict[str, ProviderFunc] = {}
_provider_metadata: Dict[str, Dict[str, Any]] = {}


def register_provider(
    resource_type: str,
    *,
    description: str = "",
) -> Callable[[ProviderFunc], ProviderFunc]:
    """
    Decorator to register a provider callable for a resource type.

    Example:
        @register_provider("Microsoft.KeyVault/vaults")
        async def apply_vault(properties, ctx: ProviderContext) -> ProviderResult:
            return ProviderResult.success_result({"vault_uri": ...})
    """
    def decorator(func: ProviderFunc) -> ProviderFunc:
        if resource_type in _providers:
            raise DuplicateProviderError(resource_type)

        _providers[resource_type] = func
        _provider_metadata[resource_type] = {
            "resource_type": resource_type,
            "description": description,
            "function": func.__name__,
            "module": func.__module__,
            "is_async": inspect.iscoroutinefunction(func),
            "registered_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.debug(f"Registered provider: {resource_type} ({func.__module__}.{func.__name__})")
        return func

    return decorator


def get_provider(resource_type: str) -> Optional[ProviderFunc]:
    """Get the provider callable for a resource type, or None."""
    return _providers.get(resource_type)


def get_provider_or_raise(resource_type: str) -> ProviderFunc:
    """
    Get the provider callable for a resource type.

    Raises:
        ProviderNotFoundError if nothing is registered
    """
    func = _providers.get(resource_type)
    if func is None:
        raise ProviderNotFoundError(resource_type)
    return func


def list_providers() -> List[Dict[str, Any]]:
    """List all registered providers with metadata."""
    return list(_provider_metadata.values())


def clear_providers() -> None:
    """
    Clear all registered providers.

    Primarily for testing.
    """
    _providers.clear()
    _provider_metadata.clear()
    logger.debug("Cleared all providers")


def missing_providers(resource_types: List[str]) -> List[str]:
    """Resource types with no registered provider (sorted, unique)."""
    return sorted({t for t in resource_types if t not in _providers})


# ============================================================================
# DISPATCHING PROVIDER
# ============================================================================

class RegistryProvider(ResourceProvider):
    """
    Provider that dispatches to registered callables by resource type.

    Unknown types and raised exceptions become failure results.
    """

    name = "registry"

    def __init__(self, registry: Optional[Dict[str, ProviderFunc]] = None):
        self._registry = registry if registry is not None else _providers

    async def apply_resource(
        self,
        resource_type: str,
        properties: Dict[str, Any],
        context: ProviderContext,
    ) -> ProviderResult:
        func = self._registry.get(resource_type)
        if func is None:
            return ProviderResult.failure_result(str(ProviderNotFoundError(resource_type)))

        try:
            if inspect.iscoroutinefunction(func):
                return await func(properties, context)
            # Run sync provider in thread pool
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, functools.partial(func, properties, context))
        except Exception as e:
            logger.exception(f"Provider for {resource_type} failed on '{context.node_id}': {e}")
            return ProviderResult.failure_result(f"{type(e).__name__}: {e}")


__all__ = [
    "ProviderFunc",
    "register_provider",
    "get_provider",
    "get_provider_or_raise",
    "list_providers",
    "clear_providers",
    "missing_providers",
    "RegistryProvider",
]
