# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for apply concurrency, timeouts, loading
# CREATED: 17 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the planner and apply engine.
These can be overridden via environment variables or CLI flags.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access

Policy values (retention days, allowed IP ranges, SKUs) are NOT defaults of
the core; they arrive as deployment parameters.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ApplyDefaults:
    """
    Defaults for the apply engine.

    Controls how many provider calls run at once and how long one may take.
    """
    # Concurrent provider calls within a ready group
    max_concurrency: int = 8

    # Provider call timeout (seconds) when a node does not set its own
    apply_timeout_seconds: int = 1800  # 30 min - VM extensions are slow

    @classmethod
    def from_env(cls) -> "ApplyDefaults":
        """Create from environment variables."""
        return cls(
            max_concurrency=int(os.getenv("FCP_MAX_CONCURRENCY", 8)),
            apply_timeout_seconds=int(os.getenv("FCP_APPLY_TIMEOUT_SECONDS", 1800)),
        )


@dataclass(frozen=True)
class LoaderDefaults:
    """
    Defaults for loading deployments and parameters.
    """
    # Directory scanned for deployment YAML files
    deployments_dir: str = "deployments"

    # Environment variables with this prefix become read-only parameters
    # (FCP_PARAM_SUBSCRIPTION_ID -> subscription_id)
    env_param_prefix: str = "FCP_PARAM_"

    @classmethod
    def from_env(cls) -> "LoaderDefaults":
        """Create from environment variables."""
        return cls(
            deployments_dir=os.getenv("FCP_DEPLOYMENTS_DIR", "deployments"),
            env_param_prefix=os.getenv("FCP_ENV_PARAM_PREFIX", "FCP_PARAM_"),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    apply: ApplyDefaults = field(default_factory=ApplyDefaults)
    loader: LoaderDefaults = field(default_factory=LoaderDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            apply=ApplyDefaults.from_env(),
            loader=LoaderDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ApplyDefaults",
    "LoaderDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
