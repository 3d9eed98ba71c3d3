# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 17 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the provisioning core.
"""

from core.config.defaults import (
    ApplyDefaults,
    LoaderDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "ApplyDefaults",
    "LoaderDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
