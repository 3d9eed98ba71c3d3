# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 17 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the provisioning core.

    - DeploymentDefinition / ResourceNodeDefinition: the declared template
    - NodeState: runtime state of one node in one run
    - RunResult: what the caller gets back
"""

from core.models.deployment import (
    DeploymentDefinition,
    ResourceNodeDefinition,
    ParameterDefinition,
    VariantSpec,
)
from core.models.node import NodeState
from core.models.result import RunResult

__all__ = [
    # Deployment
    "DeploymentDefinition",
    "ResourceNodeDefinition",
    "ParameterDefinition",
    "VariantSpec",
    # Node
    "NodeState",
    # Result
    "RunResult",
]
