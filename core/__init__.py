# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 17 OCT 2026
# ============================================================================

from core.contracts import ABSENT, NodeStatus, RunStatus, SkipReason, is_absent
from core.models import (
    DeploymentDefinition,
    ResourceNodeDefinition,
    ParameterDefinition,
    VariantSpec,
    NodeState,
    RunResult,
)

__all__ = [
    # Enums
    "NodeStatus",
    "RunStatus",
    "SkipReason",
    # Marker
    "ABSENT",
    "is_absent",
    # Models
    "DeploymentDefinition",
    "ResourceNodeDefinition",
    "ParameterDefinition",
    "VariantSpec",
    "NodeState",
    "RunResult",
]
