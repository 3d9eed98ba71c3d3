# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Foundation - Core enums and the absent-output marker
# PURPOSE: Define status enums and base data contracts for the planner
# LAST_REVIEWED: 17 OCT 2026
# EXPORTS: NodeStatus, SkipReason, RunStatus, ABSENT, is_absent, NodeData
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the provisioning core.

These define the minimal identity fields and states that cross boundaries:
- Planner (condition evaluation, graph construction)
- Apply engine (provider calls, output capture)
- Caller (CLI or automation pipeline reading the run result)
"""

from enum import Enum
from typing import Any
from pydantic import BaseModel, Field

from core.errors import ReferenceResolutionError


# ============================================================================
# STATUS ENUMS
# ============================================================================

class NodeStatus(str, Enum):
    """
    Node lifecycle states within a provisioning run.

    State transitions:
        PENDING -> READY -> APPLYING -> SATISFIED
                                     -> FAILED
        PENDING/READY -> SKIPPED (condition false, upstream failed, cancelled)
        READY -> FAILED (properties could not be resolved)
    """
    PENDING = "pending"          # Waiting for dependencies
    READY = "ready"              # Dependencies satisfied, awaiting apply
    APPLYING = "applying"        # Provider call in flight
    SATISFIED = "satisfied"      # Provider call succeeded, outputs published
    FAILED = "failed"            # Provider call failed
    SKIPPED = "skipped"          # Never applied (see SkipReason)

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (NodeStatus.SATISFIED, NodeStatus.FAILED, NodeStatus.SKIPPED)

    def is_successful(self) -> bool:
        """Check if this state settles dependents without blocking them."""
        return self in (NodeStatus.SATISFIED, NodeStatus.SKIPPED)


class SkipReason(str, Enum):
    """Why a node ended up SKIPPED."""
    CONDITION_FALSE = "condition_false"    # Existence condition evaluated false
    UPSTREAM_FAILED = "upstream_failed"    # A transitive dependency failed
    CANCELLED = "cancelled"                # Run cancelled before scheduling


class RunStatus(str, Enum):
    """
    Overall outcome of a provisioning run.

    SUCCEEDED means every active node is SATISFIED. FAILED means at least
    one node FAILED (independent branches still ran to completion).
    """
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.CANCELLED)


# ============================================================================
# ABSENT MARKER
# ============================================================================

class _Absent:
    """
    Marker for an output of a node that was not deployed.

    Distinct from None and from empty values so that downstream selection
    expressions can tell "not deployed" from "deployed with empty value".
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<absent>"

    def __str__(self) -> str:
        # Covers ~, |string, |join and f-strings, which all go through str()
        raise ReferenceResolutionError(
            "An absent output cannot be converted to text; "
            "select it with the same condition that gates its node"
        )

    def __format__(self, spec: str) -> str:
        return str(self)

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_Absent":
        return self

    def __deepcopy__(self, memo) -> "_Absent":
        return self

    def __reduce__(self):
        return (_Absent, ())


ABSENT = _Absent()


def is_absent(value: Any) -> bool:
    """Check whether a value is the absent marker."""
    return value is ABSENT


# ============================================================================
# BASE DATA CONTRACTS
# ============================================================================

class NodeData(BaseModel):
    """
    Essential node identity within a provisioning run.
    """
    run_id: str = Field(..., max_length=64)
    node_id: str = Field(..., max_length=64, description="Node name from the deployment definition")

    model_config = {"frozen": False}


__all__ = [
    "NodeStatus",
    "SkipReason",
    "RunStatus",
    "ABSENT",
    "is_absent",
    "NodeData",
]
