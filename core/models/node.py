# ============================================================================
# NODE STATE MODEL
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core model - Node runtime state
# PURPOSE: Track state of each resource node within a provisioning run
# LAST_REVIEWED: 17 OCT 2026
# EXPORTS: NodeState
# DEPENDENCIES: pydantic
# ============================================================================
"""
Node State Model

NodeState tracks the runtime state of a single node within a run.

Key concept:
- DeploymentDefinition.ResourceNodeDefinition = TEMPLATE (what to provision)
- NodeState = INSTANCE (runtime state for one run)

Each run creates N NodeState records (one per declared node). They do not
outlive the run.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, computed_field

from core.contracts import NodeData, NodeStatus, SkipReason
from core.errors import InvalidTransitionError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeState(NodeData):
    """
    Runtime state of a node within a provisioning run.

    Lifecycle:
        1. Created with status=PENDING when the run starts
        2. SKIPPED immediately if its condition evaluates false
        3. Transitions to READY when dependencies are satisfied
        4. Transitions to APPLYING when the provider call starts
        5. Transitions to SATISFIED/FAILED when the provider returns
        6. SKIPPED if an upstream node failed or the run was cancelled
    """

    resource_type: str = Field(..., max_length=128)

    # Status
    status: NodeStatus = Field(default=NodeStatus.PENDING)
    skip_reason: Optional[SkipReason] = None

    # Apply data
    resolved_properties: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Property bag sent to the provider (all references substituted)"
    )
    changed: Optional[bool] = Field(
        default=None,
        description="False when the provider reported a no-op apply"
    )
    error_message: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Originating error if failed"
    )
    error_type: Optional[str] = Field(default=None, max_length=128)
    failed_dependency: Optional[str] = Field(
        default=None,
        description="For upstream_failed skips, the failed node that caused it"
    )

    # Timestamps
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """Check if node is in a terminal state."""
        return self.status.is_terminal()

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        """Provider call duration if the node was applied."""
        if not self.started_at or not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def can_transition_to(self, new_status: NodeStatus) -> bool:
        """
        Validate if a status transition is allowed.

        Valid transitions:
            PENDING -> READY, SKIPPED
            READY -> APPLYING, SKIPPED, FAILED (properties could not be resolved)
            APPLYING -> SATISFIED, FAILED
            SATISFIED, FAILED, SKIPPED -> (none, terminal)
        """
        allowed = {
            NodeStatus.PENDING: {NodeStatus.READY, NodeStatus.SKIPPED},
            NodeStatus.READY: {NodeStatus.APPLYING, NodeStatus.SKIPPED, NodeStatus.FAILED},
            NodeStatus.APPLYING: {NodeStatus.SATISFIED, NodeStatus.FAILED},
            NodeStatus.SATISFIED: set(),
            NodeStatus.FAILED: set(),
            NodeStatus.SKIPPED: set(),
        }
        return new_status in allowed.get(self.status, set())

    def _transition(self, new_status: NodeStatus) -> None:
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Node '{self.node_id}' cannot transition from "
                f"{self.status.value} to {new_status.value}",
                node_id=self.node_id,
            )
        self.status = new_status

    def mark_ready(self) -> None:
        """Mark node as ready (dependencies satisfied)."""
        self._transition(NodeStatus.READY)

    def mark_applying(self, resolved_properties: Dict[str, Any]) -> None:
        """Mark node as applying (provider call started)."""
        self._transition(NodeStatus.APPLYING)
        self.resolved_properties = resolved_properties
        self.started_at = _utcnow()

    def mark_satisfied(self, changed: Optional[bool] = None) -> None:
        """Mark node as satisfied (provider call succeeded)."""
        self._transition(NodeStatus.SATISFIED)
        self.changed = changed
        self.completed_at = _utcnow()

    def mark_failed(self, error_message: str, error_type: Optional[str] = None) -> None:
        """Mark node as failed, keeping the originating error."""
        self._transition(NodeStatus.FAILED)
        self.error_message = error_message[:2000]
        self.error_type = error_type
        self.completed_at = _utcnow()

    def mark_skipped(self, reason: SkipReason, failed_dependency: Optional[str] = None) -> None:
        """Mark node as skipped."""
        self._transition(NodeStatus.SKIPPED)
        self.skip_reason = reason
        self.failed_dependency = failed_dependency
        self.completed_at = _utcnow()


__all__ = ["NodeState"]
