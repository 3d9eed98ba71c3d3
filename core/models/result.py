# ============================================================================
# RUN RESULT MODEL
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core model - Structured result returned to the caller
# PURPOSE: Final Output Set and per-node status partitioned by outcome
# LAST_REVIEWED: 17 OCT 2026
# EXPORTS: RunResult
# DEPENDENCIES: pydantic
# ============================================================================
"""
Run Result Model

The caller (CLI or automation pipeline) receives a RunResult and decides
exit/reporting behavior from it. Every node appears with its final status;
failures carry the originating provider error.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, computed_field

from core.contracts import ABSENT, NodeStatus, RunStatus, SkipReason
from core.models.node import NodeState


def _jsonable(value: Any) -> Any:
    """Replace absent markers with None for JSON output."""
    if value is ABSENT:
        return None
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class RunResult(BaseModel):
    """Outcome of one provisioning run."""

    run_id: str
    deployment_id: str
    status: RunStatus = RunStatus.PENDING

    nodes: Dict[str, NodeState] = Field(default_factory=dict)

    # Output Set: node -> output key -> value (ABSENT for skipped nodes)
    node_outputs: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    # Top-level outputs declared by the deployment
    outputs: Dict[str, Any] = Field(default_factory=dict)

    selected_variants: Dict[str, str] = Field(default_factory=dict)
    groups: List[List[str]] = Field(default_factory=list)

    error_message: Optional[str] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"arbitrary_types_allowed": True}

    def _with_status(self, status: NodeStatus) -> List[str]:
        return sorted(n for n, s in self.nodes.items() if s.status == status)

    @computed_field
    @property
    def satisfied(self) -> List[str]:
        return self._with_status(NodeStatus.SATISFIED)

    @computed_field
    @property
    def failed(self) -> List[str]:
        return self._with_status(NodeStatus.FAILED)

    @computed_field
    @property
    def skipped(self) -> List[str]:
        return self._with_status(NodeStatus.SKIPPED)

    def skipped_for(self, reason: SkipReason) -> List[str]:
        """Skipped nodes with a specific skip reason."""
        return sorted(
            n for n, s in self.nodes.items()
            if s.status == NodeStatus.SKIPPED and s.skip_reason == reason
        )

    def status_of(self, node_id: str) -> NodeStatus:
        """Final status of a node."""
        return self.nodes[node_id].status

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-safe summary.

        Absent outputs are rendered as null and listed under 'absent' so a
        reader can still distinguish them from real null values.
        """
        absent = sorted(
            f"{node}.{key}"
            for node, values in self.node_outputs.items()
            for key, value in values.items()
            if value is ABSENT
        )
        absent_outputs = sorted(k for k, v in self.outputs.items() if v is ABSENT)
        return {
            "run_id": self.run_id,
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "satisfied": self.satisfied,
            "skipped": self.skipped,
            "failed": self.failed,
            "selected_variants": dict(self.selected_variants),
            "groups": [list(g) for g in self.groups],
            "nodes": {
                node_id: {
                    "resource_type": state.resource_type,
                    "status": state.status.value,
                    "skip_reason": state.skip_reason.value if state.skip_reason else None,
                    "failed_dependency": state.failed_dependency,
                    "changed": state.changed,
                    "error_type": state.error_type,
                    "error_message": state.error_message,
                    "duration_seconds": state.duration_seconds,
                }
                for node_id, state in self.nodes.items()
            },
            "node_outputs": _jsonable(self.node_outputs),
            "outputs": _jsonable(self.outputs),
            "absent": absent,
            "absent_outputs": absent_outputs,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


__all__ = ["RunResult"]
