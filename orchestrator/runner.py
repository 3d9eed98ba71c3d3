# ============================================================================
# PROVISIONING RUNNER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Plan-then-apply entry point
# PURPOSE: Drive one provisioning run and keep run statistics
# CREATED: 17 OCT 2026
# ============================================================================
"""
Provisioning Runner

Ties the planner and the apply engine together:

1. Plan (all configuration errors raised before any provider call)
2. Apply ready groups against the provider
3. Return the RunResult

The runner is stateless between runs apart from statistics. Re-running
the same deployment re-evaluates every condition and re-applies through
the idempotent provider; nodes already in the desired state converge to a
no-op.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from core.contracts import RunStatus
from core.logging import get_logger, ComponentType
from core.models import DeploymentDefinition, RunResult
from orchestrator.engine.apply import ApplyEngine
from orchestrator.planner import DeploymentPlan, DeploymentPlanner, get_planner
from providers.base import ResourceProvider

logger = get_logger(__name__, ComponentType.ENGINE)


class ProvisioningRunner:
    """
    Plans and applies deployments against one provider.

    Example:
        runner = ProvisioningRunner(InMemoryProvider())
        result = await runner.run(definition, params)
    """

    def __init__(
        self,
        provider: ResourceProvider,
        planner: Optional[DeploymentPlanner] = None,
        max_concurrency: Optional[int] = None,
        apply_timeout_seconds: Optional[int] = None,
    ):
        """
        Initialize runner.

        Args:
            provider: Provider receiving apply calls
            planner: Planner (shared instance if None)
            max_concurrency: Concurrent provider calls per group
            apply_timeout_seconds: Default provider call timeout
        """
        self.provider = provider
        self.planner = planner or get_planner()
        self.engine = ApplyEngine(
            provider,
            max_concurrency=max_concurrency,
            apply_timeout_seconds=apply_timeout_seconds,
        )

        # Metrics
        self._started_at = datetime.now(timezone.utc)
        self._runs = 0
        self._runs_by_status: Dict[str, int] = {}
        self._nodes_satisfied = 0
        self._nodes_failed = 0
        self._nodes_unchanged = 0
        self._last_run_at: Optional[datetime] = None

    def plan(self, definition: DeploymentDefinition, params: Mapping[str, Any]) -> DeploymentPlan:
        """Build a plan without applying it."""
        return self.planner.plan(definition, params)

    async def run(
        self,
        definition: DeploymentDefinition,
        params: Mapping[str, Any],
        run_id: Optional[str] = None,
    ) -> RunResult:
        """
        Plan and apply a deployment.

        Raises:
            PlanValidationError: Configuration errors (nothing was applied)
        """
        plan = self.planner.plan(definition, params)
        return await self.apply(plan, run_id=run_id)

    async def apply(self, plan: DeploymentPlan, run_id: Optional[str] = None) -> RunResult:
        """Apply an already-built plan."""
        try:
            result = await self.engine.run(plan, run_id=run_id)
        finally:
            if self.engine.last_result is not None:
                self._record(self.engine.last_result)
        return result

    def cancel(self) -> None:
        """Cancel the current run after in-flight applies finish."""
        self.engine.cancel()

    @property
    def last_result(self) -> Optional[RunResult]:
        return self.engine.last_result

    def _record(self, result: RunResult) -> None:
        self._runs += 1
        self._runs_by_status[result.status.value] = self._runs_by_status.get(result.status.value, 0) + 1
        self._nodes_satisfied += len(result.satisfied)
        self._nodes_failed += len(result.failed)
        self._nodes_unchanged += sum(
            1 for state in result.nodes.values() if state.changed is False
        )
        self._last_run_at = datetime.now(timezone.utc)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get runner statistics."""
        return {
            "provider": getattr(self.provider, "name", type(self.provider).__name__),
            "started_at": self._started_at.isoformat(),
            "runs": self._runs,
            "runs_by_status": dict(self._runs_by_status),
            "runs_succeeded": self._runs_by_status.get(RunStatus.SUCCEEDED.value, 0),
            "nodes_satisfied": self._nodes_satisfied,
            "nodes_failed": self._nodes_failed,
            "nodes_unchanged": self._nodes_unchanged,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
        }


__all__ = ["ProvisioningRunner"]
