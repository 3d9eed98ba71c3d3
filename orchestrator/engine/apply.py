# ============================================================================
# APPLY ENGINE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Concurrent, group-ordered provider calls
# PURPOSE: Apply ready groups, capture outputs, cascade failures
# CREATED: 17 OCT 2026
# ============================================================================
"""
Apply Engine

Executes a DeploymentPlan against a provider:

1. Condition-skipped nodes settle first with absent outputs
2. The next ready group is computed from live node states
3. Every node of the group is resolved and applied concurrently, bounded by
   a semaphore, each provider call under a timeout
4. Satisfied nodes publish their declared outputs; failed nodes take every
   transitive dependent down with them (Skipped, upstream_failed)
5. Repeat until no node can start

Provider failures never escape: they become FAILED nodes carrying the
originating error. There is no automatic retry; the caller re-runs the
whole deployment and the idempotent provider converges.

Cancellation (cancel() or cancelling the task running run()) lets
in-flight provider calls finish, schedules nothing further and marks the
rest Skipped (cancelled).
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from core.config import get_defaults
from core.contracts import NodeStatus, RunStatus, SkipReason
from core.errors import ReferenceResolutionError, UnresolvedReferenceError
from core.logging import get_logger, log_checkpoint, log_context, ComponentType
from core.models import NodeState, RunResult
from orchestrator.engine.outputs import OutputStore, resolve_top_level_outputs
from orchestrator.engine.references import ReferenceResolver, get_resolver, strip_absent
from orchestrator.engine.scheduler import ScheduleState
from providers.base import ProviderContext, ResourceProvider

logger = get_logger(__name__, ComponentType.ENGINE)


class _Run:
    """Mutable state of one run."""

    def __init__(self, run_id: str, plan, states: Dict[str, NodeState]):
        self.run_id = run_id
        self.plan = plan
        self.states = states
        self.store = OutputStore()
        self.schedule = ScheduleState(plan.graph)
        self.started_at = datetime.now(timezone.utc)
        self.internal_error: Optional[BaseException] = None


class ApplyEngine:
    """
    Applies deployment plans group by group.

    Example:
        engine = ApplyEngine(InMemoryProvider(), max_concurrency=4)
        result = await engine.run(plan)
        if not result.succeeded:
            print(result.failed)
    """

    def __init__(
        self,
        provider: ResourceProvider,
        max_concurrency: Optional[int] = None,
        apply_timeout_seconds: Optional[int] = None,
        resolver: Optional[ReferenceResolver] = None,
    ):
        """
        Initialize engine.

        Args:
            provider: Provider receiving apply_resource calls
            max_concurrency: Concurrent provider calls (default from config)
            apply_timeout_seconds: Per-call timeout unless a node sets its own
            resolver: Reference resolver (shared instance if None)
        """
        defaults = get_defaults().apply
        self.provider = provider
        self.max_concurrency = max(1, max_concurrency or defaults.max_concurrency)
        self.apply_timeout_seconds = apply_timeout_seconds or defaults.apply_timeout_seconds
        self.resolver = resolver or get_resolver()

        self._cancel_requested = False
        self._in_flight = 0
        self.last_result: Optional[RunResult] = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop scheduling new groups; in-flight applies finish."""
        if not self._cancel_requested:
            logger.warning("Cancellation requested; no further groups will be scheduled")
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def active_count(self) -> int:
        """Number of provider calls currently in flight."""
        return self._in_flight

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, plan, run_id: Optional[str] = None) -> RunResult:
        """
        Apply a plan.

        Args:
            plan: DeploymentPlan from DeploymentPlanner.plan()
            run_id: Run identifier (generated if None)

        Returns:
            RunResult with every node's final status

        Raises:
            UnresolvedReferenceError: Internal ordering bug (run aborted)
            asyncio.CancelledError: If the running task was cancelled; the
                result is still available as engine.last_result
        """
        self._cancel_requested = False
        run_id = run_id or f"run-{uuid.uuid4().hex[:12]}"
        definition = plan.definition

        states = {
            node_id: NodeState(run_id=run_id, node_id=node_id, resource_type=node.type)
            for node_id, node in definition.nodes.items()
        }
        run = _Run(run_id, plan, states)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        outer_cancelled = False

        with log_context(
            run_id=run_id,
            deployment_id=definition.deployment_id,
            component=ComponentType.ENGINE.value,
        ):
            logger.info(
                f"Starting run {run_id} for '{definition.deployment_id}': "
                f"{len(plan.active)} active, {len(plan.skipped)} skipped"
            )

            for node_id in plan.skipped:
                states[node_id].mark_skipped(SkipReason.CONDITION_FALSE)
                run.store.publish_absent(node_id, definition.nodes[node_id].outputs)

            while not self._cancel_requested and run.internal_error is None:
                group = run.schedule.next_group(states)
                if not group:
                    run.schedule.check_progress(states)
                    break

                log_checkpoint("group_scheduled", {
                    "index": len(run.schedule.groups),
                    "nodes": sorted(group),
                })

                group_task = asyncio.ensure_future(self._apply_group(run, group, semaphore))
                try:
                    await asyncio.shield(group_task)
                except asyncio.CancelledError:
                    outer_cancelled = True
                    self.cancel()
                    # In-flight provider calls run to completion
                    await group_task

            if self._cancel_requested or run.internal_error is not None:
                self._skip_remaining(run)

            result = self._finalize(run)
            self.last_result = result

        if run.internal_error is not None:
            raise run.internal_error
        if outer_cancelled:
            raise asyncio.CancelledError()
        return result

    async def _apply_group(
        self,
        run: _Run,
        group: FrozenSet[str],
        semaphore: asyncio.Semaphore,
    ) -> None:
        """Apply all nodes of one ready group concurrently."""
        outcomes = await asyncio.gather(
            *[self._apply_node(run, node_id, semaphore) for node_id in sorted(group)],
            return_exceptions=True,
        )
        for node_id, outcome in zip(sorted(group), outcomes):
            if isinstance(outcome, UnresolvedReferenceError):
                logger.error(f"Internal ordering error on '{node_id}': {outcome}")
                if run.internal_error is None:
                    run.internal_error = outcome
            elif isinstance(outcome, BaseException):
                raise outcome

    async def _apply_node(
        self,
        run: _Run,
        node_id: str,
        semaphore: asyncio.Semaphore,
    ) -> None:
        """Resolve, apply and settle a single node."""
        plan = run.plan
        node = plan.definition.nodes[node_id]
        state = run.states[node_id]
        timeout = node.timeout_seconds or self.apply_timeout_seconds

        async with semaphore:
            with log_context(node_id=node_id, resource_type=node.type):
                try:
                    resolved = self.resolver.resolve(
                        node.properties,
                        params=plan.params,
                        outputs=run.store,
                        aliases=plan.aliases,
                        node_id=node_id,
                    )
                except ReferenceResolutionError as e:
                    self._fail(run, node_id, str(e), type(e).__name__)
                    return

                properties = strip_absent(resolved)
                state.mark_applying(properties)
                context = ProviderContext(
                    run_id=run.run_id,
                    node_id=node_id,
                    resource_type=node.type,
                    timeout_seconds=timeout,
                    deployment_id=plan.deployment_id,
                )

                logger.info(f"Applying '{node_id}' ({node.type})")
                self._in_flight += 1
                try:
                    result = await asyncio.wait_for(
                        self.provider.apply_resource(node.type, properties, context),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError:
                    self._fail(run, node_id, f"Provider call timed out after {timeout} seconds", "TimeoutError")
                    return
                except Exception as e:
                    logger.exception(f"Provider raised while applying '{node_id}'")
                    self._fail(run, node_id, f"{type(e).__name__}: {e}", type(e).__name__)
                    return
                finally:
                    self._in_flight -= 1

                if not result.success:
                    self._fail(
                        run, node_id,
                        result.error_message or "Provider reported failure",
                        "ProviderError",
                    )
                    return

                missing = [key for key in node.outputs if key not in result.outputs]
                if missing:
                    self._fail(
                        run, node_id,
                        f"Provider did not return declared outputs: {missing}",
                        "MissingOutputError",
                    )
                    return

                run.store.publish(node_id, result.outputs, node.outputs)
                state.mark_satisfied(changed=result.changed)
                log_checkpoint("node_satisfied", {
                    "node_id": node_id,
                    "changed": result.changed,
                    "duration_seconds": state.duration_seconds,
                })

    # ------------------------------------------------------------------
    # Settling
    # ------------------------------------------------------------------

    def _fail(self, run: _Run, node_id: str, message: str, error_type: str) -> None:
        """Mark a node failed and skip every transitive dependent."""
        run.states[node_id].mark_failed(message, error_type)
        logger.error(f"Node '{node_id}' failed: {message}")
        log_checkpoint("node_failed", {"node_id": node_id, "error_type": error_type})

        skipped: List[str] = []
        for dependent in sorted(run.plan.graph.transitive_dependents(node_id)):
            state = run.states[dependent]
            if state.status in (NodeStatus.PENDING, NodeStatus.READY):
                state.mark_skipped(SkipReason.UPSTREAM_FAILED, failed_dependency=node_id)
                run.store.publish_absent(dependent, run.plan.definition.nodes[dependent].outputs)
                skipped.append(dependent)
        if skipped:
            logger.warning(f"Skipping {skipped}: upstream '{node_id}' failed")

    def _skip_remaining(self, run: _Run) -> None:
        """Mark every node that never started Skipped (cancelled)."""
        for node_id in run.schedule.pending(run.states):
            run.states[node_id].mark_skipped(SkipReason.CANCELLED)
            run.store.publish_absent(node_id, run.plan.definition.nodes[node_id].outputs)

    def _finalize(self, run: _Run) -> RunResult:
        plan = run.plan
        states = run.states

        outputs = resolve_top_level_outputs(
            plan.definition, run.store, plan.params, plan.aliases, self.resolver
        )

        if run.internal_error is not None:
            status = RunStatus.FAILED
        elif any(s.skip_reason == SkipReason.CANCELLED for s in states.values()):
            status = RunStatus.CANCELLED
        elif any(s.status == NodeStatus.FAILED for s in states.values()):
            status = RunStatus.FAILED
        else:
            status = RunStatus.SUCCEEDED

        result = RunResult(
            run_id=run.run_id,
            deployment_id=plan.deployment_id,
            status=status,
            nodes=states,
            node_outputs=run.store.snapshot(),
            outputs=outputs,
            selected_variants=plan.selected_variants,
            groups=[sorted(g) for g in run.schedule.groups],
            error_message=str(run.internal_error) if run.internal_error else None,
            started_at=run.started_at,
            completed_at=datetime.now(timezone.utc),
        )

        log_checkpoint("run_completed", {
            "status": status.value,
            "satisfied": len(result.satisfied),
            "skipped": len(result.skipped),
            "failed": len(result.failed),
        })
        logger.info(
            f"Run {run.run_id} {status.value}: {len(result.satisfied)} satisfied, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result


__all__ = ["ApplyEngine"]
