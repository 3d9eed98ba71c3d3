# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Engine components
# PURPOSE: References, conditions, graph, scheduling, apply, outputs
# CREATED: 17 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- references: Jinja2-based reference discovery and substitution
- conditions: existence conditions and alternate-scope checks
- graph: dependency graph construction and cycle detection
- scheduler: ready-group ordering
- apply: concurrent provider calls with failure cascade
- outputs: write-once Output Set and top-level outputs
"""

from orchestrator.engine.references import (
    Reference,
    ReferenceScan,
    ReferenceResolver,
    AttributeView,
    OutputLookup,
    strip_absent,
    get_resolver,
)
from orchestrator.engine.conditions import (
    ConditionEvaluator,
    ConditionPartition,
    get_evaluator,
)
from orchestrator.engine.graph import (
    DependencyGraph,
    GraphBuilder,
    find_cycles,
)
from orchestrator.engine.scheduler import (
    ScheduleState,
    plan_groups,
)
from orchestrator.engine.outputs import (
    OutputStore,
    resolve_top_level_outputs,
)
from orchestrator.engine.apply import ApplyEngine

__all__ = [
    # References
    "Reference",
    "ReferenceScan",
    "ReferenceResolver",
    "AttributeView",
    "OutputLookup",
    "strip_absent",
    "get_resolver",
    # Conditions
    "ConditionEvaluator",
    "ConditionPartition",
    "get_evaluator",
    # Graph
    "DependencyGraph",
    "GraphBuilder",
    "find_cycles",
    # Scheduler
    "ScheduleState",
    "plan_groups",
    # Outputs
    "OutputStore",
    "resolve_top_level_outputs",
    # Apply
    "ApplyEngine",
]
