# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Planning and apply orchestration
# PURPOSE: Plan deployments and drive provisioning runs
# CREATED: 17 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import ProvisioningRunner

    runner = ProvisioningRunner(provider)
    result = await runner.run(definition, params)
"""

from orchestrator.planner import DeploymentPlan, DeploymentPlanner, get_planner
from orchestrator.runner import ProvisioningRunner

__all__ = [
    "DeploymentPlan",
    "DeploymentPlanner",
    "get_planner",
    "ProvisioningRunner",
]
