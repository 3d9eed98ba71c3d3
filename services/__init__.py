# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Service layer
# PURPOSE: Deployment definition and parameter loading
# CREATED: 17 OCT 2026
# ============================================================================
"""
Services Module

Loading concerns that sit outside the provisioning core.

Usage:
    from services import DeploymentService, ParameterService

    definition = DeploymentService().get_or_raise("forensic_capture")
    params = ParameterService().resolve(definition, values={"location": "westeurope"})
"""

from .deployment_service import DeploymentService
from .parameter_service import ParameterService

__all__ = [
    "DeploymentService",
    "ParameterService",
]
