# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Tests - Fixtures shared across test modules
# PURPOSE: Deployment builders, the shipped deployment and its parameters
# CREATED: 17 OCT 2026
# ============================================================================
"""
Shared fixtures.

Run with:
    pytest tests/ -v
"""

from pathlib import Path

import pytest

from core.config import reset_defaults
from core.models import DeploymentDefinition
from providers import InMemoryProvider, clear_providers
from services import DeploymentService

REPO_ROOT = Path(__file__).resolve().parent.parent
DEPLOYMENTS_DIR = REPO_ROOT / "deployments"


# ============================================================================
# ISOLATION
# ============================================================================

@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch):
    """Fresh config and an empty provider registry for every test."""
    for key in ("FCP_MAX_CONCURRENCY", "FCP_APPLY_TIMEOUT_SECONDS", "FCP_DEPLOYMENTS_DIR", "FCP_ENV_PARAM_PREFIX"):
        monkeypatch.delenv(key, raising=False)
    reset_defaults()
    clear_providers()
    yield
    reset_defaults()
    clear_providers()


# ============================================================================
# BUILDERS
# ============================================================================

@pytest.fixture
def make_definition():
    """Factory for small in-code deployments."""
    def _make(nodes, parameters=None, outputs=None, deployment_id="test_deployment"):
        return DeploymentDefinition(
            deployment_id=deployment_id,
            name=deployment_id.replace("_", " ").title(),
            parameters=parameters or {},
            nodes=nodes,
            outputs=outputs or {},
        )
    return _make


@pytest.fixture
def provider():
    return InMemoryProvider()


# ============================================================================
# SHIPPED DEPLOYMENT
# ============================================================================

@pytest.fixture
def forensic_definition():
    """The forensic_capture deployment shipped in deployments/."""
    return DeploymentService(DEPLOYMENTS_DIR).get_or_raise("forensic_capture")


@pytest.fixture
def forensic_params():
    """A complete parameter set for forensic_capture (new RG, new network, automation on)."""
    return {
        "subscription_id": "22222222-2222-2222-2222-222222222222",
        "tenant_id": "33333333-3333-3333-3333-333333333333",
        "location": "westeurope",
        "name_prefix": "case42",
        "create_resource_group": True,
        "existing_resource_group_name": None,
        "create_network": True,
        "existing_subnet_id": None,
        "vnet_address_space": ["10.40.0.0/16"],
        "subnet_address_prefix": "10.40.1.0/24",
        "allowed_ip_ranges": ["203.0.113.0/24"],
        "vm_size": "Standard_D4s_v5",
        "admin_username": "analyst",
        "admin_ssh_public_key": "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAITestKey analyst@case42",
        "storage_account_name": "case42evidence",
        "storage_sku": "Standard_ZRS",
        "evidence_retention_days": 365,
        "enable_automation": True,
        "runbook_uri": "https://example.org/runbooks/Invoke-EvidenceCapture.ps1",
    }
