# ============================================================================
# CONFIGURATION TESTS
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Tests - Defaults and environment overrides
# PURPOSE: Verify FCP_* variables reach the engine and loaders
# CREATED: 17 OCT 2026
# ============================================================================
"""
Configuration Tests

Run with:
    pytest tests/test_config.py -v
"""

import dataclasses

import pytest

from core.config import ApplyDefaults, get_defaults, reset_defaults
from orchestrator.engine import ApplyEngine
from providers import InMemoryProvider
from services import DeploymentService, ParameterService


class TestDefaults:

    def test_builtin_values(self):
        defaults = get_defaults()
        assert defaults.apply.max_concurrency == 8
        assert defaults.apply.apply_timeout_seconds == 1800
        assert defaults.loader.env_param_prefix == "FCP_PARAM_"

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            ApplyDefaults().max_concurrency = 2

    def test_cached_until_reset(self, monkeypatch):
        first = get_defaults()
        monkeypatch.setenv("FCP_MAX_CONCURRENCY", "3")
        assert get_defaults() is first

        reset_defaults()
        assert get_defaults().apply.max_concurrency == 3


class TestEnvironmentOverrides:

    def test_engine_uses_configured_limits(self, monkeypatch):
        monkeypatch.setenv("FCP_MAX_CONCURRENCY", "2")
        monkeypatch.setenv("FCP_APPLY_TIMEOUT_SECONDS", "45")
        reset_defaults()

        engine = ApplyEngine(InMemoryProvider())

        assert engine.max_concurrency == 2
        assert engine.apply_timeout_seconds == 45

    def test_explicit_arguments_win(self, monkeypatch):
        monkeypatch.setenv("FCP_MAX_CONCURRENCY", "2")
        reset_defaults()

        assert ApplyEngine(InMemoryProvider(), max_concurrency=5).max_concurrency == 5

    def test_deployments_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FCP_DEPLOYMENTS_DIR", str(tmp_path))
        reset_defaults()

        assert DeploymentService().deployments_dir == tmp_path

    def test_env_param_prefix(self, monkeypatch):
        monkeypatch.setenv("FCP_ENV_PARAM_PREFIX", "CASE_")
        reset_defaults()

        service = ParameterService()
        assert service.from_environment({"CASE_TENANT_ID": "t-1", "FCP_PARAM_X": "y"}) == {
            "tenant_id": "t-1"
        }
