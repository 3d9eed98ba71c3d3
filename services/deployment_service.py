# ============================================================================
# DEPLOYMENT SERVICE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Service - Deployment definition management
# PURPOSE: Load and cache deployment definitions from YAML
# CREATED: 17 OCT 2026
# ============================================================================
"""
Deployment Service

Loads deployment definitions from YAML files and provides lookup
capabilities. Caches loaded deployments by deployment_id.

Deployment files are stored in the deployments/ directory.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from core.config import get_defaults
from core.errors import DefinitionValidationError
from core.logging import get_logger, ComponentType
from core.models import DeploymentDefinition

logger = get_logger(__name__, ComponentType.SERVICE)


class DeploymentService:
    """Service for loading and managing deployment definitions."""

    def __init__(self, deployments_dir: Optional[Union[str, Path]] = None):
        """
        Initialize deployment service.

        Args:
            deployments_dir: Directory containing deployment YAML files.
                             Defaults to FCP_DEPLOYMENTS_DIR, then ./deployments/
        """
        if deployments_dir:
            self.deployments_dir = Path(deployments_dir)
        else:
            configured = Path(get_defaults().loader.deployments_dir)
            if configured.is_absolute() or configured.exists():
                self.deployments_dir = configured
            else:
                self.deployments_dir = Path(__file__).parent.parent / configured

        self._cache: Dict[str, DeploymentDefinition] = {}
        self._sources: Dict[str, Path] = {}
        self._loaded = False

    def load_all(self) -> int:
        """
        Load all deployment definitions from the deployments directory.

        Invalid files are logged and skipped.

        Returns:
            Number of deployments loaded
        """
        if not self.deployments_dir.exists():
            logger.warning(f"Deployments directory not found: {self.deployments_dir}")
            return 0

        count = 0
        files = sorted(self.deployments_dir.glob("*.yaml")) + sorted(self.deployments_dir.glob("*.yml"))
        for yaml_file in files:
            try:
                deployment = self.load_file(yaml_file)
            except DefinitionValidationError as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue
            self._cache[deployment.deployment_id] = deployment
            self._sources[deployment.deployment_id] = yaml_file
            count += 1
            logger.info(f"Loaded deployment: {deployment.deployment_id} v{deployment.version}")

        self._loaded = True
        logger.info(f"Loaded {count} deployments from {self.deployments_dir}")
        return count

    def get(self, deployment_id: str) -> Optional[DeploymentDefinition]:
        """
        Get a deployment definition by ID.

        Returns:
            DeploymentDefinition or None if not found
        """
        if not self._loaded:
            self.load_all()

        return self._cache.get(deployment_id)

    def get_or_raise(self, deployment_id: str) -> DeploymentDefinition:
        """
        Get a deployment definition, raising if not found.

        Raises:
            KeyError if deployment not found
        """
        deployment = self.get(deployment_id)
        if deployment is None:
            raise KeyError(f"Deployment not found: {deployment_id}")
        return deployment

    def list_all(self) -> List[DeploymentDefinition]:
        """List all loaded deployments, sorted by ID."""
        if not self._loaded:
            self.load_all()

        return [self._cache[k] for k in sorted(self._cache)]

    def source_of(self, deployment_id: str) -> Optional[Path]:
        """File a deployment was loaded from (None if registered in code)."""
        return self._sources.get(deployment_id)

    def register(self, deployment: DeploymentDefinition) -> None:
        """
        Register a deployment definition (for testing or programmatic use).

        Raises:
            DefinitionValidationError: If the definition is structurally invalid
        """
        errors = deployment.validate_structure()
        if errors:
            raise DefinitionValidationError(errors, source=deployment.deployment_id)

        self._cache[deployment.deployment_id] = deployment
        logger.info(f"Registered deployment: {deployment.deployment_id}")

    def load_file(self, path: Union[str, Path]) -> DeploymentDefinition:
        """
        Load a deployment from a YAML file.

        Raises:
            DefinitionValidationError: Unreadable YAML, schema errors or
                structural errors
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise DefinitionValidationError([str(e)], source=str(path)) from e

        if not isinstance(data, dict):
            raise DefinitionValidationError(["Top level must be a mapping"], source=str(path))

        try:
            deployment = DeploymentDefinition(**data)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise DefinitionValidationError(problems, source=str(path)) from e

        errors = deployment.validate_structure()
        if errors:
            raise DefinitionValidationError(errors, source=str(path))

        return deployment

    def resolve(self, reference: str) -> DeploymentDefinition:
        """
        Get a deployment by ID or by YAML file path.

        Raises:
            KeyError: Unknown ID
            DefinitionValidationError: Invalid file
        """
        if reference.endswith((".yaml", ".yml")) or Path(reference).is_file():
            deployment = self.load_file(reference)
            self._cache[deployment.deployment_id] = deployment
            self._sources[deployment.deployment_id] = Path(reference)
            return deployment
        return self.get_or_raise(reference)

    def reload(self) -> int:
        """
        Reload all deployments from disk.

        Returns:
            Number of deployments loaded
        """
        self._cache.clear()
        self._sources.clear()
        self._loaded = False
        return self.load_all()


__all__ = ["DeploymentService"]
