# ============================================================================
# PARAMETER SERVICE
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Service - Parameter loading and validation
# PURPOSE: Build the immutable parameter set a run is planned against
# CREATED: 17 OCT 2026
# ============================================================================
"""
Parameter Service

Builds the parameter set from three sources, later ones winning:

1. Parameter files (YAML or JSON). Either a flat mapping or the ARM
   parameter-file shape {"parameters": {"name": {"value": ...}}}.
2. --set key=value overrides (values parsed as YAML scalars)
3. Environment-provided identifiers: FCP_PARAM_SUBSCRIPTION_ID becomes
   subscription_id. These are read-only; a file or override that sets a
   different value is rejected.

The result is validated against the deployment's declared parameters and
returned as a read-only mapping. Policy values (retention days, allowed
IP ranges, SKUs) have no defaults here; they come from the caller.
"""

import json
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml

from core.config import get_defaults
from core.errors import ParameterValidationError
from core.logging import get_logger, ComponentType
from core.models import DeploymentDefinition, ParameterDefinition

logger = get_logger(__name__, ComponentType.SERVICE)

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


class ParameterService:
    """Loads, merges and validates deployment parameters."""

    def __init__(self, env_prefix: Optional[str] = None):
        self.env_prefix = env_prefix or get_defaults().loader.env_param_prefix

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def load_file(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a parameter file.

        Raises:
            ParameterValidationError: Unreadable or malformed file
        """
        path = Path(path)
        try:
            with open(path) as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ParameterValidationError([f"Cannot read parameter file {path}: {e}"]) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ParameterValidationError([f"Parameter file {path} must contain a mapping"])

        # ARM parameter file shape
        if isinstance(data.get("parameters"), dict) and all(
            isinstance(v, dict) and "value" in v for v in data["parameters"].values()
        ):
            return {name: entry["value"] for name, entry in data["parameters"].items()}

        return {k: v for k, v in data.items() if not k.startswith("$")}

    def parse_overrides(self, assignments: Iterable[str]) -> Dict[str, str]:
        """
        Parse key=value overrides.

        Values are kept as text and typed against the declared parameter.

        Raises:
            ParameterValidationError: On entries without '='
        """
        result: Dict[str, str] = {}
        problems: List[str] = []
        for assignment in assignments or ():
            key, sep, value = assignment.partition("=")
            key = key.strip()
            if not sep or not key:
                problems.append(f"Override '{assignment}' must look like key=value")
                continue
            result[key] = value
        if problems:
            raise ParameterValidationError(problems)
        return result

    def from_environment(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Collect FCP_PARAM_<NAME> variables as <name> parameters."""
        environ = os.environ if environ is None else environ
        prefix = self.env_prefix
        return {
            key[len(prefix):].lower(): value
            for key, value in environ.items()
            if key.startswith(prefix) and len(key) > len(prefix)
        }

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        definition: DeploymentDefinition,
        values: Optional[Mapping[str, Any]] = None,
        overrides: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Mapping[str, Any]:
        """
        Build the validated, read-only parameter set for a deployment.

        Args:
            definition: Deployment declaring the parameters
            values: Typed values (e.g. from load_file)
            overrides: Text values from --set
            environ: Environment (os.environ if None)

        Returns:
            Read-only mapping with every declared parameter present
            (None for optional parameters without a default)

        Raises:
            ParameterValidationError: All problems found
        """
        declared = definition.parameters
        problems: List[str] = []
        merged: Dict[str, Any] = dict(values or {})

        for name, text in (overrides or {}).items():
            merged[name] = self._coerce(text, declared.get(name))

        injected = self.from_environment(environ)
        for name, text in injected.items():
            value = self._coerce(text, declared.get(name))
            if name in merged and merged[name] != value:
                problems.append(f"Parameter '{name}' is environment-provided and read-only")
            merged[name] = value

        for name in sorted(merged):
            if name not in declared and name not in injected:
                problems.append(f"Unknown parameter '{name}'")

        result: Dict[str, Any] = {}
        for name, param in declared.items():
            if name in merged:
                value = merged[name]
            elif param.default is not None:
                value = param.default
            elif param.required:
                problems.append(f"Missing required parameter '{name}'")
                continue
            else:
                value = None

            if value is not None:
                problems.extend(self._check(name, value, param))
            elif param.required:
                problems.append(f"Required parameter '{name}' must not be null")
            result[name] = value

        for name, value in merged.items():
            if name not in declared and name in injected:
                result[name] = value

        if problems:
            raise ParameterValidationError(problems)

        if injected:
            logger.debug(f"Injected environment parameters: {sorted(injected)}")
        return MappingProxyType(result)

    @staticmethod
    def _coerce(text: Any, param: Optional[ParameterDefinition]) -> Any:
        """Type a text value according to its declared parameter."""
        if not isinstance(text, str) or param is None or param.type == "string":
            return text
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError:
            return text

    @staticmethod
    def _check(name: str, value: Any, param: ParameterDefinition) -> List[str]:
        problems = []
        if not _TYPE_CHECKS[param.type](value):
            problems.append(
                f"Parameter '{name}' must be of type {param.type}, got {type(value).__name__}"
            )
        elif param.allowed_values and value not in param.allowed_values:
            problems.append(
                f"Parameter '{name}' value {value!r} is not one of {param.allowed_values}"
            )
        return problems


__all__ = ["ParameterService"]
