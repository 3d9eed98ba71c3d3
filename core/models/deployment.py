# ============================================================================
# DEPLOYMENT DEFINITION MODEL
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core model - Deployment template/blueprint
# PURPOSE: Define resource nodes, parameters and outputs loaded from YAML
# LAST_REVIEWED: 17 OCT 2026
# EXPORTS: DeploymentDefinition, ResourceNodeDefinition, ParameterDefinition, VariantSpec
# DEPENDENCIES: pydantic
# ============================================================================
"""
Deployment Definition Models

A DeploymentDefinition is the template/blueprint for a provisioning run.
It defines:
- What parameters the run accepts
- What resource nodes exist and their property bags
- Existence conditions and alternate scopes (new vs existing variants)
- Explicit dependencies between nodes
- Top-level outputs exposed to the caller

Implicit dependencies are not declared here: they are discovered from the
{{ nodes.<name>.outputs.<key> }} references inside property values.
"""

import re
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

PARAMETER_TYPES = ("string", "integer", "number", "boolean", "array", "object")


class VariantSpec(BaseModel):
    """
    Marks a node as one alternate scope of a logical capability.

    Example: resource group 'new' and 'existing' variants, selected by
    complementary conditions on the same parameter.
    """
    capability: str = Field(..., max_length=64)
    scope: str = Field(..., max_length=64)


class ResourceNodeDefinition(BaseModel):
    """
    Definition of a single resource node in a deployment.

    This is the TEMPLATE - what to provision.
    NodeState (in node.py) is the INSTANCE - runtime state for one run.
    """
    type: str = Field(
        ...,
        max_length=128,
        description="Resource type tag (e.g., 'Microsoft.Network/virtualNetworks')"
    )
    properties: Dict[str, Any] = Field(
        default_factory=dict,
        description="Property bag with {{ template }} references"
    )
    condition: Optional[str] = Field(
        default=None,
        description="Boolean expression over params; absent means always deployed"
    )
    depends_on: List[str] = Field(
        default_factory=list,
        description="Explicit dependencies (node or capability names)"
    )
    outputs: List[str] = Field(
        default_factory=list,
        description="Output keys the provider publishes for this node"
    )
    variant: Optional[VariantSpec] = None
    timeout_seconds: Optional[int] = Field(default=None, ge=1, le=86400)

    # Documentation
    description: Optional[str] = None

    @field_validator("depends_on", "outputs", mode="before")
    @classmethod
    def handle_string_input(cls, v):
        """Allow single string as shorthand for single-item list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("condition", mode="before")
    @classmethod
    def normalize_condition(cls, v):
        """Accept YAML booleans and strip template braces."""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, str):
            stripped = v.strip()
            if stripped.startswith("{{") and stripped.endswith("}}"):
                stripped = stripped[2:-2].strip()
            return stripped or None
        return v


class ParameterDefinition(BaseModel):
    """Definition of an input parameter for a deployment."""
    type: str = Field(default="string", pattern="^(string|integer|number|boolean|array|object)$")
    required: bool = True
    default: Optional[Any] = None
    allowed_values: Optional[List[Any]] = None
    description: Optional[str] = None

    def has_finite_domain(self) -> bool:
        """Booleans and enumerated parameters can be exhaustively enumerated."""
        return self.type == "boolean" or bool(self.allowed_values)

    def domain(self) -> List[Any]:
        """Every value this parameter may take (finite domains only)."""
        if self.allowed_values:
            return list(self.allowed_values)
        if self.type == "boolean":
            return [True, False]
        raise ValueError("Parameter has no finite domain")


class DeploymentDefinition(BaseModel):
    """
    Complete deployment definition loaded from YAML.

    Immutable once loaded - changes require new version.
    """
    deployment_id: str = Field(..., max_length=64)
    name: str = Field(..., max_length=128)
    version: int = Field(default=1, ge=1)
    description: Optional[str] = None

    # Input schema
    parameters: Dict[str, ParameterDefinition] = Field(default_factory=dict)

    # Node definitions
    nodes: Dict[str, ResourceNodeDefinition] = Field(
        ...,
        description="Map of node name -> ResourceNodeDefinition"
    )

    # Top-level outputs: name -> template expression
    outputs: Dict[str, Any] = Field(default_factory=dict)

    def get_node(self, node_id: str) -> ResourceNodeDefinition:
        """Get a node definition by name."""
        if node_id not in self.nodes:
            raise KeyError(f"Node '{node_id}' not found in deployment '{self.deployment_id}'")
        return self.nodes[node_id]

    def capabilities(self) -> Dict[str, List[str]]:
        """Map capability name -> variant node names, in declaration order."""
        result: Dict[str, List[str]] = {}
        for node_id, node in self.nodes.items():
            if node.variant:
                result.setdefault(node.variant.capability, []).append(node_id)
        return result

    def declared_outputs(self, name: str) -> Optional[List[str]]:
        """Declared output keys of a node or capability, or None if unknown."""
        if name in self.nodes:
            return list(self.nodes[name].outputs)
        variants = self.capabilities().get(name)
        if variants:
            return list(self.nodes[variants[0]].outputs)
        return None

    def is_known(self, name: str) -> bool:
        """Check whether a name is a declared node or capability."""
        return name in self.nodes or name in self.capabilities()

    def validate_structure(self) -> List[str]:
        """
        Validate deployment structure.

        Returns list of validation errors (empty if valid).
        """
        errors = []

        if not self.nodes:
            errors.append("Deployment must declare at least one node")

        for node_id in self.nodes:
            if not NAME_PATTERN.match(node_id):
                errors.append(f"Node name '{node_id}' is not a valid identifier")

        for param in self.parameters:
            if not NAME_PATTERN.match(param):
                errors.append(f"Parameter name '{param}' is not a valid identifier")

        capabilities = self.capabilities()

        # Capability names share the node namespace
        for capability in capabilities:
            if capability in self.nodes:
                errors.append(f"Capability '{capability}' collides with a node of the same name")

        # Explicit dependencies must point to declared names
        for node_id, node in self.nodes.items():
            for dep in node.depends_on:
                if dep == node_id:
                    errors.append(f"Node '{node_id}' depends on itself")
                elif dep not in self.nodes and dep not in capabilities:
                    errors.append(f"Node '{node_id}' depends on unknown node '{dep}'")
                elif node.variant and dep == node.variant.capability:
                    errors.append(f"Node '{node_id}' depends on its own capability '{dep}'")

        # Variants of one capability must be interchangeable
        for capability, variants in capabilities.items():
            if len(variants) < 2:
                errors.append(
                    f"Capability '{capability}' needs at least two variants, found {variants}"
                )
            scopes = [self.nodes[v].variant.scope for v in variants]
            if len(set(scopes)) != len(scopes):
                errors.append(f"Capability '{capability}' has duplicate scopes: {scopes}")
            output_sets = {tuple(sorted(self.nodes[v].outputs)) for v in variants}
            if len(output_sets) > 1:
                errors.append(
                    f"Variants of capability '{capability}' must declare identical outputs"
                )
            for v in variants:
                if not self.nodes[v].condition:
                    errors.append(
                        f"Variant '{v}' of capability '{capability}' must declare a condition"
                    )

        # Parameter defaults must respect allowed values
        for name, param in self.parameters.items():
            if param.allowed_values and param.default is not None:
                if param.default not in param.allowed_values:
                    errors.append(
                        f"Default for parameter '{name}' is not in allowed_values"
                    )

        return errors


__all__ = [
    "DeploymentDefinition",
    "ResourceNodeDefinition",
    "ParameterDefinition",
    "VariantSpec",
    "NAME_PATTERN",
    "PARAMETER_TYPES",
]
