"""Pydantic definition models and typed stack-plan records for crossdeploy."""

from crossdeploy.models.definition import (
    ActionCategory,
    ActionProvider,
    ActionSpec,
    PipelineSpec,
    StageSpec,
    TriggerEvent,
)
from crossdeploy.models.errors import DefinitionError, SourceSpan, ValidationResult
from crossdeploy.models.stack import (
    ArtifactStore,
    IdentityPolicy,
    PipelineDefinition,
    PolicyStatement,
    Responsibility,
    Role,
    StackPlan,
    TriggerRule,
)

__all__ = [
    "ActionCategory",
    "ActionProvider",
    "ActionSpec",
    "ArtifactStore",
    "DefinitionError",
    "IdentityPolicy",
    "PipelineDefinition",
    "PipelineSpec",
    "PolicyStatement",
    "Responsibility",
    "Role",
    "SourceSpan",
    "StackPlan",
    "StageSpec",
    "TriggerEvent",
    "TriggerRule",
    "ValidationResult",
]
