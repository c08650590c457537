"""Local execution simulator for deployed pipeline stacks."""

from crossdeploy.runtime.access import AccessDeniedError, PolicyEngine
from crossdeploy.runtime.artifacts import (
    ArtifactEncryptionError,
    ArtifactNotFoundError,
    VersionedArtifactStore,
)
from crossdeploy.runtime.build import BuildEnvironment, BuildResult, BuildRunner
from crossdeploy.runtime.deployment import LocalDeployment, deploy_locally
from crossdeploy.runtime.events import EventRouter, RepositoryEvent, pattern_matches
from crossdeploy.runtime.orchestrator import (
    ExecutionStateError,
    ExecutionStatus,
    Orchestrator,
    PipelineExecution,
)
from crossdeploy.runtime.stack import DeployedStack, evaluate_stack

__all__ = [
    "AccessDeniedError",
    "ArtifactEncryptionError",
    "ArtifactNotFoundError",
    "BuildEnvironment",
    "BuildResult",
    "BuildRunner",
    "DeployedStack",
    "EventRouter",
    "ExecutionStateError",
    "ExecutionStatus",
    "LocalDeployment",
    "Orchestrator",
    "PipelineExecution",
    "PolicyEngine",
    "RepositoryEvent",
    "VersionedArtifactStore",
    "deploy_locally",
    "evaluate_stack",
    "pattern_matches",
]
