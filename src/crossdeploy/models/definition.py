"""Pipeline definition document: the YAML input describing one cross-account pipeline."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class ActionProvider(StrEnum):
    CODECOMMIT = "CodeCommit"
    CODEBUILD = "CodeBuild"

    @property
    def category(self) -> ActionCategory:
        return _PROVIDER_CATEGORIES[self]


class ActionCategory(StrEnum):
    SOURCE = "Source"
    BUILD = "Build"


_PROVIDER_CATEGORIES: dict[ActionProvider, ActionCategory] = {
    ActionProvider.CODECOMMIT: ActionCategory.SOURCE,
    ActionProvider.CODEBUILD: ActionCategory.BUILD,
}


class TriggerEvent(StrEnum):
    REFERENCE_CREATED = "referenceCreated"
    REFERENCE_UPDATED = "referenceUpdated"
    REFERENCE_DELETED = "referenceDeleted"


DEFAULT_TAGS: dict[str, str] = {
    "category": "goldmine",
    "project_name": "serverless-cross-account-deployment",
}


class SourceConfig(BaseModel):
    """Source repository and the branches a pipeline may watch."""

    repository: str = "my-serverless-api"
    description: str = "Repo for Serverless Lambda API"
    branches: list[str] = ["develop", "release", "master"]
    default_branch: str = Field("master", alias="defaultBranch")

    model_config = {"populate_by_name": True}


class TargetConfig(BaseModel):
    """Deployment target: role names assumed in the target account and environment tags."""

    assume_role: str = Field("cross-account-role-serverless-deployment", alias="assumeRole")
    execution_role: str = Field("cf-execution-role-serverless", alias="executionRole")
    environments: list[str] = ["DEV", "STAGE", "PROD"]
    default_environment: str = Field("DEV", alias="defaultEnvironment")

    model_config = {"populate_by_name": True}


class BuildConfig(BaseModel):
    """Container settings of the build runner."""

    image: str = "aws/codebuild/amazonlinux2-x86_64-standard:3.0"
    compute_type: str = Field("BUILD_GENERAL1_SMALL", alias="computeType")
    environment_type: str = Field("LINUX_CONTAINER", alias="environmentType")

    model_config = {"populate_by_name": True}


class ArtifactStoreConfig(BaseModel):
    """Encrypted, versioned bucket holding inter-stage artifacts."""

    bucket_prefix: str = Field("serverless-codepipeline-bucket", alias="bucketPrefix")
    key_alias: str = Field("serverless-codepipeline-key", alias="keyAlias")
    noncurrent_version_expiration_days: int = Field(8, alias="noncurrentVersionExpirationDays")

    model_config = {"populate_by_name": True}


class ActionSpec(BaseModel):
    """One action inside a stage."""

    name: str
    provider: ActionProvider
    run_order: int = Field(1, alias="runOrder")
    input_artifacts: list[str] = Field(default=[], alias="inputArtifacts")
    output_artifacts: list[str] = Field(default=[], alias="outputArtifacts")

    model_config = {"populate_by_name": True}


class StageSpec(BaseModel):
    """A named stage: an ordered list of actions."""

    name: str
    actions: list[ActionSpec] = []

    model_config = {"populate_by_name": True}


def _default_stages() -> list[StageSpec]:
    return [
        StageSpec(
            name="Source",
            actions=[
                ActionSpec(
                    name="Source",
                    provider=ActionProvider.CODECOMMIT,
                    run_order=10,
                    output_artifacts=["SourceArtifact"],
                )
            ],
        ),
        StageSpec(
            name="Deploy",
            actions=[
                ActionSpec(
                    name="Deploy-Lambda",
                    provider=ActionProvider.CODEBUILD,
                    run_order=20,
                    input_artifacts=["SourceArtifact"],
                    output_artifacts=["DeployArtifact"],
                )
            ],
        ),
    ]


class PipelineConfig(BaseModel):
    """Stage layout of the orchestrator."""

    restart_execution_on_update: bool = Field(True, alias="restartExecutionOnUpdate")
    stages: list[StageSpec] = Field(default_factory=_default_stages)

    model_config = {"populate_by_name": True}


class TriggerConfig(BaseModel):
    """Which repository events start the pipeline."""

    events: list[TriggerEvent] = [
        TriggerEvent.REFERENCE_CREATED,
        TriggerEvent.REFERENCE_UPDATED,
    ]

    model_config = {"populate_by_name": True}


class ExportNames(BaseModel):
    """Export-name overrides for stack outputs (``None`` = ``<name>-<Output>``)."""

    pipeline_name: str | None = Field(None, alias="pipelineName")
    pipeline_url: str | None = Field(None, alias="pipelineUrl")
    repository_arn: str | None = Field("my-serverless-lambda-api-repo-arn", alias="repositoryArn")
    repository_url: str | None = Field("my-serverless-lambda-api-repo-url", alias="repositoryUrl")

    model_config = {"populate_by_name": True}


class PipelineSpec(BaseModel):
    """Complete pipeline definition parsed from YAML."""

    version: float = 1.0
    name: str = "Serverless"
    description: str = (
        "The AWS CloudFormation template for building a CICD pipeline "
        "for cross account deployment to S3 bucket."
    )
    tags: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_TAGS))
    source: SourceConfig = Field(default_factory=SourceConfig)
    target: TargetConfig = Field(default_factory=TargetConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    artifact_store: ArtifactStoreConfig = Field(
        default_factory=ArtifactStoreConfig, alias="artifactStore"
    )
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    exports: ExportNames = Field(default_factory=ExportNames)

    model_config = {"populate_by_name": True}

    def iter_actions(self) -> list[tuple[StageSpec, ActionSpec]]:
        """All actions in execution order, paired with their stage."""
        return [(stage, action) for stage in self.pipeline.stages for action in stage.actions]
