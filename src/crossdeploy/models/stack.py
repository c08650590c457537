"""Stack plan: typed configuration records for every resource the template declares.

Values may be plain scalars or intrinsic nodes (see ``crossdeploy.intrinsics``);
they are only resolved to concrete strings at (simulated) deploy time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from crossdeploy.intrinsics.nodes import GetAtt

Value = Any

# -- Parameter names ---------------------------------------------------------

TARGET_ACCOUNT_ID = "TargetAccountID"
ASSUME_ROLE_NAME = "CodePipelineAssumeRoleName"
EXECUTION_ROLE_NAME = "CFExecutionRoleName"
REPOSITORY_NAME = "CodeCommitRepoName"
REPOSITORY_BRANCH = "CodeCommitRepoBranch"
DEPLOYMENT_ENVIRONMENT = "DeploymentEnvironment"

# -- Logical resource ids ----------------------------------------------------

REPOSITORY_ID = "CodeCommitRepo"
BUILD_PROJECT_ID = "CodeDeploy"
PIPELINE_ID = "CodePipeline"
TRIGGER_RULE_ID = "CodeCheckinCloudWatchEvent"
KEY_ID = "CodePipelineKMSKey"
KEY_ALIAS_ID = "CodePipelineKMSAlias"
BUCKET_ID = "CodePipelineS3Bucket"
BUCKET_POLICY_ID = "CodePipelineS3BucketPolicy"
BUILD_ROLE_ID = "CodeBuildRole"
BUILD_POLICY_ID = "CodeBuildPolicy"
PIPELINE_ROLE_ID = "CodePipelineRole"
PIPELINE_POLICY_ID = "CodePipelinePolicy"
TRIGGER_ROLE_ID = "CloudWatchPipelineTriggerRole"


class Responsibility(StrEnum):
    """The single job an identity exists for."""

    BUILD = "build"
    ORCHESTRATE = "orchestrate"
    TRIGGER = "trigger"


@dataclass
class Parameter:
    """A stack-level input parameter with its constraints."""

    name: str
    description: str
    type: str = "String"
    default: str | None = None
    allowed_values: list[str] = field(default_factory=list)
    allowed_pattern: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    constraint_description: str | None = None


@dataclass
class SourceRepository:
    """The watched source repository."""

    resource_type: ClassVar[str] = "AWS::CodeCommit::Repository"

    logical_id: str
    name: Value
    description: str


@dataclass
class EnvironmentVariable:
    name: str
    value: Value
    type: str = "PLAINTEXT"


@dataclass
class BuildProject:
    """The isolated, single-use build runner."""

    resource_type: ClassVar[str] = "AWS::CodeBuild::Project"

    logical_id: str
    name: Value
    service_role: Value
    image: str
    compute_type: str
    environment_type: str
    environment_variables: list[EnvironmentVariable] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)

    def variable(self, name: str) -> Value:
        for var in self.environment_variables:
            if var.name == name:
                return var.value
        raise KeyError(f"Build project has no environment variable '{name}'")


@dataclass
class ActionTypeId:
    category: str
    provider: str
    owner: str = "AWS"
    version: str = "1"


@dataclass
class Action:
    """A step inside a stage, executed in run-order sequence."""

    name: str
    action_type: ActionTypeId
    run_order: int
    input_artifacts: list[str] = field(default_factory=list)
    output_artifacts: list[str] = field(default_factory=list)
    configuration: dict[str, Value] = field(default_factory=dict)


@dataclass
class Stage:
    name: str
    actions: list[Action] = field(default_factory=list)


@dataclass
class PipelineDefinition:
    """The orchestrator: an ordered sequence of stages."""

    resource_type: ClassVar[str] = "AWS::CodePipeline::Pipeline"

    logical_id: str
    name: Value
    role_arn: Value
    artifact_bucket: Value
    restart_execution_on_update: bool
    stages: list[Stage] = field(default_factory=list)

    def stage(self, name: str) -> Stage:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(f"Pipeline has no stage '{name}'")

    def produced_artifacts(self) -> list[str]:
        return [a for s in self.stages for act in s.actions for a in act.output_artifacts]


@dataclass
class EventPattern:
    """Event-pattern predicate of a trigger rule."""

    source: list[str]
    detail_type: list[str]
    resources: list[Value]
    events: list[str]
    reference_types: list[str]
    reference_names: list[Value]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": list(self.source),
            "detail-type": list(self.detail_type),
            "resources": list(self.resources),
            "detail": {
                "event": list(self.events),
                "referenceType": list(self.reference_types),
                "referenceName": list(self.reference_names),
            },
        }


@dataclass
class RuleTarget:
    arn: Value
    id: Value
    role_arn: Value


@dataclass
class TriggerRule:
    """Event-pattern matcher that starts the pipeline."""

    resource_type: ClassVar[str] = "AWS::Events::Rule"

    logical_id: str
    name: Value
    description: str
    pattern: EventPattern
    targets: list[RuleTarget] = field(default_factory=list)
    enabled: bool = True

    @property
    def state(self) -> str:
        return "ENABLED" if self.enabled else "DISABLED"


@dataclass
class PolicyStatement:
    actions: list[str]
    resources: list[Value]
    effect: str = "Allow"
    sid: str | None = None
    principals: dict[str, list[Value]] = field(default_factory=dict)
    conditions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        if self.sid:
            doc["Sid"] = self.sid
        doc["Effect"] = self.effect
        if self.principals:
            doc["Principal"] = {k: list(v) for k, v in self.principals.items()}
        doc["Action"] = list(self.actions)
        if self.resources:
            doc["Resource"] = list(self.resources)
        if self.conditions:
            doc["Condition"] = self.conditions
        return doc


@dataclass
class PolicyDocument:
    statements: list[PolicyStatement] = field(default_factory=list)
    version: str = "2012-10-17"
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"Version": self.version}
        if self.id:
            doc["Id"] = self.id
        doc["Statement"] = [s.to_dict() for s in self.statements]
        return doc

    def statement(self, sid: str) -> PolicyStatement:
        for stmt in self.statements:
            if stmt.sid == sid:
                return stmt
        raise KeyError(f"Policy has no statement '{sid}'")


@dataclass
class IdentityPolicy:
    """An identity policy; managed policies are standalone resources attached to roles."""

    resource_type: ClassVar[str] = "AWS::IAM::ManagedPolicy"

    name: str
    document: PolicyDocument
    description: str | None = None
    logical_id: str | None = None
    roles: list[str] = field(default_factory=list)

    @property
    def managed(self) -> bool:
        return self.logical_id is not None


@dataclass
class Role:
    """An IAM role assumable by exactly one service principal."""

    resource_type: ClassVar[str] = "AWS::IAM::Role"

    logical_id: str
    role_name: str
    service_principal: str
    responsibility: Responsibility
    inline_policies: list[IdentityPolicy] = field(default_factory=list)

    def trust_document(self) -> PolicyDocument:
        return PolicyDocument(
            statements=[
                PolicyStatement(
                    actions=["sts:AssumeRole"],
                    resources=[],
                    principals={"Service": [self.service_principal]},
                )
            ]
        )

    @property
    def arn(self) -> GetAtt:
        return GetAtt(self.logical_id, "Arn")


@dataclass
class EncryptionKey:
    """Customer-managed key encrypting every artifact."""

    resource_type: ClassVar[str] = "AWS::KMS::Key"

    logical_id: str
    description: str
    key_policy: PolicyDocument
    alias_logical_id: str
    alias_name: Value
    enable_rotation: bool = True
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def arn(self) -> GetAtt:
        return GetAtt(self.logical_id, "Arn")


@dataclass
class LifecycleRule:
    id: str
    noncurrent_version_expiration_days: int
    prefix: str = ""
    status: str = "Enabled"


@dataclass
class ArtifactStore:
    """Versioned, encrypted bucket holding inter-stage artifacts."""

    resource_type: ClassVar[str] = "AWS::S3::Bucket"

    logical_id: str
    bucket_name: Value
    key: EncryptionKey
    policy_logical_id: str
    bucket_policy: PolicyDocument
    versioning: bool = True
    lifecycle_rules: list[LifecycleRule] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def encryption_key(self) -> GetAtt:
        """The key referenced by the bucket's default encryption."""
        return self.key.arn

    @property
    def retention_days(self) -> int:
        enabled = [r for r in self.lifecycle_rules if r.status == "Enabled"]
        return min(r.noncurrent_version_expiration_days for r in enabled) if enabled else 0


@dataclass
class StackOutput:
    name: str
    value: Value
    description: str | None = None
    export_name: str | None = None


@dataclass
class StackPlan:
    """Everything one template declares, keyed by CloudFormation logical id."""

    name: str
    description: str
    parameters: dict[str, Parameter]
    repository: SourceRepository
    build_project: BuildProject
    pipeline: PipelineDefinition
    trigger_rules: list[TriggerRule]
    roles: dict[str, Role]
    managed_policies: list[IdentityPolicy]
    artifact_store: ArtifactStore
    outputs: list[StackOutput] = field(default_factory=list)

    def resource_types(self) -> dict[str, str]:
        """Logical id → resource type for every declared resource."""
        types: dict[str, str] = {
            self.repository.logical_id: SourceRepository.resource_type,
            self.build_project.logical_id: BuildProject.resource_type,
            self.pipeline.logical_id: PipelineDefinition.resource_type,
        }
        for rule in self.trigger_rules:
            types[rule.logical_id] = TriggerRule.resource_type
        key = self.artifact_store.key
        types[key.logical_id] = EncryptionKey.resource_type
        types[key.alias_logical_id] = "AWS::KMS::Alias"
        types[self.artifact_store.logical_id] = ArtifactStore.resource_type
        types[self.artifact_store.policy_logical_id] = "AWS::S3::BucketPolicy"
        for role in self.roles.values():
            types[role.logical_id] = Role.resource_type
        for policy in self.managed_policies:
            if policy.logical_id:
                types[policy.logical_id] = IdentityPolicy.resource_type
        return types

    def physical_names(self) -> dict[str, Value]:
        """Logical id → the value that names the physical resource (``None`` = generated)."""
        store = self.artifact_store
        names: dict[str, Value] = {
            self.repository.logical_id: self.repository.name,
            self.build_project.logical_id: self.build_project.name,
            self.pipeline.logical_id: self.pipeline.name,
            store.key.logical_id: None,
            store.key.alias_logical_id: store.key.alias_name,
            store.logical_id: store.bucket_name,
            store.policy_logical_id: None,
        }
        for rule in self.trigger_rules:
            names[rule.logical_id] = rule.name
        for role in self.roles.values():
            names[role.logical_id] = role.role_name
        for policy in self.managed_policies:
            if policy.logical_id:
                names[policy.logical_id] = policy.name
        return names

    def identity_policies(self) -> list[tuple[Role, IdentityPolicy]]:
        """Every (role, policy) pair in force: inline policies and attached managed ones."""
        pairs: list[tuple[Role, IdentityPolicy]] = []
        for role in self.roles.values():
            pairs.extend((role, p) for p in role.inline_policies)
        for policy in self.managed_policies:
            for role_id in policy.roles:
                if role_id in self.roles:
                    pairs.append((self.roles[role_id], policy))
        return pairs

    def policies_for(self, role_id: str) -> list[IdentityPolicy]:
        return [p for r, p in self.identity_policies() if r.logical_id == role_id]

    def enabled_rules(self) -> list[TriggerRule]:
        return [r for r in self.trigger_rules if r.enabled]
