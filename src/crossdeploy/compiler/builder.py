"""Definition → stack plan: declares every resource, parameter and output."""

from __future__ import annotations

from crossdeploy.compiler.access import AccessPlanner
from crossdeploy.intrinsics.nodes import (
    AWS_ACCOUNT_ID,
    AWS_REGION,
    GetAtt,
    Join,
    Ref,
    Sub,
    cross_account_role_arn,
    join,
    sanitized_branch,
)
from crossdeploy.models.definition import ActionProvider, ActionSpec, PipelineSpec
from crossdeploy.models.stack import (
    ASSUME_ROLE_NAME,
    BUCKET_ID,
    BUCKET_POLICY_ID,
    BUILD_PROJECT_ID,
    BUILD_ROLE_ID,
    DEPLOYMENT_ENVIRONMENT,
    EXECUTION_ROLE_NAME,
    KEY_ALIAS_ID,
    KEY_ID,
    PIPELINE_ID,
    PIPELINE_ROLE_ID,
    REPOSITORY_BRANCH,
    REPOSITORY_ID,
    REPOSITORY_NAME,
    TARGET_ACCOUNT_ID,
    TRIGGER_ROLE_ID,
    TRIGGER_RULE_ID,
    Action,
    ActionTypeId,
    ArtifactStore,
    BuildProject,
    EncryptionKey,
    EnvironmentVariable,
    EventPattern,
    LifecycleRule,
    Parameter,
    PipelineDefinition,
    RuleTarget,
    SourceRepository,
    StackOutput,
    StackPlan,
    Stage,
    TriggerRule,
)

REPOSITORY_EVENT_SOURCE = "aws.codecommit"
REPOSITORY_EVENT_DETAIL_TYPE = "CodeCommit Repository State Change"


class StackBuilder:
    """Builds the :class:`StackPlan` for one validated pipeline definition."""

    def build(self, spec: PipelineSpec) -> StackPlan:
        access = AccessPlanner(spec.name)
        return StackPlan(
            name=spec.name,
            description=spec.description,
            parameters=self._parameters(spec),
            repository=SourceRepository(
                logical_id=REPOSITORY_ID,
                name=Ref(REPOSITORY_NAME),
                description=spec.source.description,
            ),
            build_project=self._build_project(spec),
            pipeline=self._pipeline(spec),
            trigger_rules=[self._trigger_rule(spec)],
            roles=access.roles(),
            managed_policies=access.managed_policies(),
            artifact_store=self._artifact_store(spec, access),
            outputs=self._outputs(spec),
        )

    # -- parameters ----------------------------------------------------------

    def _parameters(self, spec: PipelineSpec) -> dict[str, Parameter]:
        params = [
            Parameter(
                name=TARGET_ACCOUNT_ID,
                description="Account ID of the target account where the deployment will happen.",
                allowed_pattern=r"\d{12}",
                min_length=12,
                max_length=12,
                constraint_description="Must be a valid AWS Account ID without hyphens.",
            ),
            Parameter(
                name=ASSUME_ROLE_NAME,
                description=(
                    "Cross Account Role to be assumed by code pipeline to carry out deployment"
                ),
                default=spec.target.assume_role,
            ),
            Parameter(
                name=EXECUTION_ROLE_NAME,
                description=(
                    "Cross Account Role to be assumed by Cloudformation Service "
                    "to create serverless resources"
                ),
                default=spec.target.execution_role,
            ),
            Parameter(
                name=REPOSITORY_NAME,
                description="Enter the name of code commit repo.",
                default=spec.source.repository,
            ),
            Parameter(
                name=REPOSITORY_BRANCH,
                description="Enter the branch name of code commit repo.",
                default=spec.source.default_branch,
                allowed_values=list(spec.source.branches),
            ),
            Parameter(
                name=DEPLOYMENT_ENVIRONMENT,
                description="Select name of the environment to which the pipeline is deploying.",
                default=spec.target.default_environment,
                allowed_values=list(spec.target.environments),
            ),
        ]
        return {p.name: p for p in params}

    # -- build runner --------------------------------------------------------

    def _build_project(self, spec: PipelineSpec) -> BuildProject:
        return BuildProject(
            logical_id=BUILD_PROJECT_ID,
            name=_branch_scoped_name(f"{spec.name}-CodeBuild-Deploy"),
            service_role=GetAtt(BUILD_ROLE_ID, "Arn"),
            image=spec.build.image,
            compute_type=spec.build.compute_type,
            environment_type=spec.build.environment_type,
            environment_variables=[
                EnvironmentVariable(
                    "CROSS_ACCOUNT_ROLE",
                    cross_account_role_arn(TARGET_ACCOUNT_ID, ASSUME_ROLE_NAME),
                ),
                EnvironmentVariable(
                    "CF_EXECUTION_ROLE",
                    cross_account_role_arn(TARGET_ACCOUNT_ID, EXECUTION_ROLE_NAME),
                ),
                EnvironmentVariable("TARGET_ACCOUNT_ID", Ref(TARGET_ACCOUNT_ID)),
                EnvironmentVariable("STAGE", Ref(DEPLOYMENT_ENVIRONMENT)),
            ],
            tags=dict(spec.tags),
        )

    # -- orchestrator --------------------------------------------------------

    def _pipeline(self, spec: PipelineSpec) -> PipelineDefinition:
        stages = [
            Stage(name=stage.name, actions=[self._action(a) for a in stage.actions])
            for stage in spec.pipeline.stages
        ]
        return PipelineDefinition(
            logical_id=PIPELINE_ID,
            name=_branch_scoped_name(f"{spec.name}-CodePipeline"),
            role_arn=GetAtt(PIPELINE_ROLE_ID, "Arn"),
            artifact_bucket=Ref(BUCKET_ID),
            restart_execution_on_update=spec.pipeline.restart_execution_on_update,
            stages=stages,
        )

    @staticmethod
    def _action(action: ActionSpec) -> Action:
        if action.provider == ActionProvider.CODECOMMIT:
            configuration = {
                "BranchName": Ref(REPOSITORY_BRANCH),
                "PollForSourceChanges": False,
                "RepositoryName": GetAtt(REPOSITORY_ID, "Name"),
            }
        else:
            configuration = {"ProjectName": Ref(BUILD_PROJECT_ID)}
        return Action(
            name=action.name,
            action_type=ActionTypeId(
                category=action.provider.category.value,
                provider=action.provider.value,
            ),
            run_order=action.run_order,
            input_artifacts=list(action.input_artifacts),
            output_artifacts=list(action.output_artifacts),
            configuration=configuration,
        )

    # -- trigger -------------------------------------------------------------

    def _trigger_rule(self, spec: PipelineSpec) -> TriggerRule:
        return TriggerRule(
            logical_id=TRIGGER_RULE_ID,
            name=_branch_scoped_name(f"{spec.name}-CodePipeline"),
            description=(
                "CloudWatch event rule to trigger CICD pipeline upon code check "
                "into code commit repo"
            ),
            pattern=EventPattern(
                source=[REPOSITORY_EVENT_SOURCE],
                detail_type=[REPOSITORY_EVENT_DETAIL_TYPE],
                resources=[GetAtt(REPOSITORY_ID, "Arn")],
                events=[e.value for e in spec.trigger.events],
                reference_types=["branch"],
                reference_names=[Ref(REPOSITORY_BRANCH)],
            ),
            targets=[
                RuleTarget(
                    arn=Sub(
                        f"arn:aws:codepipeline:${{{AWS_REGION}}}:${{{AWS_ACCOUNT_ID}}}"
                        f":${{{PIPELINE_ID}}}"
                    ),
                    id=join(
                        "-", f"{spec.name}-Deployment-Pipeline", sanitized_branch(REPOSITORY_BRANCH)
                    ),
                    role_arn=GetAtt(TRIGGER_ROLE_ID, "Arn"),
                )
            ],
        )

    # -- artifact store ------------------------------------------------------

    def _artifact_store(self, spec: PipelineSpec, access: AccessPlanner) -> ArtifactStore:
        config = spec.artifact_store
        days = config.noncurrent_version_expiration_days
        key = EncryptionKey(
            logical_id=KEY_ID,
            description="KMS key for pipeline S3 bucket encryption",
            key_policy=access.key_policy(),
            alias_logical_id=KEY_ALIAS_ID,
            alias_name=f"alias/{config.key_alias}",
            tags=dict(spec.tags),
        )
        return ArtifactStore(
            logical_id=BUCKET_ID,
            bucket_name=Sub(f"{config.bucket_prefix}-${{{AWS_REGION}}}-${{{AWS_ACCOUNT_ID}}}"),
            key=key,
            policy_logical_id=BUCKET_POLICY_ID,
            bucket_policy=access.bucket_policy(),
            lifecycle_rules=[
                LifecycleRule(
                    id=f"LccRule1-ExpireAllNoncurrentIn{days}Days",
                    noncurrent_version_expiration_days=days,
                )
            ],
            tags=dict(spec.tags),
        )

    # -- outputs -------------------------------------------------------------

    def _outputs(self, spec: PipelineSpec) -> list[StackOutput]:
        prefix = spec.name
        exports = spec.exports
        return [
            StackOutput(
                name="OutCodePipeline",
                value=Ref(PIPELINE_ID),
                description="CICD Pipeline Name",
                export_name=exports.pipeline_name or f"{prefix}-CodePipelineName",
            ),
            StackOutput(
                name="OutCodePipelineURL",
                value=Sub(
                    "https://console.aws.amazon.com/codepipeline/home"
                    f"?region=${{{AWS_REGION}}}#/view/${{{PIPELINE_ID}}}"
                ),
                description="CICD Pipeline console URL",
                export_name=exports.pipeline_url or f"{prefix}-CodePipelineUrl",
            ),
            StackOutput(
                name="OutCodeCommitRepoARN",
                value=GetAtt(REPOSITORY_ID, "Arn"),
                description="ARN for the source repository",
                export_name=exports.repository_arn or f"{prefix}-CodeCommitRepoArn",
            ),
            StackOutput(
                name="OutCodeCommitRepoURL",
                value=GetAtt(REPOSITORY_ID, "CloneUrlHttp"),
                description="The URL to be used for Cloning over HTTPS",
                export_name=exports.repository_url or f"{prefix}-CodeCommitRepoUrl",
            ),
            StackOutput(
                name="OutCodeBuildRoleArn",
                value=GetAtt(BUILD_ROLE_ID, "Arn"),
                description="ARN for CodeBuild Role",
                export_name=f"{prefix}-CodeBuildRoleArn",
            ),
            StackOutput(
                name="OutCodePipelineRoleArn",
                value=GetAtt(PIPELINE_ROLE_ID, "Arn"),
                description="ARN for CodePipeline Role",
                export_name=f"{prefix}-CodePipelineRoleArn",
            ),
            StackOutput(
                name="OutCloudWatchPipelineTriggerRoleArn",
                value=GetAtt(TRIGGER_ROLE_ID, "Arn"),
                description="ARN for CloudWatch Events to trigger CodePipeline",
                export_name=f"{prefix}-CloudWatchPipelineTriggerRoleArn",
            ),
            StackOutput(
                name="OutCodePipelineKMSKeyArn",
                value=GetAtt(KEY_ID, "Arn"),
                description="ARN for Pipeline KMS Key",
                export_name=f"{prefix}-CodePipelineKMSKeyArn",
            ),
            StackOutput(
                name="OutCodePipelineS3Bucket",
                value=Ref(BUCKET_ID),
                description="Name of CodePipeline S3 Bucket",
                export_name=f"{prefix}-CodePipelineS3BucketName",
            ),
            StackOutput(
                name="OutCodePipelineS3BucketArn",
                value=GetAtt(BUCKET_ID, "Arn"),
                description="ARN of CodePipeline S3 Bucket",
                export_name=f"{prefix}-CodePipelineS3BucketArn",
            ),
        ]


def _branch_scoped_name(prefix: str) -> Join:
    """``<prefix>-<repository name>-<sanitized branch>``"""
    return join("-", prefix, GetAtt(REPOSITORY_ID, "Name"), sanitized_branch(REPOSITORY_BRANCH))
