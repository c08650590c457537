"""End-to-end runtime tests: a pushed commit runs the deployed pipeline."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from crossdeploy.compiler.parameters import ParameterValidationError
from crossdeploy.models.definition import PipelineSpec
from crossdeploy.models.stack import StackPlan
from crossdeploy.runtime.deployment import LocalDeployment, deploy_locally
from crossdeploy.runtime.orchestrator import ExecutionStatus
from tests.conftest import REGION, SAMPLE_PARAMETERS, SOURCE_ACCOUNT, TARGET_ACCOUNT

WATCHED_BRANCHES = ["develop", "release", "master", "feature/login"]


class TestPush:
    def test_default_branch_runs_to_success(self, deployment: LocalDeployment) -> None:
        (execution,) = deployment.push("master")
        assert execution.status == ExecutionStatus.SUCCEEDED
        assert execution.history == ["Pending", "Source", "Deploy", "Succeeded"]

    def test_other_branch_starts_nothing(self, deployment: LocalDeployment) -> None:
        assert deployment.push("develop") == []
        assert deployment.orchestrator.executions == []

    def test_push_without_running(self, deployment: LocalDeployment) -> None:
        (execution,) = deployment.push("master", run=False)
        assert execution.status == ExecutionStatus.PENDING

    def test_second_push_supersedes_pending(self, deployment: LocalDeployment) -> None:
        (first,) = deployment.push("master", run=False)
        (second,) = deployment.push("master")
        assert first.status == ExecutionStatus.SUPERSEDED
        assert second.status == ExecutionStatus.SUCCEEDED

    def test_build_deploys_into_target_account(self, deployment: LocalDeployment) -> None:
        deployment.push("master")
        assert deployment.stack.target_account_id == TARGET_ACCOUNT
        deploy_keys = [k for k in deployment.store.keys() if k.endswith("/DeployArtifact")]
        assert len(deploy_keys) == 1
        assert TARGET_ACCOUNT.encode() in deployment.store.get(deploy_keys[0])


class TestBranchScoping:
    def test_feature_branch_stack(self, sample_plan: StackPlan) -> None:
        deployment = deploy_locally(
            sample_plan,
            {**SAMPLE_PARAMETERS, "CodeCommitRepoBranch": "feature/login"},
            account_id=SOURCE_ACCOUNT,
            region=REGION,
        )
        assert deployment.stack.pipeline_name == (
            "Serverless-CodePipeline-my-serverless-api-feature-login"
        )
        assert deployment.push("master") == []
        (execution,) = deployment.push("feature/login")
        assert execution.status == ExecutionStatus.SUCCEEDED

    def test_watched_branches_are_the_allowed_set(self, sample_spec: PipelineSpec) -> None:
        assert sample_spec.source.branches == WATCHED_BRANCHES

    @pytest.mark.parametrize("branch", WATCHED_BRANCHES)
    def test_each_branch_stack_fires_only_for_its_branch(
        self, sample_plan: StackPlan, branch: str
    ) -> None:
        deployment = deploy_locally(
            sample_plan,
            {"TargetAccountID": TARGET_ACCOUNT, "CodeCommitRepoBranch": branch},
            account_id=SOURCE_ACCOUNT,
            region=REGION,
        )
        assert len(sample_plan.enabled_rules()) == 1
        for other in WATCHED_BRANCHES:
            if other != branch:
                assert deployment.push(other) == []
        (execution,) = deployment.push(branch)
        assert execution.status == ExecutionStatus.SUCCEEDED
        assert deployment.orchestrator.executions == [execution]

    def test_bad_parameters_rejected(self, sample_plan: StackPlan) -> None:
        with pytest.raises(ParameterValidationError):
            deploy_locally(
                sample_plan,
                {**SAMPLE_PARAMETERS, "CodeCommitRepoBranch": "main"},
                account_id=SOURCE_ACCOUNT,
                region=REGION,
            )


class TestRetention:
    def test_noncurrent_artifacts_expire(self, sample_plan: StackPlan) -> None:
        now = [datetime(2024, 1, 1, tzinfo=UTC)]
        deployment = deploy_locally(
            sample_plan,
            SAMPLE_PARAMETERS,
            account_id=SOURCE_ACCOUNT,
            region=REGION,
            clock=lambda: now[0],
        )
        assert deployment.store.retention == timedelta(days=8)
        deployment.push("master")
        assert deployment.store.expire_noncurrent(now[0] + timedelta(days=30)) == 0


class TestOutputs:
    def test_resolved_outputs(self, deployment: LocalDeployment) -> None:
        outputs = deployment.stack.outputs()
        assert outputs["OutCodeCommitRepoARN"] == (
            f"arn:aws:codecommit:{REGION}:{SOURCE_ACCOUNT}:my-serverless-api"
        )
        assert outputs["OutCodePipelineS3Bucket"] == (
            f"serverless-codepipeline-bucket-{REGION}-{SOURCE_ACCOUNT}"
        )
        assert outputs["OutCodeBuildRoleArn"] == (
            f"arn:aws:iam::{SOURCE_ACCOUNT}:role/Serverless-CodeBuild-Role"
        )
