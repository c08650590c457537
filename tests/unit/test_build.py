"""Tests for the single-use build runner."""

from __future__ import annotations

import json

import pytest

from crossdeploy.models.stack import BUILD_ROLE_ID
from crossdeploy.runtime.build import BuildEnvironment, BuildRunner, BuildScript
from crossdeploy.runtime.deployment import LocalDeployment
from tests.conftest import TARGET_ACCOUNT

DEPLOY_ROLE = f"arn:aws:iam::{TARGET_ACCOUNT}:role/cross-account-role-serverless-deployment"


def _runner(deployment: LocalDeployment, script: BuildScript) -> BuildRunner:
    return BuildRunner(deployment.stack, deployment.engine, script)


class TestVariables:
    def test_resolved_environment(self, deployment: LocalDeployment) -> None:
        variables = deployment.runner.variables()
        assert variables == {
            "CROSS_ACCOUNT_ROLE": DEPLOY_ROLE,
            "CF_EXECUTION_ROLE": (
                f"arn:aws:iam::{TARGET_ACCOUNT}:role/cf-execution-role-serverless"
            ),
            "TARGET_ACCOUNT_ID": TARGET_ACCOUNT,
            "STAGE": "DEV",
        }

    def test_runs_as_build_role(self, deployment: LocalDeployment) -> None:
        assert deployment.runner.role_id == BUILD_ROLE_ID


class TestDefaultScript:
    def test_deploys_with_assumed_role(self, deployment: LocalDeployment) -> None:
        result = deployment.runner.run({"SourceArtifact": b"src"}, ["DeployArtifact"])
        assert result.succeeded
        assert [r.arn for r in result.assumed_roles] == [DEPLOY_ROLE]
        assert result.assumed_roles[0].account_id == TARGET_ACCOUNT
        manifest = json.loads(result.outputs["DeployArtifact"])
        assert manifest["stage"] == "DEV"
        assert manifest["inputs"] == ["SourceArtifact"]
        assert result.logs == [f"Deploying stage DEV into account {TARGET_ACCOUNT}"]

    def test_build_ids_are_unique(self, deployment: LocalDeployment) -> None:
        first = deployment.runner.run({}, [])
        second = deployment.runner.run({}, [])
        assert first.build_id != second.build_id
        assert first.build_id.startswith("Serverless-CodeBuild-Deploy-my-serverless-api-master:")


class TestIsolation:
    def test_environment_is_torn_down(self, deployment: LocalDeployment) -> None:
        captured: list[BuildEnvironment] = []

        def script(env: BuildEnvironment) -> int:
            captured.append(env)
            return 0

        _runner(deployment, script).run({}, [])
        with pytest.raises(RuntimeError, match="torn down"):
            captured[0].log("late")

    def test_each_run_gets_fresh_outputs(self, deployment: LocalDeployment) -> None:
        def script(env: BuildEnvironment) -> int:
            assert env.outputs == {}
            env.write_artifact("Out", b"x")
            return 0

        runner = _runner(deployment, script)
        assert runner.run({}, ["Out"]).succeeded
        assert runner.run({}, ["Out"]).succeeded


class TestFailures:
    def test_non_zero_exit(self, deployment: LocalDeployment) -> None:
        result = _runner(deployment, lambda env: 2).run({}, [])
        assert not result.succeeded
        assert result.exit_code == 2

    def test_script_exception_is_captured(self, deployment: LocalDeployment) -> None:
        def script(env: BuildEnvironment) -> int:
            raise ValueError("boom")

        result = _runner(deployment, script).run({}, [])
        assert result.exit_code == 1
        assert result.error == "ValueError: boom"

    def test_missing_output(self, deployment: LocalDeployment) -> None:
        result = _runner(deployment, lambda env: 0).run({}, ["DeployArtifact"])
        assert not result.succeeded
        assert "DeployArtifact" in (result.error or "")

    def test_execution_role_not_assumable(self, deployment: LocalDeployment) -> None:
        def script(env: BuildEnvironment) -> int:
            env.assume_role(env.variables["CF_EXECUTION_ROLE"])
            return 0

        result = _runner(deployment, script).run({}, [])
        assert result.error is not None
        assert result.error.startswith("AccessDeniedError")

    def test_unknown_input(self, deployment: LocalDeployment) -> None:
        def script(env: BuildEnvironment) -> int:
            env.read_artifact("Nope")
            return 0

        result = _runner(deployment, script).run({"SourceArtifact": b""}, [])
        assert result.error is not None
        assert "Nope" in result.error
