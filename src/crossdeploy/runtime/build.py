"""Single-use build runner: a fresh, isolated environment per invocation."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from crossdeploy.intrinsics.nodes import GetAtt
from crossdeploy.runtime.access import AccessDeniedError, PolicyEngine
from crossdeploy.runtime.stack import DeployedStack

logger = logging.getLogger("crossdeploy.runtime")

ASSUME_ROLE_ACTION = "sts:AssumeRole"


@dataclass(frozen=True)
class AssumedRole:
    """Temporary credentials for a role in another account."""

    arn: str
    account_id: str
    session_name: str


def _role_account(arn: str) -> str:
    # arn:aws:iam::<account>:role/<name>
    parts = arn.split(":")
    if len(parts) < 6 or parts[2] != "iam" or not parts[5].startswith("role/"):
        raise ValueError(f"'{arn}' is not an IAM role ARN")
    return parts[4]


class BuildEnvironment:
    """The ephemeral compute environment handed to one build script run."""

    def __init__(
        self,
        build_id: str,
        variables: Mapping[str, str],
        inputs: Mapping[str, bytes],
        assume: Callable[[str, str], AssumedRole],
    ) -> None:
        self.build_id = build_id
        self.variables = dict(variables)
        self.inputs = dict(inputs)
        self.outputs: dict[str, bytes] = {}
        self.logs: list[str] = []
        self.assumed_roles: list[AssumedRole] = []
        self._assume = assume
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"Build environment {self.build_id} has been torn down")

    def log(self, message: str) -> None:
        self._ensure_open()
        self.logs.append(message)

    def read_artifact(self, name: str) -> bytes:
        self._ensure_open()
        if name not in self.inputs:
            raise KeyError(f"Build {self.build_id} has no input artifact '{name}'")
        return self.inputs[name]

    def write_artifact(self, name: str, data: bytes) -> None:
        self._ensure_open()
        self.outputs[name] = bytes(data)

    def assume_role(self, arn: str) -> AssumedRole:
        """Assume a deployment role; only roles in the target account are reachable."""
        self._ensure_open()
        role = self._assume(arn, self.build_id)
        self.assumed_roles.append(role)
        return role

    def close(self) -> None:
        self._closed = True


BuildScript = Callable[[BuildEnvironment], int | None]


def default_deploy_script(env: BuildEnvironment) -> int:
    """Assume the deployment role and record what would be deployed where."""
    session = env.assume_role(env.variables["CROSS_ACCOUNT_ROLE"])
    env.log(f"Deploying stage {env.variables['STAGE']} into account {session.account_id}")
    manifest = {
        "stage": env.variables["STAGE"],
        "targetAccountId": env.variables["TARGET_ACCOUNT_ID"],
        "deploymentRole": session.arn,
        "executionRole": env.variables["CF_EXECUTION_ROLE"],
        "inputs": sorted(env.inputs),
    }
    payload = json.dumps(manifest, sort_keys=True).encode("utf-8")
    for name in env.variables.get("OUTPUT_ARTIFACTS", "").split(","):
        if name:
            env.write_artifact(name, payload)
    return 0


@dataclass
class BuildResult:
    build_id: str
    exit_code: int
    outputs: dict[str, bytes] = field(default_factory=dict)
    logs: list[str] = field(default_factory=list)
    assumed_roles: list[AssumedRole] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.error is None


class BuildRunner:
    """Runs a build script for the stack's build project."""

    def __init__(
        self,
        stack: DeployedStack,
        engine: PolicyEngine,
        script: BuildScript | None = None,
    ) -> None:
        self._stack = stack
        self._engine = engine
        self._script = script or default_deploy_script
        service_role = stack.plan.build_project.service_role
        if not isinstance(service_role, GetAtt):
            raise ValueError("Build project service role must reference a stack role")
        self.role_id = service_role.resource

    def variables(self) -> dict[str, str]:
        """Environment variables injected into every build."""
        return {
            var.name: str(self._stack.resolve(var.value))
            for var in self._stack.plan.build_project.environment_variables
        }

    def _assume(self, arn: str, build_id: str) -> AssumedRole:
        self._engine.authorize(self.role_id, ASSUME_ROLE_ACTION, arn)
        account_id = _role_account(arn)
        if account_id != self._stack.target_account_id:
            logger.warning("Build %s tried to leave the target account: %s", build_id, arn)
            raise AccessDeniedError(self.role_id, ASSUME_ROLE_ACTION, arn)
        return AssumedRole(arn=arn, account_id=account_id, session_name=build_id)

    def run(self, inputs: Mapping[str, bytes], output_names: list[str]) -> BuildResult:
        """Run the script in a new environment; the environment is discarded afterwards."""
        build_id = f"{self._stack.project_name}:{uuid.uuid4()}"
        variables = self.variables()
        variables["OUTPUT_ARTIFACTS"] = ",".join(output_names)
        env = BuildEnvironment(build_id, variables, inputs, self._assume)
        logger.info("Build %s started", build_id)

        error: str | None = None
        try:
            exit_code = self._script(env) or 0
        except Exception as exc:
            logger.warning("Build %s raised %s: %s", build_id, type(exc).__name__, exc)
            exit_code = 1
            error = f"{type(exc).__name__}: {exc}"
        finally:
            env.close()

        if exit_code == 0 and error is None:
            missing = [name for name in output_names if name not in env.outputs]
            if missing:
                error = f"Build did not produce artifact(s): {', '.join(missing)}"
        result = BuildResult(
            build_id=build_id,
            exit_code=exit_code,
            outputs=dict(env.outputs),
            logs=list(env.logs),
            assumed_roles=list(env.assumed_roles),
            error=error,
        )
        if result.succeeded:
            logger.info("Build %s succeeded", build_id)
        else:
            logger.warning("Build %s failed (exit %d): %s", build_id, exit_code, error)
        return result
