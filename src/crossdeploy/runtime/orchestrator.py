"""Pipeline execution state machine.

An execution moves ``Pending → <stage> … → Succeeded | Failed | Superseded``.
Stages run strictly in sequence and actions by run order; at most one
execution per pipeline is active, and a newer one supersedes it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from crossdeploy.models.definition import ActionCategory
from crossdeploy.models.stack import Action, PipelineDefinition, Stage
from crossdeploy.runtime.access import AccessDeniedError, PolicyEngine
from crossdeploy.runtime.artifacts import ArtifactNotFoundError, VersionedArtifactStore
from crossdeploy.runtime.build import BuildRunner
from crossdeploy.runtime.stack import DeployedStack

logger = logging.getLogger("crossdeploy.runtime")

PENDING = "Pending"

SourceFetcher = Callable[[str, str], bytes]


class ExecutionStatus(StrEnum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    SUPERSEDED = "Superseded"


TERMINAL = frozenset(
    {ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED, ExecutionStatus.SUPERSEDED}
)


class ExecutionStateError(Exception):
    """Raised when an execution is advanced from a state that does not allow it."""


class _ActionFailed(Exception):
    """An action finished unsuccessfully (non-zero build, unsupported action)."""


def _fetch_snapshot(repository: str, branch: str) -> bytes:
    return f"{repository}@{branch}".encode()


@dataclass
class PipelineExecution:
    """One run of the pipeline."""

    execution_id: str
    trigger: str
    definition: PipelineDefinition
    status: ExecutionStatus = ExecutionStatus.PENDING
    stage_index: int = -1
    history: list[str] = field(default_factory=lambda: [PENDING])
    artifacts: dict[str, str] = field(default_factory=dict)  # artifact → object key
    failure: str | None = None

    @property
    def state(self) -> str:
        """``Pending``, the current stage name, or the terminal status."""
        return self.history[-1]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def enter(self, state: str) -> None:
        self.history.append(state)


class Orchestrator:
    """Runs executions of one deployed pipeline."""

    def __init__(
        self,
        stack: DeployedStack,
        store: VersionedArtifactStore,
        runner: BuildRunner,
        engine: PolicyEngine,
        source: SourceFetcher | None = None,
    ) -> None:
        self._stack = stack
        self._store = store
        self._runner = runner
        self._engine = engine
        self._source = source or _fetch_snapshot
        self._definition: PipelineDefinition = stack.plan.pipeline
        self._role_id = self._definition.role_arn.resource
        self.active: PipelineExecution | None = None
        self.executions: list[PipelineExecution] = []

    @property
    def pipeline_arn(self) -> str:
        return self._stack.pipeline_arn

    @property
    def definition(self) -> PipelineDefinition:
        return self._definition

    # -- lifecycle -----------------------------------------------------------

    def start(self, trigger: str = "manual") -> PipelineExecution:
        """Start a new execution, superseding the active one."""
        if self.active is not None and not self.active.is_terminal:
            self._finish(self.active, ExecutionStatus.SUPERSEDED)
        execution = PipelineExecution(
            execution_id=str(uuid.uuid4()), trigger=trigger, definition=self._definition
        )
        self.executions.append(execution)
        self.active = execution
        logger.info("Execution %s started by %s", execution.execution_id, trigger)
        return execution

    def update_definition(self, definition: PipelineDefinition) -> PipelineExecution | None:
        """Replace the pipeline definition; restart an in-flight execution if configured.

        Without a restart the in-flight execution finishes on the definition it
        started with; the new one applies from the next start.
        """
        self._definition = definition
        in_flight = self.active is not None and not self.active.is_terminal
        if in_flight and definition.restart_execution_on_update:
            logger.info("Pipeline definition updated; restarting in-flight execution")
            return self.start(trigger="definition-update")
        return None

    def step(self, execution: PipelineExecution | None = None) -> str:
        """Run the next stage of *execution* (default: the active one); return its state."""
        execution = execution or self.active
        if execution is None:
            raise ExecutionStateError("No execution to advance")
        if execution.is_terminal:
            raise ExecutionStateError(
                f"Execution {execution.execution_id} is {execution.status.value}"
            )
        if execution is not self.active:
            raise ExecutionStateError(f"Execution {execution.execution_id} is not active")

        stages = execution.definition.stages
        index = execution.stage_index + 1
        stage = stages[index]

        if index > 0:
            missing = self._missing_outputs(execution, stages[index - 1])
            if missing:
                self._fail(
                    execution,
                    f"Stage '{stage.name}' cannot start: missing artifact(s) {', '.join(missing)}",
                )
                return execution.state

        execution.stage_index = index
        execution.status = ExecutionStatus.IN_PROGRESS
        execution.enter(stage.name)
        logger.info("Execution %s entered stage %s", execution.execution_id, stage.name)

        try:
            for action in sorted(stage.actions, key=lambda a: a.run_order):
                self._run_action(execution, action)
        except (AccessDeniedError, ArtifactNotFoundError, _ActionFailed) as exc:
            self._fail(execution, str(exc))
            return execution.state

        if index == len(stages) - 1:
            self._finish(execution, ExecutionStatus.SUCCEEDED)
        return execution.state

    def run(self, execution: PipelineExecution | None = None) -> PipelineExecution:
        """Advance *execution* until it reaches a terminal state."""
        execution = execution or self.active
        if execution is None:
            raise ExecutionStateError("No execution to run")
        while not execution.is_terminal:
            self.step(execution)
        return execution

    # -- actions -------------------------------------------------------------

    def _run_action(self, execution: PipelineExecution, action: Action) -> None:
        category = action.action_type.category
        if category == ActionCategory.SOURCE:
            self._run_source(execution, action)
        elif category == ActionCategory.BUILD:
            self._run_build(execution, action)
        else:
            raise _ActionFailed(f"Action '{action.name}' has unsupported category {category}")

    def _run_source(self, execution: PipelineExecution, action: Action) -> None:
        repository_arn = self._stack.repository_arn
        self._engine.authorize(self._role_id, "codecommit:GetBranch", repository_arn)
        branch = str(self._stack.resolve(action.configuration["BranchName"]))
        repository = str(self._stack.resolve(action.configuration["RepositoryName"]))
        snapshot = self._source(repository, branch)
        for name in action.output_artifacts:
            self._put(execution, self._role_id, name, snapshot)

    def _run_build(self, execution: PipelineExecution, action: Action) -> None:
        self._engine.authorize(self._role_id, "codebuild:StartBuild", self._stack.project_arn)
        inputs = {
            name: self._get(execution, self._runner.role_id, name)
            for name in action.input_artifacts
        }
        result = self._runner.run(inputs, list(action.output_artifacts))
        if not result.succeeded:
            reason = result.error or f"exit code {result.exit_code}"
            raise _ActionFailed(f"Action '{action.name}' failed: {reason}")
        for name in action.output_artifacts:
            self._put(execution, self._runner.role_id, name, result.outputs[name])

    # -- artifacts -----------------------------------------------------------

    def _object_key(self, execution: PipelineExecution, artifact: str) -> str:
        return f"{self._stack.pipeline_name}/{execution.execution_id}/{artifact}"

    def _put(self, execution: PipelineExecution, role_id: str, artifact: str, data: bytes) -> None:
        key = self._object_key(execution, artifact)
        self._engine.authorize(role_id, "s3:PutObject", self._stack.object_arn(key))
        self._engine.authorize(role_id, "kms:Encrypt", self._store.kms_key_arn)
        self._store.put(key, data, kms_key_arn=self._store.kms_key_arn)
        execution.artifacts[artifact] = key

    def _get(self, execution: PipelineExecution, role_id: str, artifact: str) -> bytes:
        key = execution.artifacts.get(artifact) or self._object_key(execution, artifact)
        self._engine.authorize(role_id, "s3:GetObject", self._stack.object_arn(key))
        self._engine.authorize(role_id, "kms:Decrypt", self._store.head(key).kms_key_arn)
        return self._store.get(key)

    def _missing_outputs(self, execution: PipelineExecution, stage: Stage) -> list[str]:
        return [
            name
            for action in stage.actions
            for name in action.output_artifacts
            if not self._store.exists(self._object_key(execution, name))
        ]

    # -- terminal states -----------------------------------------------------

    def _fail(self, execution: PipelineExecution, reason: str) -> None:
        execution.failure = reason
        logger.warning("Execution %s failed: %s", execution.execution_id, reason)
        self._finish(execution, ExecutionStatus.FAILED)

    def _finish(self, execution: PipelineExecution, status: ExecutionStatus) -> None:
        execution.status = status
        execution.enter(status.value)
        logger.info("Execution %s is %s", execution.execution_id, status.value)
