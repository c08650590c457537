"""Wires the simulated services of one deployed stack together."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from crossdeploy.models.stack import StackPlan
from crossdeploy.runtime.access import PolicyEngine
from crossdeploy.runtime.artifacts import Clock, VersionedArtifactStore
from crossdeploy.runtime.build import BuildRunner, BuildScript
from crossdeploy.runtime.events import EventRouter, RepositoryEvent
from crossdeploy.runtime.orchestrator import Orchestrator, PipelineExecution, SourceFetcher
from crossdeploy.runtime.stack import DeployedStack, evaluate_stack


@dataclass
class LocalDeployment:
    stack: DeployedStack
    engine: PolicyEngine
    store: VersionedArtifactStore
    runner: BuildRunner
    orchestrator: Orchestrator
    router: EventRouter

    def push(
        self, branch: str, commit_id: str = "0" * 40, *, run: bool = True
    ) -> list[PipelineExecution]:
        """Deliver a branch-updated event for this stack's repository.

        With *run*, every execution the event started is driven to a terminal
        state before returning.
        """
        event = RepositoryEvent(
            repository_arn=self.stack.repository_arn,
            repository_name=self.stack.repository_name,
            reference_name=branch,
            commit_id=commit_id,
            account=self.stack.account_id,
            region=self.stack.region,
        )
        started = self.router.dispatch(event.to_event())
        if run:
            for execution in started:
                if not execution.is_terminal:
                    self.orchestrator.run(execution)
        return started


def deploy_locally(
    plan: StackPlan,
    parameters: Mapping[str, str] | None = None,
    *,
    account_id: str,
    region: str,
    script: BuildScript | None = None,
    source: SourceFetcher | None = None,
    clock: Clock | None = None,
) -> LocalDeployment:
    """Evaluate *plan* and stand up its trigger, orchestrator, runner and store."""
    stack = evaluate_stack(plan, parameters, account_id=account_id, region=region)
    engine = PolicyEngine(stack)
    store = VersionedArtifactStore(
        bucket=stack.bucket_name,
        kms_key_arn=stack.key_arn,
        retention_days=plan.artifact_store.retention_days,
        clock=clock,
    )
    runner = BuildRunner(stack, engine, script)
    orchestrator = Orchestrator(stack, store, runner, engine, source=source)
    router = EventRouter(stack, engine, orchestrator)
    return LocalDeployment(
        stack=stack,
        engine=engine,
        store=store,
        runner=runner,
        orchestrator=orchestrator,
        router=router,
    )
