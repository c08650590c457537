"""Repository events and rule matching that starts pipeline executions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from crossdeploy.compiler.builder import REPOSITORY_EVENT_DETAIL_TYPE, REPOSITORY_EVENT_SOURCE
from crossdeploy.intrinsics.nodes import GetAtt
from crossdeploy.models.definition import TriggerEvent
from crossdeploy.models.stack import TriggerRule
from crossdeploy.runtime.access import AccessDeniedError, PolicyEngine
from crossdeploy.runtime.stack import DeployedStack

if TYPE_CHECKING:
    from crossdeploy.runtime.orchestrator import Orchestrator, PipelineExecution

logger = logging.getLogger("crossdeploy.runtime")

START_PIPELINE_ACTION = "codepipeline:StartPipelineExecution"


@dataclass
class RepositoryEvent:
    """A source-repository state change (push, branch create, branch delete)."""

    repository_arn: str
    repository_name: str
    reference_name: str
    event: TriggerEvent = TriggerEvent.REFERENCE_UPDATED
    reference_type: str = "branch"
    commit_id: str = "0000000000000000000000000000000000000000"
    account: str = ""
    region: str = ""
    time: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_event(self) -> dict[str, Any]:
        """The event as delivered on the event bus."""
        return {
            "version": "0",
            "source": REPOSITORY_EVENT_SOURCE,
            "detail-type": REPOSITORY_EVENT_DETAIL_TYPE,
            "account": self.account,
            "region": self.region,
            "time": self.time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "resources": [self.repository_arn],
            "detail": {
                "event": self.event.value,
                "repositoryName": self.repository_name,
                "referenceType": self.reference_type,
                "referenceName": self.reference_name,
                "referenceFullName": f"refs/heads/{self.reference_name}",
                "commitId": self.commit_id,
            },
        }


def pattern_matches(pattern: dict[str, Any], event: dict[str, Any]) -> bool:
    """Event-bus pattern matching.

    Every key in the pattern must be present in the event.  A list in the
    pattern matches if any element equals the event value (or, for list-valued
    event fields, any element of it); a mapping recurses.
    """
    for key, expected in pattern.items():
        if key not in event:
            return False
        actual = event[key]
        if isinstance(expected, dict):
            if not isinstance(actual, dict) or not pattern_matches(expected, actual):
                return False
            continue
        candidates = actual if isinstance(actual, list) else [actual]
        if not any(c in expected for c in candidates):
            return False
    return True


class EventRouter:
    """Delivers events to the enabled trigger rules of one deployed stack."""

    def __init__(
        self,
        stack: DeployedStack,
        engine: PolicyEngine,
        orchestrator: Orchestrator,
    ) -> None:
        self._stack = stack
        self._engine = engine
        self._orchestrator = orchestrator
        self._patterns = {
            rule.logical_id: stack.resolve(rule.pattern.to_dict())
            for rule in stack.plan.enabled_rules()
        }

    def matching_rules(self, event: dict[str, Any]) -> list[TriggerRule]:
        return [
            rule
            for rule in self._stack.plan.enabled_rules()
            if pattern_matches(self._patterns[rule.logical_id], event)
        ]

    def dispatch(self, event: dict[str, Any]) -> list[PipelineExecution]:
        """Invoke every matching rule's targets once; return the started executions.

        Raises ``AccessDeniedError`` if a target role may not start the pipeline.
        """
        started: list[PipelineExecution] = []
        for rule in self.matching_rules(event):
            for target in rule.targets:
                target_arn = self._stack.resolve(target.arn)
                role_id = self._target_role(target.role_arn)
                if target_arn != self._stack.pipeline_arn:
                    logger.warning(
                        "Rule %s targets %s, which is not this stack's pipeline",
                        rule.logical_id,
                        target_arn,
                    )
                    continue
                self._engine.authorize(role_id, START_PIPELINE_ACTION, target_arn)
                logger.info("Rule %s matched; starting %s", rule.logical_id, target_arn)
                started.append(self._orchestrator.start(trigger=rule.logical_id))
        return started

    def _target_role(self, role_arn: Any) -> str:
        if isinstance(role_arn, GetAtt) and role_arn.resource in self._stack.plan.roles:
            return role_arn.resource
        resolved = str(self._stack.resolve(role_arn))
        role_id = self._stack.role_for_arn(resolved)
        if role_id is None:
            raise AccessDeniedError(resolved, START_PIPELINE_ACTION, self._stack.pipeline_arn)
        return role_id
