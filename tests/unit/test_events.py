"""Tests for repository events, pattern matching and the event router."""

from __future__ import annotations

import pytest

from crossdeploy.models.definition import TriggerEvent
from crossdeploy.runtime.access import AccessDeniedError
from crossdeploy.runtime.deployment import LocalDeployment
from crossdeploy.runtime.events import RepositoryEvent, pattern_matches
from crossdeploy.runtime.orchestrator import ExecutionStatus
from tests.conftest import REGION, SOURCE_ACCOUNT


def _event(deployment: LocalDeployment, branch: str, **kwargs: object) -> dict[str, object]:
    return RepositoryEvent(
        repository_arn=deployment.stack.repository_arn,
        repository_name=deployment.stack.repository_name,
        reference_name=branch,
        account=SOURCE_ACCOUNT,
        region=REGION,
        **kwargs,  # type: ignore[arg-type]
    ).to_event()


class TestPatternMatches:
    def test_list_matches_any_value(self) -> None:
        assert pattern_matches({"source": ["a", "b"]}, {"source": "b"})
        assert not pattern_matches({"source": ["a"]}, {"source": "c"})

    def test_missing_key_fails(self) -> None:
        assert not pattern_matches({"detail": {"event": ["x"]}}, {"source": "a"})

    def test_nested_mapping(self) -> None:
        pattern = {"detail": {"referenceName": ["master"]}}
        assert pattern_matches(pattern, {"detail": {"referenceName": "master", "other": 1}})
        assert not pattern_matches(pattern, {"detail": "master"})

    def test_list_valued_event_field(self) -> None:
        assert pattern_matches({"resources": ["arn:b"]}, {"resources": ["arn:a", "arn:b"]})

    def test_empty_pattern_matches_everything(self) -> None:
        assert pattern_matches({}, {"anything": 1})


class TestRepositoryEvent:
    def test_event_shape(self) -> None:
        event = RepositoryEvent(
            repository_arn="arn:aws:codecommit:us-east-1:111111111111:repo",
            repository_name="repo",
            reference_name="feature/login",
            commit_id="abc",
        ).to_event()
        assert event["source"] == "aws.codecommit"
        assert event["detail-type"] == "CodeCommit Repository State Change"
        assert event["resources"] == ["arn:aws:codecommit:us-east-1:111111111111:repo"]
        assert event["detail"]["referenceFullName"] == "refs/heads/feature/login"
        assert event["detail"]["event"] == "referenceUpdated"
        assert event["detail"]["commitId"] == "abc"


class TestEventRouter:
    def test_default_branch_push_starts_pipeline(self, deployment: LocalDeployment) -> None:
        started = deployment.router.dispatch(_event(deployment, "master"))
        assert len(started) == 1
        assert started[0].trigger == "CodeCheckinCloudWatchEvent"
        assert started[0].status == ExecutionStatus.PENDING

    def test_other_branch_is_ignored(self, deployment: LocalDeployment) -> None:
        assert deployment.router.dispatch(_event(deployment, "develop")) == []

    def test_unwatched_event_type_is_ignored(self, deployment: LocalDeployment) -> None:
        event = _event(deployment, "master", event=TriggerEvent.REFERENCE_DELETED)
        assert deployment.router.dispatch(event) == []

    def test_other_repository_is_ignored(self, deployment: LocalDeployment) -> None:
        event = RepositoryEvent(
            repository_arn="arn:aws:codecommit:us-east-1:111111111111:elsewhere",
            repository_name="elsewhere",
            reference_name="master",
        ).to_event()
        assert deployment.router.matching_rules(event) == []

    def test_trigger_role_must_be_allowed(self, deployment: LocalDeployment) -> None:
        trigger_role = deployment.stack.plan.roles["CloudWatchPipelineTriggerRole"]
        trigger_role.inline_policies[0].document.statements[0].actions = [
            "codepipeline:GetPipeline"
        ]
        with pytest.raises(AccessDeniedError):
            deployment.router.dispatch(_event(deployment, "master"))
        assert deployment.orchestrator.executions == []
