"""Tests for semantic validation of pipeline definitions."""

from __future__ import annotations

import pytest

from crossdeploy.models.definition import (
    ActionProvider,
    ActionSpec,
    PipelineSpec,
    StageSpec,
)
from crossdeploy.parser.validator import DefinitionValidator


def _codes(spec: PipelineSpec) -> list[str]:
    return [e.code for e in DefinitionValidator().validate(spec)]


def _with_stages(*stages: StageSpec) -> PipelineSpec:
    spec = PipelineSpec()
    return spec.model_copy(
        update={"pipeline": spec.pipeline.model_copy(update={"stages": list(stages)})}
    )


def _source(name: str = "Source", run_order: int = 1, output: str = "Src") -> ActionSpec:
    return ActionSpec(
        name=name,
        provider=ActionProvider.CODECOMMIT,
        run_order=run_order,
        output_artifacts=[output],
    )


def _build(
    name: str = "Deploy",
    run_order: int = 1,
    inputs: list[str] | None = None,
    outputs: list[str] | None = None,
) -> ActionSpec:
    return ActionSpec(
        name=name,
        provider=ActionProvider.CODEBUILD,
        run_order=run_order,
        input_artifacts=["Src"] if inputs is None else inputs,
        output_artifacts=outputs or [],
    )


class TestValidDefinitions:
    def test_defaults_are_valid(self) -> None:
        assert _codes(PipelineSpec()) == []

    def test_sample_is_valid(self, sample_spec: PipelineSpec) -> None:
        assert _codes(sample_spec) == []

    def test_multiple_build_stages(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Test", actions=[_build("Test", outputs=["Tested"])]),
            StageSpec(name="Deploy", actions=[_build("Deploy", inputs=["Tested"])]),
        )
        assert _codes(spec) == []


class TestNames:
    @pytest.mark.parametrize("name", ["", "1abc", "has space", "a" * 33])
    def test_invalid_name(self, name: str) -> None:
        assert "INVALID_NAME" in _codes(PipelineSpec(name=name))

    def test_duplicate_stage_name(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Source", actions=[_build()]),
        )
        assert "DUPLICATE_STAGE_NAME" in _codes(spec)

    def test_duplicate_action_name(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(
                name="Deploy",
                actions=[_build(run_order=1), _build(run_order=2)],
            ),
        )
        assert "DUPLICATE_ACTION_NAME" in _codes(spec)


class TestStageLayout:
    def test_single_stage(self) -> None:
        spec = _with_stages(StageSpec(name="Source", actions=[_source()]))
        assert "TOO_FEW_STAGES" in _codes(spec)

    def test_empty_stage(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Deploy", actions=[]),
        )
        assert "EMPTY_STAGE" in _codes(spec)

    def test_build_in_first_stage(self) -> None:
        spec = _with_stages(
            StageSpec(name="Build", actions=[_build(inputs=[])]),
            StageSpec(name="Deploy", actions=[_build()]),
        )
        assert "SOURCE_STAGE_REQUIRED" in _codes(spec)

    def test_source_outside_first_stage(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Deploy", actions=[_source("Again", output="Other")]),
        )
        assert "SOURCE_STAGE_REQUIRED" in _codes(spec)

    def test_build_without_input(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Deploy", actions=[_build(inputs=[])]),
        )
        assert "BUILD_INPUT_REQUIRED" in _codes(spec)


class TestRunOrder:
    def test_not_increasing(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(
                name="Deploy",
                actions=[_build("A", run_order=5), _build("B", run_order=5)],
            ),
        )
        assert "RUN_ORDER_NOT_INCREASING" in _codes(spec)

    def test_order_compared_within_stage_only(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source(run_order=50)]),
            StageSpec(name="Deploy", actions=[_build(run_order=1)]),
        )
        assert _codes(spec) == []

    @pytest.mark.parametrize("run_order", [0, 1000])
    def test_out_of_range(self, run_order: int) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Deploy", actions=[_build(run_order=run_order)]),
        )
        assert "INVALID_RUN_ORDER" in _codes(spec)


class TestArtifacts:
    def test_unknown_input(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Deploy", actions=[_build(inputs=["Missing"])]),
        )
        errors = DefinitionValidator().validate(spec)
        unknown = [e for e in errors if e.code == "UNKNOWN_INPUT_ARTIFACT"]
        assert len(unknown) == 1
        assert unknown[0].suggestions == ["Src"]

    def test_duplicate_output(self) -> None:
        spec = _with_stages(
            StageSpec(name="Source", actions=[_source()]),
            StageSpec(name="Deploy", actions=[_build(outputs=["Src"])]),
        )
        assert "DUPLICATE_OUTPUT_ARTIFACT" in _codes(spec)


class TestSourceAndTarget:
    def test_no_branches(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"source": spec.source.model_copy(update={"branches": []})}
        )
        assert "NO_BRANCHES" in _codes(spec)

    def test_duplicate_branch(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"source": spec.source.model_copy(update={"branches": ["master", "master"]})}
        )
        assert "DUPLICATE_BRANCH" in _codes(spec)

    @pytest.mark.parametrize("branch", ["feature..x", "bad branch", "ends/", "x.lock"])
    def test_invalid_branch_name(self, branch: str) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"source": spec.source.model_copy(update={"branches": ["master", branch]})}
        )
        assert "INVALID_BRANCH_NAME" in _codes(spec)

    def test_default_branch_not_listed(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"source": spec.source.model_copy(update={"default_branch": "main"})}
        )
        assert "INVALID_DEFAULT_BRANCH" in _codes(spec)

    def test_no_environments(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"target": spec.target.model_copy(update={"environments": []})}
        )
        assert "NO_ENVIRONMENTS" in _codes(spec)

    def test_default_environment_not_listed(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"target": spec.target.model_copy(update={"default_environment": "QA"})}
        )
        assert "INVALID_DEFAULT_ENVIRONMENT" in _codes(spec)

    def test_invalid_role_name(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"target": spec.target.model_copy(update={"assume_role": "bad role!"})}
        )
        assert "INVALID_ROLE_NAME" in _codes(spec)

    def test_role_name_is_ascii_only(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"target": spec.target.model_copy(update={"execution_role": "cf-r\u00f4le"})}
        )
        assert "INVALID_ROLE_NAME" in _codes(spec)

    def test_retention_must_be_positive(self) -> None:
        spec = PipelineSpec()
        store = spec.artifact_store.model_copy(
            update={"noncurrent_version_expiration_days": 0}
        )
        assert "INVALID_RETENTION" in _codes(spec.model_copy(update={"artifact_store": store}))

    def test_no_trigger_events(self) -> None:
        spec = PipelineSpec()
        spec = spec.model_copy(
            update={"trigger": spec.trigger.model_copy(update={"events": []})}
        )
        assert "NO_TRIGGER_EVENTS" in _codes(spec)
