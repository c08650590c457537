"""Tests for the YAML loader and definition resolver."""

from __future__ import annotations

import pytest
from ruamel.yaml.error import YAMLError

from crossdeploy.models.definition import ActionProvider, PipelineSpec, TriggerEvent
from crossdeploy.parser.loader import TrackedLoader
from crossdeploy.parser.resolver import DefinitionResolver
from tests.conftest import EXAMPLE_DEFINITION, SAMPLE_DEFINITION_YAML


def _resolve(yaml: str) -> tuple[PipelineSpec, list[str], list[str]]:
    raw, source_map = TrackedLoader().load_string(yaml)
    spec, result = DefinitionResolver().resolve(raw, source_map)
    return spec, [e.code for e in result.errors], [w.code for w in result.warnings]


class TestTrackedLoader:
    def test_load_string(self, loader: TrackedLoader) -> None:
        raw, source_map = loader.load_string(SAMPLE_DEFINITION_YAML)
        assert raw["name"] == "Serverless"
        assert raw["source"]["branches"][0] == "develop"
        assert "pipeline.stages[0].actions[0].provider" in source_map.paths

    def test_positions_are_one_based(self, loader: TrackedLoader) -> None:
        _, source_map = loader.load_string("version: 1.0\nname: Serverless\n")
        span = source_map.get("name")
        assert span is not None
        assert span.line == 2
        assert span.column == 1

    def test_nearest_falls_back_to_parent(self, loader: TrackedLoader) -> None:
        _, source_map = loader.load_string("source:\n  repository: repo\n")
        span = source_map.nearest("source.repository.missing")
        assert span is not None
        assert span.line == 2

    def test_empty_document(self, loader: TrackedLoader) -> None:
        raw, source_map = loader.load_string("")
        assert raw == {}
        assert source_map.paths == []

    def test_load_file(self, loader: TrackedLoader) -> None:
        raw, source_map = loader.load(EXAMPLE_DEFINITION)
        assert raw["name"] == "Serverless"
        span = source_map.get("name")
        assert span is not None
        assert span.file == str(EXAMPLE_DEFINITION)

    def test_top_level_must_be_mapping(self, loader: TrackedLoader) -> None:
        with pytest.raises(YAMLError, match="mapping at the top level"):
            loader.load_string("- Source\n- Deploy\n")


class TestDefinitionResolver:
    def test_sample_resolves(self, sample_spec: PipelineSpec) -> None:
        assert sample_spec.name == "Serverless"
        assert sample_spec.source.branches == ["develop", "release", "master", "feature/login"]
        assert sample_spec.target.assume_role == "cross-account-role-serverless-deployment"
        assert [s.name for s in sample_spec.pipeline.stages] == ["Source", "Deploy"]
        deploy = sample_spec.pipeline.stages[1].actions[0]
        assert deploy.provider == ActionProvider.CODEBUILD
        assert deploy.input_artifacts == ["SourceArtifact"]

    def test_empty_document_uses_defaults(self) -> None:
        spec, errors, warnings = _resolve("version: 1.0\n")
        assert errors == []
        assert warnings == []
        assert spec == PipelineSpec()

    def test_example_file_matches_defaults(self, loader: TrackedLoader) -> None:
        raw, source_map = loader.load(EXAMPLE_DEFINITION)
        spec, result = DefinitionResolver().resolve(raw, source_map)
        assert result.valid
        assert spec.source == PipelineSpec().source
        assert spec.pipeline == PipelineSpec().pipeline

    def test_unknown_top_level_key_is_a_warning(self) -> None:
        _, errors, warnings = _resolve("version: 1.0\nsourc:\n  repository: x\n")
        assert errors == []
        assert warnings == ["UNKNOWN_KEY"]

    def test_unknown_key_suggests_similar(self) -> None:
        raw, source_map = TrackedLoader().load_string("triger:\n  events: []\n")
        _, result = DefinitionResolver().resolve(raw, source_map)
        assert "trigger" in result.warnings[0].suggestions

    def test_section_must_be_mapping(self) -> None:
        _, errors, _ = _resolve("source:\n  - repo\n")
        assert errors == ["SOURCE_PARSE_ERROR"]

    def test_section_field_type_error(self) -> None:
        yaml = "artifactStore:\n  noncurrentVersionExpirationDays: soon\n"
        raw, source_map = TrackedLoader().load_string(yaml)
        _, result = DefinitionResolver().resolve(raw, source_map)
        assert [e.code for e in result.errors] == ["ARTIFACT_STORE_PARSE_ERROR"]
        error = result.errors[0]
        assert error.path == "artifactStore.noncurrentVersionExpirationDays"
        assert error.span is not None
        assert error.span.line == 2

    def test_unknown_provider(self) -> None:
        yaml = """\
pipeline:
  stages:
    - name: Source
      actions:
        - name: Source
          provider: GitHub
          outputArtifacts: [SourceArtifact]
"""
        raw, source_map = TrackedLoader().load_string(yaml)
        _, result = DefinitionResolver().resolve(raw, source_map)
        assert [e.code for e in result.errors] == ["UNKNOWN_PROVIDER"]
        assert result.errors[0].path == "pipeline.stages[0].actions[0].provider"

    def test_stage_without_name(self) -> None:
        _, errors, _ = _resolve("pipeline:\n  stages:\n    - actions: []\n")
        assert errors == ["STAGE_PARSE_ERROR"]

    def test_stages_must_be_list(self) -> None:
        _, errors, _ = _resolve("pipeline:\n  stages:\n    Source: {}\n")
        assert errors == ["PIPELINE_PARSE_ERROR"]

    def test_unknown_trigger_event(self) -> None:
        spec, errors, _ = _resolve("trigger:\n  events: [referenceUpdated, pushed]\n")
        assert errors == ["UNKNOWN_TRIGGER_EVENT"]
        assert spec.trigger.events == [TriggerEvent.REFERENCE_UPDATED]

    def test_aliases_and_field_names_both_accepted(self) -> None:
        spec, errors, _ = _resolve("source:\n  default_branch: develop\n")
        assert errors == []
        assert spec.source.default_branch == "develop"
