"""Definition resolution: raw YAML dict → fully-typed PipelineSpec."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from crossdeploy.models.definition import (
    ActionProvider,
    ActionSpec,
    ArtifactStoreConfig,
    BuildConfig,
    ExportNames,
    PipelineConfig,
    PipelineSpec,
    SourceConfig,
    StageSpec,
    TargetConfig,
    TriggerConfig,
    TriggerEvent,
)
from crossdeploy.models.errors import DefinitionError, SourceSpan, ValidationResult
from crossdeploy.parser.loader import SourceMap

# YAML key → (field name on PipelineSpec, model, error code prefix)
_SECTIONS: dict[str, tuple[str, type[BaseModel], str]] = {
    "source": ("source", SourceConfig, "SOURCE"),
    "target": ("target", TargetConfig, "TARGET"),
    "build": ("build", BuildConfig, "BUILD"),
    "artifactStore": ("artifact_store", ArtifactStoreConfig, "ARTIFACT_STORE"),
    "trigger": ("trigger", TriggerConfig, "TRIGGER"),
    "exports": ("exports", ExportNames, "EXPORTS"),
}

_HEADER_KEYS = ("version", "name", "description", "tags")
_TOP_LEVEL_KEYS = {*_HEADER_KEYS, "pipeline", *_SECTIONS}


class DefinitionResolver:
    """Resolves a raw YAML pipeline definition into a typed PipelineSpec."""

    def resolve(
        self,
        raw: dict[str, Any],
        source_map: SourceMap | None = None,
    ) -> tuple[PipelineSpec, ValidationResult]:
        """Resolve raw YAML dict into a PipelineSpec.

        Returns (definition, validation_result).  Sections that fail to parse fall
        back to their defaults, so the definition is always usable for reporting.
        """
        errors: list[DefinitionError] = []
        warnings: list[DefinitionError] = []

        for key in raw:
            if key not in _TOP_LEVEL_KEYS:
                warnings.append(
                    DefinitionError(
                        code="UNKNOWN_KEY",
                        message=f"Unknown top-level key '{key}' is ignored",
                        path=key,
                        span=_span(source_map, key),
                        suggestions=_suggest_similar(key, sorted(_TOP_LEVEL_KEYS)),
                    )
                )

        header = {k: raw[k] for k in _HEADER_KEYS if k in raw}
        try:
            spec = PipelineSpec.model_validate(header)
        except ValidationError as exc:
            errors.extend(_from_validation_error(exc, "", "HEADER_PARSE_ERROR", source_map))
            spec = PipelineSpec()

        updates: dict[str, Any] = {}
        for key, (field_name, model_cls, prefix) in _SECTIONS.items():
            if key not in raw or raw[key] is None:
                continue
            raw_section = raw[key]
            code = f"{prefix}_PARSE_ERROR"
            if not isinstance(raw_section, dict):
                errors.append(
                    DefinitionError(
                        code=code,
                        message=f"'{key}' must be a YAML mapping, not a list or scalar",
                        path=key,
                        span=_span(source_map, key),
                    )
                )
                continue
            if key == "trigger":
                raw_section = self._check_trigger_events(raw_section, errors, source_map)
            try:
                updates[field_name] = model_cls.model_validate(raw_section)
            except ValidationError as exc:
                errors.extend(_from_validation_error(exc, key, code, source_map))

        if "pipeline" in raw and raw["pipeline"] is not None:
            pipeline = self._resolve_pipeline(raw["pipeline"], errors, source_map)
            if pipeline is not None:
                updates["pipeline"] = pipeline

        if updates:
            spec = spec.model_copy(update=updates)

        return spec, ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # -- pipeline ------------------------------------------------------------

    def _resolve_pipeline(
        self,
        raw_pipeline: Any,
        errors: list[DefinitionError],
        source_map: SourceMap | None,
    ) -> PipelineConfig | None:
        if not isinstance(raw_pipeline, dict):
            errors.append(
                DefinitionError(
                    code="PIPELINE_PARSE_ERROR",
                    message="'pipeline' must be a YAML mapping, not a list or scalar",
                    path="pipeline",
                    span=_span(source_map, "pipeline"),
                )
            )
            return None

        raw_stages = raw_pipeline.get("stages")
        stages: list[StageSpec] | None = None
        if raw_stages is not None:
            if not isinstance(raw_stages, list):
                errors.append(
                    DefinitionError(
                        code="PIPELINE_PARSE_ERROR",
                        message="'pipeline.stages' must be a YAML list",
                        path="pipeline.stages",
                        span=_span(source_map, "pipeline.stages"),
                    )
                )
                return None
            stages = []
            for i, raw_stage in enumerate(raw_stages):
                stage = self._resolve_stage(raw_stage, f"pipeline.stages[{i}]", errors, source_map)
                if stage is not None:
                    stages.append(stage)

        fields: dict[str, Any] = {k: v for k, v in raw_pipeline.items() if k != "stages"}
        try:
            config = PipelineConfig.model_validate(fields)
        except ValidationError as exc:
            errors.extend(
                _from_validation_error(exc, "pipeline", "PIPELINE_PARSE_ERROR", source_map)
            )
            return None
        if stages is not None:
            config = config.model_copy(update={"stages": stages})
        return config

    def _resolve_stage(
        self,
        raw_stage: Any,
        path: str,
        errors: list[DefinitionError],
        source_map: SourceMap | None,
    ) -> StageSpec | None:
        if not isinstance(raw_stage, dict) or "name" not in raw_stage:
            errors.append(
                DefinitionError(
                    code="STAGE_PARSE_ERROR",
                    message=f"Stage at {path} must be a mapping with a 'name'",
                    path=path,
                    span=_span(source_map, path),
                )
            )
            return None
        name = str(raw_stage["name"])
        raw_actions = raw_stage.get("actions", [])
        if not isinstance(raw_actions, list):
            errors.append(
                DefinitionError(
                    code="STAGE_PARSE_ERROR",
                    message=f"Stage '{name}' actions must be a YAML list",
                    path=f"{path}.actions",
                    span=_span(source_map, f"{path}.actions"),
                )
            )
            return None

        actions: list[ActionSpec] = []
        for j, raw_action in enumerate(raw_actions):
            action_path = f"{path}.actions[{j}]"
            if not isinstance(raw_action, dict):
                errors.append(
                    DefinitionError(
                        code="ACTION_PARSE_ERROR",
                        message=f"Action at {action_path} must be a mapping",
                        path=action_path,
                        span=_span(source_map, action_path),
                    )
                )
                continue
            provider = raw_action.get("provider")
            known = [p.value for p in ActionProvider]
            if provider not in known:
                errors.append(
                    DefinitionError(
                        code="UNKNOWN_PROVIDER",
                        message=(
                            f"Action '{raw_action.get('name', j)}' in stage '{name}' "
                            f"uses unknown provider '{provider}'"
                        ),
                        path=f"{action_path}.provider",
                        span=_span(source_map, f"{action_path}.provider"),
                        suggestions=_suggest_similar(str(provider), known),
                    )
                )
                continue
            try:
                actions.append(ActionSpec.model_validate(raw_action))
            except ValidationError as exc:
                errors.extend(
                    _from_validation_error(exc, action_path, "ACTION_PARSE_ERROR", source_map)
                )
        return StageSpec(name=name, actions=actions)

    # -- trigger -------------------------------------------------------------

    @staticmethod
    def _check_trigger_events(
        raw_section: dict[str, Any],
        errors: list[DefinitionError],
        source_map: SourceMap | None,
    ) -> dict[str, Any]:
        """Report unknown trigger events individually and drop them."""
        events = raw_section.get("events")
        if not isinstance(events, list):
            return raw_section
        known = [e.value for e in TriggerEvent]
        kept = []
        for i, event in enumerate(events):
            if event in known:
                kept.append(event)
                continue
            errors.append(
                DefinitionError(
                    code="UNKNOWN_TRIGGER_EVENT",
                    message=f"Unknown trigger event '{event}'",
                    path=f"trigger.events[{i}]",
                    span=_span(source_map, f"trigger.events[{i}]"),
                    suggestions=_suggest_similar(str(event), known),
                )
            )
        return {**raw_section, "events": kept}


def _span(source_map: SourceMap | None, path: str) -> SourceSpan | None:
    return source_map.nearest(path) if source_map else None


def _from_validation_error(
    exc: ValidationError,
    prefix: str,
    code: str,
    source_map: SourceMap | None,
) -> list[DefinitionError]:
    """Convert pydantic validation errors into DefinitionErrors with YAML paths."""
    out: list[DefinitionError] = []
    for err in exc.errors():
        path = prefix
        for part in err["loc"]:
            if isinstance(part, int):
                path = f"{path}[{part}]"
            else:
                path = f"{path}.{part}" if path else str(part)
        out.append(
            DefinitionError(
                code=code,
                message=f"{path or 'definition'}: {err['msg']}",
                path=path or None,
                span=_span(source_map, path),
            )
        )
    return out


def _suggest_similar(name: str, candidates: list[str], max_suggestions: int = 3) -> list[str]:
    """Suggest similar names for 'did you mean?' messages."""
    name_lower = name.lower()
    scored = []
    for candidate in candidates:
        candidate_lower = candidate.lower()
        if name_lower in candidate_lower or candidate_lower in name_lower:
            scored.append((0, candidate))
        else:
            common = sum(1 for c in name_lower if c in candidate_lower)
            scored.append((len(name) + len(candidate) - 2 * common, candidate))
    scored.sort(key=lambda x: x[0])
    return [s[1] for s in scored[:max_suggestions]]
