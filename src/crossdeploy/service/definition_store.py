"""In-memory definition registry: core service layer reusable by MCP, REST API and CLI."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ruamel.yaml.error import YAMLError

from crossdeploy.compiler.access import target_trust_policy
from crossdeploy.compiler.checks import PlanCheckError
from crossdeploy.compiler.parameters import ParameterBinder
from crossdeploy.compiler.pipeline import CompilationPipeline, CompilationResult
from crossdeploy.models.definition import PipelineSpec
from crossdeploy.models.errors import DefinitionError, DefinitionValidationError
from crossdeploy.models.stack import StackPlan
from crossdeploy.parser.loader import TrackedLoader, YAMLSafetyError
from crossdeploy.parser.resolver import DefinitionResolver
from crossdeploy.parser.validator import DefinitionValidator

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class LoadResult:
    """Result of loading a definition into the store."""

    definition_id: str
    name: str
    stages: int
    branches: list[str]
    resources: int
    warnings: list[str]


@dataclass
class ActionInfo:
    name: str
    provider: str
    run_order: int
    input_artifacts: list[str]
    output_artifacts: list[str]


@dataclass
class StageInfo:
    name: str
    actions: list[ActionInfo]


@dataclass
class ParameterInfo:
    name: str
    description: str
    default: str | None
    allowed_values: list[str]
    allowed_pattern: str | None


@dataclass
class RoleInfo:
    """One identity, the service that may assume it and the actions it is granted."""

    logical_id: str
    role_name: str
    service_principal: str
    responsibility: str
    actions: list[str]


@dataclass
class DefinitionDescription:
    """Structured summary of a loaded definition: designed for LLM consumption."""

    definition_id: str
    name: str
    repository: str
    branches: list[str]
    default_branch: str
    environments: list[str]
    trigger_events: list[str]
    stages: list[StageInfo]
    parameters: list[ParameterInfo]
    roles: list[RoleInfo]
    resources: dict[str, str]
    outputs: list[str]
    target_trust_policy: dict[str, Any]


@dataclass
class DefinitionSummary:
    """Short summary for listing definitions."""

    definition_id: str
    name: str
    repository: str
    stages: int


@dataclass
class ErrorInfo:
    """A single validation error or warning."""

    code: str
    message: str
    path: str | None = None
    suggestions: list[str] = field(default_factory=list)

    @classmethod
    def from_error(cls, error: DefinitionError) -> ErrorInfo:
        return cls(
            code=error.code,
            message=error.message,
            path=error.path,
            suggestions=list(error.suggestions),
        )


@dataclass
class ValidationSummary:
    """Result of validating a definition without storing it."""

    valid: bool
    errors: list[ErrorInfo]
    warnings: list[ErrorInfo]


@dataclass
class _Entry:
    spec: PipelineSpec
    plan: StackPlan


# ---------------------------------------------------------------------------
# DefinitionStore
# ---------------------------------------------------------------------------


class DefinitionStore:
    """In-memory definition registry.  Thread-safe via ``threading.Lock``.

    Definitions are keyed by short UUID (8-char hex).  *account_id* is the
    source account used when describing the trust policy the target
    account's deployment role must carry.
    """

    def __init__(self, account_id: str = "111111111111") -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._account_id = account_id

        # Internal pipeline singletons (stateless, safe to share).
        self._loader = TrackedLoader()
        self._resolver = DefinitionResolver()
        self._validator = DefinitionValidator()
        self._pipeline = CompilationPipeline()

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:8]

    def _parse_and_validate(
        self, yaml_str: str
    ) -> tuple[PipelineSpec, StackPlan | None, list[DefinitionError], list[DefinitionError]]:
        """Parse YAML, resolve sections, validate, then build and check the plan.

        Returns ``(spec, plan, errors, warnings)``; *plan* is ``None`` when
        anything before plan checking failed.
        """
        # 1. Parse YAML
        try:
            raw, source_map = self._loader.load_string(yaml_str)
        except YAMLSafetyError as exc:
            return PipelineSpec(), None, [_error("YAML_SAFETY_ERROR", str(exc))], []
        except YAMLError as exc:
            return PipelineSpec(), None, [_error("YAML_PARSE_ERROR", str(exc))], []

        # 2. Resolve sections
        spec, resolution = self._resolver.resolve(raw, source_map)
        errors = list(resolution.errors)
        warnings = list(resolution.warnings)

        # 3. Definition validation
        errors.extend(self._validator.validate(spec))
        if errors:
            return spec, None, errors, warnings

        # 4. Plan checks
        try:
            plan = self._pipeline.plan(spec)
        except PlanCheckError as exc:
            return spec, None, errors + exc.errors, warnings
        return spec, plan, errors, warnings

    def _entry(self, definition_id: str) -> _Entry:
        with self._lock:
            try:
                return self._entries[definition_id]
            except KeyError:
                raise KeyError(f"No definition loaded with id '{definition_id}'") from None

    # -- public API ----------------------------------------------------------

    def load_definition(self, yaml_str: str) -> LoadResult:
        """Parse, validate, and store a definition.  Returns id + summary.

        Raises ``DefinitionValidationError`` if the definition has errors.
        """
        spec, plan, errors, warnings = self._parse_and_validate(yaml_str)
        if errors or plan is None:
            raise DefinitionValidationError(errors)

        definition_id = self._new_id()
        with self._lock:
            self._entries[definition_id] = _Entry(spec=spec, plan=plan)

        return LoadResult(
            definition_id=definition_id,
            name=spec.name,
            stages=len(spec.pipeline.stages),
            branches=list(spec.source.branches),
            resources=len(plan.resource_types()),
            warnings=[w.message for w in warnings],
        )

    def validate(self, yaml_str: str) -> ValidationSummary:
        """Validate a YAML definition string without storing it."""
        _spec, _plan, errors, warnings = self._parse_and_validate(yaml_str)
        return ValidationSummary(
            valid=len(errors) == 0,
            errors=[ErrorInfo.from_error(e) for e in errors],
            warnings=[ErrorInfo.from_error(w) for w in warnings],
        )

    def get_definition(self, definition_id: str) -> PipelineSpec:
        """Look up a loaded definition.  Raises ``KeyError`` if not found."""
        return self._entry(definition_id).spec

    def get_plan(self, definition_id: str) -> StackPlan:
        return self._entry(definition_id).plan

    def describe(self, definition_id: str) -> DefinitionDescription:
        """Return a structured summary suitable for LLM consumption."""
        entry = self._entry(definition_id)
        spec, plan = entry.spec, entry.plan

        stages = [
            StageInfo(
                name=stage.name,
                actions=[
                    ActionInfo(
                        name=a.name,
                        provider=a.provider.value,
                        run_order=a.run_order,
                        input_artifacts=list(a.input_artifacts),
                        output_artifacts=list(a.output_artifacts),
                    )
                    for a in stage.actions
                ],
            )
            for stage in spec.pipeline.stages
        ]

        parameters = [
            ParameterInfo(
                name=p.name,
                description=p.description,
                default=p.default,
                allowed_values=list(p.allowed_values),
                allowed_pattern=p.allowed_pattern,
            )
            for p in plan.parameters.values()
        ]

        roles = [
            RoleInfo(
                logical_id=role.logical_id,
                role_name=role.role_name,
                service_principal=role.service_principal,
                responsibility=role.responsibility.value,
                actions=sorted(
                    {
                        action
                        for policy in plan.policies_for(role.logical_id)
                        for stmt in policy.document.statements
                        for action in stmt.actions
                    }
                ),
            )
            for role in plan.roles.values()
        ]

        build_role = plan.roles[plan.build_project.service_role.resource]
        pipeline_role = plan.roles[plan.pipeline.role_arn.resource]
        trust = target_trust_policy(
            self._account_id, build_role.role_name, pipeline_role.role_name
        )

        return DefinitionDescription(
            definition_id=definition_id,
            name=spec.name,
            repository=spec.source.repository,
            branches=list(spec.source.branches),
            default_branch=spec.source.default_branch,
            environments=list(spec.target.environments),
            trigger_events=[e.value for e in spec.trigger.events],
            stages=stages,
            parameters=parameters,
            roles=roles,
            resources=plan.resource_types(),
            outputs=[o.name for o in plan.outputs],
            target_trust_policy=trust.to_dict(),
        )

    def list_definitions(self) -> list[DefinitionSummary]:
        """Return a short summary for every loaded definition."""
        with self._lock:
            items = list(self._entries.items())

        return [
            DefinitionSummary(
                definition_id=did,
                name=e.spec.name,
                repository=e.spec.source.repository,
                stages=len(e.spec.pipeline.stages),
            )
            for did, e in items
        ]

    def remove_definition(self, definition_id: str) -> None:
        """Unload a definition.  Raises ``KeyError`` if not found."""
        with self._lock:
            try:
                del self._entries[definition_id]
            except KeyError:
                raise KeyError(f"No definition loaded with id '{definition_id}'") from None

    def render(
        self,
        definition_id: str,
        format_name: str,
        parameters: Mapping[str, str] | None = None,
    ) -> CompilationResult:
        """Render a loaded definition as a template in the given format."""
        spec = self.get_definition(definition_id)
        return self._pipeline.compile(spec, format_name, parameters)

    def bind_parameters(
        self, definition_id: str, parameters: Mapping[str, str]
    ) -> dict[str, str]:
        """Check stack parameter values; raises ``ParameterValidationError``."""
        plan = self.get_plan(definition_id)
        return ParameterBinder(plan.parameters).bind(parameters)


def _error(code: str, message: str) -> DefinitionError:
    return DefinitionError(code=code, message=message)
