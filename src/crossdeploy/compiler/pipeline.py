"""Orchestrates the full compilation pipeline: Definition → Plan → Checks → Template → Text."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from crossdeploy.compiler.builder import StackBuilder
from crossdeploy.compiler.checks import PlanChecker
from crossdeploy.compiler.codegen import TemplateGenerator
from crossdeploy.compiler.graph import ResourceGraph
from crossdeploy.compiler.parameters import ParameterBinder
from crossdeploy.compiler.validator import validate_template
from crossdeploy.models.definition import PipelineSpec
from crossdeploy.models.stack import StackPlan
from crossdeploy.render.registry import FormatRegistry


@dataclass
class CompilationResult:
    """The result of compiling a pipeline definition to a template."""

    template: str
    format: str
    resources: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    parameters: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    template_valid: bool = True


class CompilationPipeline:
    """Orchestrates: Definition → Plan → Checks → Template → Rendering → Validation."""

    def __init__(self) -> None:
        self._builder = StackBuilder()
        self._checker = PlanChecker()
        self._generator = TemplateGenerator()

    def plan(self, spec: PipelineSpec) -> StackPlan:
        """Build and check the stack plan; raises ``PlanCheckError`` on violations."""
        plan = self._builder.build(spec)
        self._checker.enforce(plan)
        return plan

    def compile(
        self,
        spec: PipelineSpec,
        format_name: str,
        parameters: Mapping[str, str] | None = None,
    ) -> CompilationResult:
        """Compile a definition to a template in the requested format.

        When *parameters* is given, the values are bound against the
        template's parameter constraints first (``ParameterValidationError``).
        """
        # Resolve the format early so an unknown name fails before any work
        template_format = FormatRegistry.get(format_name)

        # Phase 1: Planning + property checks
        plan = self._builder.build(spec)
        graph = ResourceGraph(plan)
        self._checker.enforce(plan, graph)

        # Phase 1.5: Parameter binding (optional)
        bound: dict[str, str] = {}
        if parameters is not None:
            bound = ParameterBinder(plan.parameters).bind(parameters)

        # Phase 2: Template generation + rendering
        template = self._generator.generate(plan)
        text = template_format.render(template)

        # Phase 3: Reference validation (non-blocking)
        validation_errors = validate_template(template)
        template_valid = len(validation_errors) == 0
        warnings = [f"Template validation: {e}" for e in validation_errors]

        return CompilationResult(
            template=text,
            format=template_format.name,
            resources=graph.creation_order(),
            outputs=[o.name for o in plan.outputs],
            parameters=bound,
            warnings=warnings,
            template_valid=template_valid,
        )
