"""Compiler: definition → stack plan → checked template."""

from crossdeploy.compiler.builder import StackBuilder
from crossdeploy.compiler.checks import PlanCheckError, PlanChecker
from crossdeploy.compiler.codegen import TemplateGenerator
from crossdeploy.compiler.graph import ResourceGraph
from crossdeploy.compiler.parameters import ParameterBinder, ParameterValidationError
from crossdeploy.compiler.pipeline import CompilationPipeline, CompilationResult
from crossdeploy.compiler.validator import validate_template

__all__ = [
    "CompilationPipeline",
    "CompilationResult",
    "ParameterBinder",
    "ParameterValidationError",
    "PlanCheckError",
    "PlanChecker",
    "ResourceGraph",
    "StackBuilder",
    "TemplateGenerator",
    "validate_template",
]
