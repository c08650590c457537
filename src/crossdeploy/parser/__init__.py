"""YAML parsing with line fidelity for crossdeploy pipeline definitions."""

from crossdeploy.parser.loader import SourceMap, TrackedLoader, YAMLSafetyError
from crossdeploy.parser.resolver import DefinitionResolver
from crossdeploy.parser.validator import DefinitionValidator

__all__ = [
    "DefinitionResolver",
    "DefinitionValidator",
    "SourceMap",
    "TrackedLoader",
    "YAMLSafetyError",
]
