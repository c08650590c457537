"""Structured definition errors with YAML source position tracking."""

from __future__ import annotations

from pydantic import BaseModel


class SourceSpan(BaseModel):
    """Points to exact location in YAML source for error reporting."""

    file: str
    line: int
    column: int
    end_line: int | None = None
    end_column: int | None = None


class DefinitionError(BaseModel):
    """A structured error with optional source position and suggestions."""

    code: str
    message: str
    path: str | None = None
    span: SourceSpan | None = None
    suggestions: list[str] = []


class ValidationResult(BaseModel):
    """Result of pipeline definition validation."""

    valid: bool
    errors: list[DefinitionError] = []
    warnings: list[DefinitionError] = []


class DefinitionValidationError(ValueError):
    """Raised when a pipeline definition has validation errors."""

    def __init__(self, errors: list[DefinitionError]) -> None:
        self.errors = errors
        msgs = "; ".join(e.message for e in errors)
        super().__init__(f"Definition validation failed: {msgs}")
