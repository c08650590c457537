"""Stack parameter binding: defaults, constraints, unknown names."""

from __future__ import annotations

import re
from collections.abc import Mapping

from crossdeploy.models.errors import DefinitionError
from crossdeploy.models.stack import Parameter


class ParameterValidationError(ValueError):
    """Raised when supplied parameter values violate the template's constraints."""

    def __init__(self, errors: list[DefinitionError]) -> None:
        self.errors = errors
        summary = "; ".join(e.message for e in errors)
        super().__init__(f"Parameter validation failed: {summary}")


class ParameterBinder:
    """Binds caller-supplied values to a plan's parameters."""

    def __init__(self, parameters: Mapping[str, Parameter]) -> None:
        self._parameters = dict(parameters)

    def bind(self, values: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the effective value for every parameter.

        Raises ``ParameterValidationError`` listing every violation at once.
        """
        supplied = dict(values or {})
        errors: list[DefinitionError] = []
        bound: dict[str, str] = {}

        for name in sorted(set(supplied) - set(self._parameters)):
            errors.append(
                DefinitionError(
                    code="UNKNOWN_PARAMETER",
                    message=f"Unknown parameter '{name}'",
                    path=f"parameters.{name}",
                    suggestions=sorted(self._parameters),
                )
            )

        for name, param in self._parameters.items():
            if name in supplied:
                value = str(supplied[name])
            elif param.default is not None:
                value = param.default
            else:
                errors.append(
                    DefinitionError(
                        code="MISSING_PARAMETER",
                        message=f"Parameter '{name}' has no default and must be supplied",
                        path=f"parameters.{name}",
                    )
                )
                continue
            errors.extend(self.check(param, value))
            bound[name] = value

        if errors:
            raise ParameterValidationError(errors)
        return bound

    @staticmethod
    def check(param: Parameter, value: str) -> list[DefinitionError]:
        """Check one value against its parameter's constraints."""
        errors: list[DefinitionError] = []
        path = f"parameters.{param.name}"
        hint = f" ({param.constraint_description})" if param.constraint_description else ""

        if param.allowed_values and value not in param.allowed_values:
            errors.append(
                DefinitionError(
                    code="PARAMETER_NOT_ALLOWED",
                    message=(
                        f"'{value}' is not an allowed value for {param.name}; "
                        f"expected one of {', '.join(param.allowed_values)}"
                    ),
                    path=path,
                    suggestions=list(param.allowed_values),
                )
            )
        if param.min_length is not None and len(value) < param.min_length:
            errors.append(
                DefinitionError(
                    code="PARAMETER_TOO_SHORT",
                    message=(
                        f"{param.name} must be at least {param.min_length} characters{hint}"
                    ),
                    path=path,
                )
            )
        if param.max_length is not None and len(value) > param.max_length:
            errors.append(
                DefinitionError(
                    code="PARAMETER_TOO_LONG",
                    message=f"{param.name} must be at most {param.max_length} characters{hint}",
                    path=path,
                )
            )
        if param.allowed_pattern and not re.fullmatch(param.allowed_pattern, value, re.ASCII):
            errors.append(
                DefinitionError(
                    code="PARAMETER_PATTERN_MISMATCH",
                    message=(
                        f"'{value}' does not match the pattern {param.allowed_pattern} "
                        f"for {param.name}{hint}"
                    ),
                    path=path,
                )
            )
        return errors
