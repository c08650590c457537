"""Immutable CloudFormation intrinsic-function nodes.

Template values are plain scalars, lists, dicts, or one of these nodes.
Every reference between resources is expressed through them, never by
string concatenation, so references can be collected and checked.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

AWS_REGION = "AWS::Region"
AWS_ACCOUNT_ID = "AWS::AccountId"
AWS_PARTITION = "AWS::Partition"
AWS_STACK_NAME = "AWS::StackName"

PSEUDO_PARAMETERS = frozenset({AWS_REGION, AWS_ACCOUNT_ID, AWS_PARTITION, AWS_STACK_NAME})

# ${Name} or ${Resource.Attribute}; ${!Literal} is an escape and not a variable.
_SUB_VAR_RE = re.compile(r"\$\{(?!!)([^}]+)\}")


@dataclass(frozen=True)
class Ref:
    """!Ref: a parameter value or a resource's physical id."""

    name: str


@dataclass(frozen=True)
class GetAtt:
    """!GetAtt Resource.Attribute"""

    resource: str
    attribute: str


@dataclass(frozen=True)
class Sub:
    """!Sub with ``${Var}`` placeholders, optionally with a local variable map."""

    template: str
    variables: dict[str, Any] = field(default_factory=dict, hash=False)

    def placeholders(self) -> list[str]:
        """Return the placeholder names in order of appearance."""
        return _SUB_VAR_RE.findall(self.template)


@dataclass(frozen=True)
class Join:
    """!Join [delimiter, [values...]] or !Join [delimiter, <list-valued intrinsic>]"""

    delimiter: str
    values: tuple[Any, ...] | Split = ()


@dataclass(frozen=True)
class Split:
    """!Split [delimiter, source]"""

    delimiter: str
    source: Any


Intrinsic = Ref | GetAtt | Sub | Join | Split

INTRINSIC_TYPES: tuple[type, ...] = (Ref, GetAtt, Sub, Join, Split)


def join(delimiter: str, *values: Any) -> Join:
    return Join(delimiter=delimiter, values=tuple(values))


def sanitized_branch(parameter: str) -> Join:
    """Branch parameter with ``/`` replaced by ``-`` (``feature/x`` → ``feature-x``)."""
    return Join(delimiter="-", values=Split(delimiter="/", source=Ref(parameter)))


def cross_account_role_arn(account_parameter: str, role_parameter: str) -> Sub:
    """ARN of a role in the target account, built from two stack parameters."""
    return Sub(f"arn:aws:iam::${{{account_parameter}}}:role/${{{role_parameter}}}")


def is_intrinsic(value: Any) -> bool:
    return isinstance(value, INTRINSIC_TYPES)
