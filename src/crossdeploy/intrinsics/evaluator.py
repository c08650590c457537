"""Resolve intrinsic values to concrete strings, simulating deploy-time resolution.

Physical attributes follow the ARN formats AWS assigns to each resource
type.  Ids AWS would generate (KMS key ids, repository ids) are derived
deterministically from the logical id, account and region.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from crossdeploy.intrinsics.nodes import (
    AWS_ACCOUNT_ID,
    AWS_PARTITION,
    AWS_REGION,
    AWS_STACK_NAME,
    GetAtt,
    Join,
    Ref,
    Split,
    Sub,
)
from crossdeploy.intrinsics.visitor import IntrinsicVisitor

_ID_NAMESPACE = uuid.UUID("5b0f7f9e-3d38-4f3a-8f5e-2f1c8d2b9a41")


class EvaluationError(Exception):
    """Raised when a value refers to something that cannot be resolved."""


@dataclass(frozen=True)
class _Physical:
    """Resolution context for one resource."""

    logical_id: str
    name: str
    account_id: str
    region: str

    def generated_id(self) -> str:
        return str(uuid.uuid5(_ID_NAMESPACE, f"{self.account_id}:{self.region}:{self.logical_id}"))


_AttrFn = Callable[[_Physical], str]

# resource type → (Ref result, {attribute: result})
RESOURCE_ATTRIBUTES: dict[str, tuple[_AttrFn, dict[str, _AttrFn]]] = {
    "AWS::IAM::Role": (
        lambda p: p.name,
        {
            "Arn": lambda p: f"arn:aws:iam::{p.account_id}:role/{p.name}",
            "RoleId": lambda p: "AROA" + p.generated_id().replace("-", "")[:17].upper(),
        },
    ),
    "AWS::IAM::ManagedPolicy": (
        lambda p: f"arn:aws:iam::{p.account_id}:policy/{p.name}",
        {},
    ),
    "AWS::CodeCommit::Repository": (
        lambda p: p.generated_id(),
        {
            "Arn": lambda p: f"arn:aws:codecommit:{p.region}:{p.account_id}:{p.name}",
            "Name": lambda p: p.name,
            "CloneUrlHttp": lambda p: (
                f"https://git-codecommit.{p.region}.amazonaws.com/v1/repos/{p.name}"
            ),
            "CloneUrlSsh": lambda p: (
                f"ssh://git-codecommit.{p.region}.amazonaws.com/v1/repos/{p.name}"
            ),
        },
    ),
    "AWS::CodeBuild::Project": (
        lambda p: p.name,
        {"Arn": lambda p: f"arn:aws:codebuild:{p.region}:{p.account_id}:project/{p.name}"},
    ),
    "AWS::CodePipeline::Pipeline": (
        lambda p: p.name,
        {"Version": lambda p: "1"},
    ),
    "AWS::Events::Rule": (
        lambda p: p.name,
        {"Arn": lambda p: f"arn:aws:events:{p.region}:{p.account_id}:rule/{p.name}"},
    ),
    "AWS::KMS::Key": (
        lambda p: p.generated_id(),
        {
            "Arn": lambda p: f"arn:aws:kms:{p.region}:{p.account_id}:key/{p.generated_id()}",
            "KeyId": lambda p: p.generated_id(),
        },
    ),
    "AWS::KMS::Alias": (lambda p: p.name, {}),
    "AWS::S3::Bucket": (
        lambda p: p.name,
        {
            "Arn": lambda p: f"arn:aws:s3:::{p.name}",
            "DomainName": lambda p: f"{p.name}.s3.amazonaws.com",
        },
    ),
    "AWS::S3::BucketPolicy": (lambda p: p.logical_id, {}),
}


def supported_attributes(resource_type: str) -> set[str]:
    """Attribute names ``GetAtt`` may request for *resource_type*."""
    entry = RESOURCE_ATTRIBUTES.get(resource_type)
    return set(entry[1]) if entry else set()


class Evaluator(IntrinsicVisitor):
    """Resolves a value tree against bound parameters and simulated resources.

    *resources* maps logical id → ``(resource_type, name_value)``, where
    ``name_value`` is itself a (possibly intrinsic) value naming the physical
    resource, or ``None`` if AWS would generate the name.
    """

    def __init__(
        self,
        parameters: Mapping[str, str],
        *,
        account_id: str,
        region: str,
        resources: Mapping[str, tuple[str, Any]] | None = None,
        stack_name: str = "crossdeploy",
    ) -> None:
        self._parameters = dict(parameters)
        self._pseudo = {
            AWS_ACCOUNT_ID: account_id,
            AWS_REGION: region,
            AWS_PARTITION: "aws",
            AWS_STACK_NAME: stack_name,
        }
        self._account_id = account_id
        self._region = region
        self._resources = dict(resources or {})
        self._names: dict[str, str] = {}
        self._resolving: set[str] = set()

    def evaluate(self, value: Any) -> Any:
        return self.visit(value)

    # -- name resolution -----------------------------------------------------

    def _lookup(self, name: str) -> str:
        if name in self._pseudo:
            return self._pseudo[name]
        if name in self._parameters:
            return self._parameters[name]
        if name in self._resources:
            return self._resource_ref(name)
        raise EvaluationError(f"Unresolved reference '{name}'")

    def _physical(self, logical_id: str) -> tuple[str, _Physical]:
        if logical_id not in self._resources:
            raise EvaluationError(f"Unknown resource '{logical_id}'")
        resource_type, name_value = self._resources[logical_id]
        if logical_id not in self._names:
            if logical_id in self._resolving:
                raise EvaluationError(f"Circular name reference through '{logical_id}'")
            self._resolving.add(logical_id)
            try:
                self._names[logical_id] = (
                    logical_id if name_value is None else str(self.visit(name_value))
                )
            finally:
                self._resolving.discard(logical_id)
        return resource_type, _Physical(
            logical_id=logical_id,
            name=self._names[logical_id],
            account_id=self._account_id,
            region=self._region,
        )

    def _resource_ref(self, logical_id: str) -> str:
        resource_type, physical = self._physical(logical_id)
        entry = RESOURCE_ATTRIBUTES.get(resource_type)
        return entry[0](physical) if entry else physical.name

    def _attribute(self, logical_id: str, attribute: str) -> str:
        resource_type, physical = self._physical(logical_id)
        entry = RESOURCE_ATTRIBUTES.get(resource_type)
        if entry is None or attribute not in entry[1]:
            raise EvaluationError(
                f"Resource '{logical_id}' ({resource_type}) has no attribute '{attribute}'"
            )
        return entry[1][attribute](physical)

    # -- visitor -------------------------------------------------------------

    def visit_ref(self, node: Ref) -> Any:
        return self._lookup(node.name)

    def visit_getatt(self, node: GetAtt) -> Any:
        return self._attribute(node.resource, node.attribute)

    def visit_sub(self, node: Sub) -> Any:
        local = {k: str(self.visit(v)) for k, v in node.variables.items()}
        result = node.template
        for placeholder in node.placeholders():
            if placeholder in local:
                resolved = local[placeholder]
            elif "." in placeholder:
                resource, attribute = placeholder.split(".", 1)
                resolved = self._attribute(resource, attribute)
            else:
                resolved = self._lookup(placeholder)
            result = result.replace("${" + placeholder + "}", resolved, 1)
        return result.replace("${!", "${")

    def visit_join(self, node: Join) -> Any:
        values = self.visit(node.values)
        return node.delimiter.join(str(v) for v in values)

    def visit_split(self, node: Split) -> Any:
        return str(self.visit(node.source)).split(node.delimiter)
