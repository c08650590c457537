"""CloudFormation intrinsic-function AST, traversal and evaluation."""

from crossdeploy.intrinsics.evaluator import EvaluationError, Evaluator
from crossdeploy.intrinsics.nodes import (
    AWS_ACCOUNT_ID,
    AWS_REGION,
    GetAtt,
    Join,
    Ref,
    Split,
    Sub,
    cross_account_role_arn,
)
from crossdeploy.intrinsics.visitor import IntrinsicVisitor, ReferenceCollector, collect_references

__all__ = [
    "AWS_ACCOUNT_ID",
    "AWS_REGION",
    "EvaluationError",
    "Evaluator",
    "GetAtt",
    "IntrinsicVisitor",
    "Join",
    "Ref",
    "ReferenceCollector",
    "Split",
    "Sub",
    "collect_references",
    "cross_account_role_arn",
]
