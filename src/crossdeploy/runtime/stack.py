"""A stack plan evaluated against concrete parameters, account and region."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crossdeploy.compiler.parameters import ParameterBinder
from crossdeploy.intrinsics.evaluator import Evaluator
from crossdeploy.intrinsics.nodes import AWS_ACCOUNT_ID, AWS_REGION, GetAtt, Ref, Sub
from crossdeploy.models.stack import REPOSITORY_BRANCH, TARGET_ACCOUNT_ID, StackPlan


@dataclass
class DeployedStack:
    """Physical view of a plan: every value resolvable to a concrete string."""

    plan: StackPlan
    parameters: dict[str, str]
    account_id: str
    region: str
    _evaluator: Evaluator = field(repr=False)

    def resolve(self, value: Any) -> Any:
        return self._evaluator.evaluate(value)

    # -- physical identifiers ------------------------------------------------

    @property
    def repository_name(self) -> str:
        return self.resolve(GetAtt(self.plan.repository.logical_id, "Name"))

    @property
    def repository_arn(self) -> str:
        return self.resolve(GetAtt(self.plan.repository.logical_id, "Arn"))

    @property
    def branch(self) -> str:
        return self.parameters[REPOSITORY_BRANCH]

    @property
    def target_account_id(self) -> str:
        return self.parameters[TARGET_ACCOUNT_ID]

    @property
    def pipeline_name(self) -> str:
        return self.resolve(Ref(self.plan.pipeline.logical_id))

    @property
    def pipeline_arn(self) -> str:
        return self.resolve(
            Sub(
                f"arn:aws:codepipeline:${{{AWS_REGION}}}:${{{AWS_ACCOUNT_ID}}}"
                f":${{{self.plan.pipeline.logical_id}}}"
            )
        )

    @property
    def project_name(self) -> str:
        return self.resolve(Ref(self.plan.build_project.logical_id))

    @property
    def project_arn(self) -> str:
        return self.resolve(GetAtt(self.plan.build_project.logical_id, "Arn"))

    @property
    def bucket_name(self) -> str:
        return self.resolve(Ref(self.plan.artifact_store.logical_id))

    @property
    def key_arn(self) -> str:
        return self.resolve(self.plan.artifact_store.encryption_key)

    def object_arn(self, key: str) -> str:
        return f"arn:aws:s3:::{self.bucket_name}/{key}"

    def role_arn(self, role_id: str) -> str:
        return self.resolve(self.plan.roles[role_id].arn)

    def role_for_arn(self, arn: str) -> str | None:
        """Logical id of the stack role with this ARN, if any."""
        for role_id in self.plan.roles:
            if self.role_arn(role_id) == arn:
                return role_id
        return None

    def outputs(self) -> dict[str, Any]:
        return {o.name: self.resolve(o.value) for o in self.plan.outputs}


def evaluate_stack(
    plan: StackPlan,
    parameters: Mapping[str, str] | None = None,
    *,
    account_id: str,
    region: str,
    stack_name: str | None = None,
) -> DeployedStack:
    """Bind *parameters* and make every value of *plan* resolvable.

    Raises ``ParameterValidationError`` if the parameters are rejected.
    """
    bound = ParameterBinder(plan.parameters).bind(parameters)
    types = plan.resource_types()
    names = plan.physical_names()
    evaluator = Evaluator(
        bound,
        account_id=account_id,
        region=region,
        resources={logical_id: (types[logical_id], names[logical_id]) for logical_id in types},
        stack_name=stack_name or f"{plan.name}-pipeline",
    )
    return DeployedStack(
        plan=plan,
        parameters=bound,
        account_id=account_id,
        region=region,
        _evaluator=evaluator,
    )
