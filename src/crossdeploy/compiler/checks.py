"""Plan checks: properties every generated stack must hold before it is rendered.

These run on the typed plan rather than on rendered text, so a violation is
reported against the logical id and policy statement that caused it.
"""

from __future__ import annotations

from crossdeploy.compiler.access import ALLOWED_WILDCARDS, action_matches
from crossdeploy.compiler.graph import ResourceGraph
from crossdeploy.intrinsics.evaluator import supported_attributes
from crossdeploy.intrinsics.nodes import PSEUDO_PARAMETERS, is_intrinsic
from crossdeploy.intrinsics.visitor import ReferenceCollector, collect_references
from crossdeploy.models.errors import DefinitionError
from crossdeploy.models.stack import PolicyStatement, Responsibility, StackPlan

# Responsibilities that read or write encrypted artifacts.
_ARTIFACT_CONSUMERS = (Responsibility.BUILD, Responsibility.ORCHESTRATE)


class PlanCheckError(Exception):
    """Raised when a stack plan violates a structural or access property."""

    def __init__(self, errors: list[DefinitionError]) -> None:
        self.errors = errors
        summary = "; ".join(f"[{e.code}] {e.message}" for e in errors)
        super().__init__(f"Stack plan check failed: {summary}")


class PlanChecker:
    """Checks references, access scoping, key agreement and artifact flow."""

    def check(self, plan: StackPlan, graph: ResourceGraph | None = None) -> list[DefinitionError]:
        graph = graph or ResourceGraph(plan)
        errors: list[DefinitionError] = []
        errors.extend(self._check_references(plan, graph))
        errors.extend(self._check_cycles(graph))
        errors.extend(self._check_scoping(plan))
        errors.extend(self._check_key_agreement(plan))
        errors.extend(self._check_trigger_rules(plan))
        errors.extend(self._check_artifact_chain(plan))
        return errors

    def enforce(self, plan: StackPlan, graph: ResourceGraph | None = None) -> None:
        """Raise ``PlanCheckError`` if any check fails."""
        errors = self.check(plan, graph)
        if errors:
            raise PlanCheckError(errors)

    # -- references ----------------------------------------------------------

    def _check_references(self, plan: StackPlan, graph: ResourceGraph) -> list[DefinitionError]:
        errors: list[DefinitionError] = []
        for ref in graph.dangling_references():
            errors.append(
                DefinitionError(
                    code="DANGLING_REFERENCE",
                    message=f"'{ref.source}' refers to undeclared '{ref.target}'",
                    path=f"Resources.{ref.source}",
                )
            )

        types = plan.resource_types()
        for source, resource, attribute in graph.attribute_references():
            if attribute not in supported_attributes(types[resource]):
                errors.append(
                    DefinitionError(
                        code="DANGLING_REFERENCE",
                        message=(
                            f"'{source}' reads attribute '{attribute}' that "
                            f"{types[resource]} '{resource}' does not expose"
                        ),
                        path=f"Resources.{source}",
                    )
                )

        declared = set(types) | set(plan.parameters) | PSEUDO_PARAMETERS
        for output in plan.outputs:
            for name in sorted(collect_references(output.value) - declared):
                errors.append(
                    DefinitionError(
                        code="DANGLING_REFERENCE",
                        message=f"Output '{output.name}' refers to undeclared '{name}'",
                        path=f"Outputs.{output.name}",
                    )
                )
        return errors

    def _check_cycles(self, graph: ResourceGraph) -> list[DefinitionError]:
        return [
            DefinitionError(
                code="CYCLIC_DEPENDENCY",
                message=f"Resources depend on each other: {' -> '.join([*cycle, cycle[0]])}",
                path="Resources",
            )
            for cycle in graph.detect_cycles()
        ]

    # -- access --------------------------------------------------------------

    def _check_scoping(self, plan: StackPlan) -> list[DefinitionError]:
        """Identity-policy resources must name a declared resource."""
        errors: list[DefinitionError] = []
        declared = set(plan.resource_types()) | set(plan.parameters)
        for role, policy in plan.identity_policies():
            for stmt in policy.document.statements:
                for resource in stmt.resources:
                    if _is_scoped(resource, declared) or _allowed_wildcard(stmt, resource):
                        continue
                    label = stmt.sid or ", ".join(stmt.actions)
                    errors.append(
                        DefinitionError(
                            code="UNSCOPED_RESOURCE",
                            message=(
                                f"Policy '{policy.name}' on role '{role.logical_id}' grants "
                                f"{label} on unscoped resource {resource!r}"
                            ),
                            path=f"Resources.{policy.logical_id or role.logical_id}",
                        )
                    )
        return errors

    def _check_key_agreement(self, plan: StackPlan) -> list[DefinitionError]:
        """The bucket's encryption key is the key every artifact consumer may decrypt with."""
        errors: list[DefinitionError] = []
        store = plan.artifact_store
        bucket_key = store.encryption_key
        if bucket_key.resource != store.key.logical_id:
            errors.append(
                DefinitionError(
                    code="KEY_MISMATCH",
                    message=(
                        f"Bucket '{store.logical_id}' is encrypted with '{bucket_key.resource}', "
                        f"not with the pipeline key '{store.key.logical_id}'"
                    ),
                    path=f"Resources.{store.logical_id}",
                )
            )
        for role in plan.roles.values():
            if role.responsibility not in _ARTIFACT_CONSUMERS:
                continue
            granted = any(
                bucket_key in stmt.resources
                and any(action_matches(a, "kms:Decrypt") for a in stmt.actions)
                for policy in plan.policies_for(role.logical_id)
                for stmt in policy.document.statements
                if stmt.effect == "Allow"
            )
            if not granted:
                errors.append(
                    DefinitionError(
                        code="KEY_MISMATCH",
                        message=(
                            f"Role '{role.logical_id}' reads encrypted artifacts but is not "
                            f"granted kms:Decrypt on '{bucket_key.resource}'"
                        ),
                        path=f"Resources.{role.logical_id}",
                    )
                )
        return errors

    # -- trigger -------------------------------------------------------------

    def _check_trigger_rules(self, plan: StackPlan) -> list[DefinitionError]:
        enabled = plan.enabled_rules()
        if len(enabled) == 1:
            return []
        return [
            DefinitionError(
                code="TRIGGER_RULE_COUNT",
                message=(
                    f"Exactly one enabled trigger rule must start the pipeline; "
                    f"found {len(enabled)}"
                ),
                path="Resources",
            )
        ]

    # -- artifacts -----------------------------------------------------------

    def _check_artifact_chain(self, plan: StackPlan) -> list[DefinitionError]:
        errors: list[DefinitionError] = []
        produced: set[str] = set()
        for stage in plan.pipeline.stages:
            for action in sorted(stage.actions, key=lambda a: a.run_order):
                missing = [a for a in action.input_artifacts if a not in produced]
                if missing:
                    errors.append(
                        DefinitionError(
                            code="ARTIFACT_CHAIN",
                            message=(
                                f"Action '{action.name}' in stage '{stage.name}' consumes "
                                f"{', '.join(missing)} before any action produces it"
                            ),
                            path=f"Resources.{plan.pipeline.logical_id}",
                        )
                    )
                produced.update(action.output_artifacts)
        return errors


def _is_scoped(resource: object, declared: set[str]) -> bool:
    if not is_intrinsic(resource):
        return isinstance(resource, str) and "*" not in resource
    collector = ReferenceCollector()
    collector.collect(resource)
    return bool(collector.names & declared)


def _allowed_wildcard(stmt: PolicyStatement, resource: object) -> bool:
    return bool(stmt.actions) and all((a, resource) in ALLOWED_WILDCARDS for a in stmt.actions)
