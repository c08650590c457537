"""Resource graph: logical ids as nodes, references as edges. Uses networkx for ordering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import networkx as nx

from crossdeploy.intrinsics.nodes import PSEUDO_PARAMETERS
from crossdeploy.intrinsics.visitor import ReferenceCollector
from crossdeploy.models.stack import StackPlan


@dataclass
class DanglingReference:
    """A reference from a resource to a name that is not declared."""

    source: str
    target: str
    attribute: str | None = None


def resource_values(plan: StackPlan) -> dict[str, list[Any]]:
    """Logical id → every value the resource's properties carry."""
    store = plan.artifact_store
    key = store.key
    values: dict[str, list[Any]] = {
        plan.repository.logical_id: [plan.repository.name],
        plan.build_project.logical_id: [
            plan.build_project.name,
            plan.build_project.service_role,
            store.encryption_key,
            [v.value for v in plan.build_project.environment_variables],
        ],
        plan.pipeline.logical_id: [
            plan.pipeline.name,
            plan.pipeline.role_arn,
            plan.pipeline.artifact_bucket,
            store.encryption_key,
            [a.configuration for s in plan.pipeline.stages for a in s.actions],
        ],
        key.logical_id: [key.key_policy.to_dict()],
        key.alias_logical_id: [key.alias_name, key.arn],
        store.logical_id: [store.bucket_name, store.encryption_key],
        store.policy_logical_id: [
            store.bucket_policy.to_dict(),
            plan.pipeline.artifact_bucket,
        ],
    }
    for rule in plan.trigger_rules:
        values[rule.logical_id] = [
            rule.name,
            rule.pattern.to_dict(),
            [(t.arn, t.id, t.role_arn) for t in rule.targets],
        ]
    for role in plan.roles.values():
        values[role.logical_id] = [p.document.to_dict() for p in role.inline_policies]
    for policy in plan.managed_policies:
        if policy.logical_id:
            values[policy.logical_id] = [
                policy.document.to_dict(),
                [plan.roles[r].arn if r in plan.roles else r for r in policy.roles],
            ]
    return values


class ResourceGraph:
    """Directed graph of resource dependencies (edge A → B: A refers to B)."""

    def __init__(self, plan: StackPlan) -> None:
        self._graph: nx.DiGraph[str] = nx.DiGraph()
        self._plan = plan
        self._dangling: list[DanglingReference] = []
        self._attributes: list[tuple[str, str, str]] = []
        self._build(plan)

    def _build(self, plan: StackPlan) -> None:
        resource_ids = set(plan.resource_types())
        declared = resource_ids | set(plan.parameters) | PSEUDO_PARAMETERS
        for logical_id in resource_ids:
            self._graph.add_node(logical_id)

        for logical_id, values in resource_values(plan).items():
            collector = ReferenceCollector()
            collector.collect(values)
            attributes = dict(collector.attributes)
            self._attributes.extend(
                (logical_id, resource, attribute)
                for resource, attribute in sorted(collector.attributes)
                if resource in resource_ids
            )
            for name in sorted(collector.names):
                if name not in declared:
                    self._dangling.append(
                        DanglingReference(
                            source=logical_id, target=name, attribute=attributes.get(name)
                        )
                    )
                elif name in resource_ids and name != logical_id:
                    self._graph.add_edge(logical_id, name)

    @property
    def graph(self) -> nx.DiGraph[str]:
        return self._graph

    def dependencies(self, logical_id: str) -> set[str]:
        """Resources *logical_id* refers to directly."""
        return set(self._graph.successors(logical_id))

    def dangling_references(self) -> list[DanglingReference]:
        return list(self._dangling)

    def attribute_references(self) -> list[tuple[str, str, str]]:
        """(source, resource, attribute) for every attribute read of a declared resource."""
        return list(self._attributes)

    def detect_cycles(self) -> list[list[str]]:
        """Return every elementary dependency cycle."""
        return [list(c) for c in nx.simple_cycles(self._graph)]

    def creation_order(self) -> list[str]:
        """Logical ids ordered so every resource follows what it refers to.

        Ties are broken alphabetically so the order is deterministic.
        """
        reversed_graph = self._graph.reverse(copy=True)
        return list(nx.lexicographical_topological_sort(reversed_graph))
