"""Visitor pattern for template value traversal and transformation."""

from __future__ import annotations

from typing import Any

from crossdeploy.intrinsics.nodes import GetAtt, Join, Ref, Split, Sub


class IntrinsicVisitor:
    """Base visitor for template values.

    Containers (dicts, lists, tuples) are traversed recursively; intrinsic
    nodes dispatch to ``visit_<nodename>``.  The default implementations
    rebuild the value unchanged, so subclasses override only what they need.
    """

    def visit(self, node: Any) -> Any:
        """Dispatch to the appropriate visit_* method."""
        if isinstance(node, dict):
            return self.visit_mapping(node)
        if isinstance(node, list | tuple):
            return self.visit_sequence(node)
        method_name = f"visit_{type(node).__name__.lower()}"
        method = getattr(self, method_name, self.generic_visit)
        return method(node)

    def generic_visit(self, node: Any) -> Any:
        return node

    def visit_mapping(self, node: dict[str, Any]) -> Any:
        return {key: self.visit(value) for key, value in node.items()}

    def visit_sequence(self, node: list[Any] | tuple[Any, ...]) -> Any:
        return [self.visit(item) for item in node]

    def visit_ref(self, node: Ref) -> Any:
        return node

    def visit_getatt(self, node: GetAtt) -> Any:
        return node

    def visit_sub(self, node: Sub) -> Any:
        variables = {k: self.visit(v) for k, v in node.variables.items()}
        return Sub(template=node.template, variables=variables)

    def visit_join(self, node: Join) -> Any:
        if isinstance(node.values, Split):
            return Join(delimiter=node.delimiter, values=self.visit(node.values))
        return Join(delimiter=node.delimiter, values=tuple(self.visit(v) for v in node.values))

    def visit_split(self, node: Split) -> Any:
        return Split(delimiter=node.delimiter, source=self.visit(node.source))


class ReferenceCollector(IntrinsicVisitor):
    """Collects the names (parameters, resources, pseudo parameters) a value refers to.

    ``GetAtt`` and ``${Res.Attr}`` placeholders are recorded under the
    resource name; ``attributes`` keeps the ``(resource, attribute)`` pairs.
    """

    def __init__(self) -> None:
        self.names: set[str] = set()
        self.attributes: set[tuple[str, str]] = set()

    def collect(self, value: Any) -> set[str]:
        self.visit(value)
        return self.names

    def visit_ref(self, node: Ref) -> Any:
        self.names.add(node.name)
        return node

    def visit_getatt(self, node: GetAtt) -> Any:
        self.names.add(node.resource)
        self.attributes.add((node.resource, node.attribute))
        return node

    def visit_sub(self, node: Sub) -> Any:
        for value in node.variables.values():
            self.visit(value)
        for placeholder in node.placeholders():
            if placeholder in node.variables:
                continue
            if "." in placeholder:
                resource, attribute = placeholder.split(".", 1)
                self.names.add(resource)
                self.attributes.add((resource, attribute))
            else:
                self.names.add(placeholder)
        return node


def collect_references(value: Any) -> set[str]:
    """Return every name referenced anywhere inside *value*."""
    return ReferenceCollector().collect(value)
