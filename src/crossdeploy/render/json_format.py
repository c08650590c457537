"""JSON template format: long-form intrinsics (``{"Ref": ...}``, ``{"Fn::Join": [...]}``)."""

from __future__ import annotations

import json
from typing import Any

from crossdeploy.intrinsics.nodes import GetAtt, Join, Ref, Split, Sub
from crossdeploy.intrinsics.visitor import IntrinsicVisitor
from crossdeploy.render.base import FormatCapabilities, TemplateFormat
from crossdeploy.render.registry import FormatRegistry


class LongFormTransformer(IntrinsicVisitor):
    """Rewrites intrinsic nodes into their ``Fn::`` mapping form."""

    def visit_ref(self, node: Ref) -> Any:
        return {"Ref": node.name}

    def visit_getatt(self, node: GetAtt) -> Any:
        return {"Fn::GetAtt": [node.resource, node.attribute]}

    def visit_sub(self, node: Sub) -> Any:
        if node.variables:
            return {"Fn::Sub": [node.template, self.visit(node.variables)]}
        return {"Fn::Sub": node.template}

    def visit_join(self, node: Join) -> Any:
        return {"Fn::Join": [node.delimiter, self.visit(node.values)]}

    def visit_split(self, node: Split) -> Any:
        return {"Fn::Split": [node.delimiter, self.visit(node.source)]}


@FormatRegistry.register
class JSONFormat(TemplateFormat):
    """CloudFormation JSON, two-space indented."""

    @property
    def name(self) -> str:
        return "json"

    @property
    def capabilities(self) -> FormatCapabilities:
        return FormatCapabilities(short_form_intrinsics=False, supports_comments=False)

    @property
    def media_type(self) -> str:
        return "application/json"

    def render(self, template: dict[str, Any]) -> str:
        plain = LongFormTransformer().visit(template)
        return json.dumps(plain, indent=2, ensure_ascii=False) + "\n"
