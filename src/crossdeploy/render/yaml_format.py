"""YAML template format: short-form tags (``!Ref``, ``!GetAtt``, ``!Sub``, ``!Join``...)."""

from __future__ import annotations

from io import StringIO
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.representer import RoundTripRepresenter

from crossdeploy.intrinsics.nodes import GetAtt, Join, Ref, Split, Sub
from crossdeploy.render.base import FormatCapabilities, TemplateFormat
from crossdeploy.render.registry import FormatRegistry


class TemplateRepresenter(RoundTripRepresenter):
    """Round-trip representer that knows the intrinsic nodes."""


def _represent_ref(rep: TemplateRepresenter, node: Ref) -> Any:
    return rep.represent_scalar("!Ref", node.name)


def _represent_getatt(rep: TemplateRepresenter, node: GetAtt) -> Any:
    return rep.represent_scalar("!GetAtt", f"{node.resource}.{node.attribute}")


def _represent_sub(rep: TemplateRepresenter, node: Sub) -> Any:
    if node.variables:
        return rep.represent_sequence("!Sub", [node.template, dict(node.variables)])
    return rep.represent_scalar("!Sub", node.template)


def _represent_join(rep: TemplateRepresenter, node: Join) -> Any:
    values = node.values if isinstance(node.values, Split) else list(node.values)
    return rep.represent_sequence("!Join", [node.delimiter, values])


def _represent_split(rep: TemplateRepresenter, node: Split) -> Any:
    return rep.represent_sequence("!Split", [node.delimiter, node.source])


TemplateRepresenter.add_representer(Ref, _represent_ref)
TemplateRepresenter.add_representer(GetAtt, _represent_getatt)
TemplateRepresenter.add_representer(Sub, _represent_sub)
TemplateRepresenter.add_representer(Join, _represent_join)
TemplateRepresenter.add_representer(Split, _represent_split)


@FormatRegistry.register
class YAMLFormat(TemplateFormat):
    """CloudFormation YAML written with ruamel.yaml."""

    @property
    def name(self) -> str:
        return "yaml"

    @property
    def capabilities(self) -> FormatCapabilities:
        return FormatCapabilities(short_form_intrinsics=True, supports_comments=True)

    @property
    def media_type(self) -> str:
        return "application/x-yaml"

    def render(self, template: dict[str, Any]) -> str:
        yaml = YAML()
        yaml.Representer = TemplateRepresenter
        yaml.indent(mapping=2, sequence=4, offset=2)
        yaml.width = 4096
        buffer = StringIO()
        yaml.dump(template, buffer)
        return buffer.getvalue()
