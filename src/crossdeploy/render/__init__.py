"""Template output formats for crossdeploy."""

# Import formats to trigger registration
import crossdeploy.render.json_format as _json_format  # noqa: F401
import crossdeploy.render.yaml_format as _yaml_format  # noqa: F401
from crossdeploy.render.base import FormatCapabilities, TemplateFormat
from crossdeploy.render.registry import FormatRegistry, UnsupportedFormatError

__all__ = [
    "FormatCapabilities",
    "FormatRegistry",
    "TemplateFormat",
    "UnsupportedFormatError",
]
