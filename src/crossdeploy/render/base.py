"""Abstract base output format with capability flags."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class FormatCapabilities:
    """Flags indicating what a template format can express."""

    short_form_intrinsics: bool = False
    supports_comments: bool = False


class TemplateFormat(ABC):
    """Abstract base for all template output formats."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def capabilities(self) -> FormatCapabilities: ...

    @property
    def media_type(self) -> str:
        return "text/plain"

    @abstractmethod
    def render(self, template: dict[str, Any]) -> str:
        """Render a template mapping (with intrinsic nodes) to text."""
