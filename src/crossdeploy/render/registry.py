"""Format plugin registry: discover and register template output formats."""

from __future__ import annotations

from crossdeploy.render.base import TemplateFormat


class UnsupportedFormatError(Exception):
    """Raised when a requested output format is not registered."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.format_name = name
        self.available = available
        super().__init__(f"Unsupported format '{name}'. Available: {', '.join(available)}")


class FormatRegistry:
    """Registry for template format plugins."""

    _formats: dict[str, type[TemplateFormat]] = {}

    @classmethod
    def register(cls, format_class: type[TemplateFormat]) -> type[TemplateFormat]:
        """Register a format class. Can be used as a decorator."""
        # Instantiate to read the name property
        instance = format_class()
        cls._formats[instance.name] = format_class
        return format_class

    @classmethod
    def get(cls, name: str) -> TemplateFormat:
        """Get an instance of the named format."""
        if name not in cls._formats:
            raise UnsupportedFormatError(name, available=cls.available())
        return cls._formats[name]()

    @classmethod
    def available(cls) -> list[str]:
        """List registered format names."""
        return sorted(cls._formats.keys())

    @classmethod
    def reset(cls) -> None:
        """Clear all registered formats (for testing)."""
        cls._formats.clear()
