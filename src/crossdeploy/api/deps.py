"""Dependency injection for FastAPI: DefinitionStore singleton."""

from __future__ import annotations

from crossdeploy.service.definition_store import DefinitionStore

_definition_store: DefinitionStore | None = None


def init_definition_store(store: DefinitionStore) -> None:
    """Set the global DefinitionStore (called at app startup)."""
    global _definition_store  # noqa: PLW0603
    _definition_store = store


def get_definition_store() -> DefinitionStore:
    """FastAPI ``Depends`` provider for DefinitionStore."""
    if _definition_store is None:
        raise RuntimeError("DefinitionStore not initialised: call init_definition_store() first")
    return _definition_store


def reset_definition_store() -> None:
    """Clear the global DefinitionStore (for tests)."""
    global _definition_store  # noqa: PLW0603
    _definition_store = None
