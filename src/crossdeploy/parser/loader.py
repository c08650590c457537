"""YAML loader for pipeline definitions: safety limits plus source positions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq
from ruamel.yaml.error import YAMLError

from crossdeploy.models.errors import SourceSpan

# -- safety limits ----------------------------------------------------------

_MAX_DOCUMENT_SIZE = 1_000_000  # characters
_MAX_NODE_COUNT = 20_000
_MAX_DEPTH = 20

# ``&name`` after line start, whitespace, ``-`` or ``:``; comments are stripped first
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:])&(\w+)", re.MULTILINE)
_COMMENT_RE = re.compile(r"(?:^|\s)#.*$", re.MULTILINE)


class YAMLSafetyError(Exception):
    """Definition text that is too large, too deep, or uses anchors/aliases."""


@dataclass
class SourceMap:
    """Dotted definition paths (``pipeline.stages[1].name``) → source positions."""

    _positions: dict[str, SourceSpan] = field(default_factory=dict)

    def add(self, path: str, span: SourceSpan) -> None:
        self._positions[path] = span

    def get(self, path: str) -> SourceSpan | None:
        return self._positions.get(path)

    def nearest(self, path: str) -> SourceSpan | None:
        """Position of *path*, or of its closest ancestor that has one."""
        while path:
            span = self._positions.get(path)
            if span is not None:
                return span
            cut = max(path.rfind("."), path.rfind("["))
            if cut <= 0:
                return None
            path = path[:cut]
        return None

    @property
    def paths(self) -> list[str]:
        return list(self._positions)


class TrackedLoader:
    """Loads a definition document into plain dicts/lists and a ``SourceMap``."""

    def __init__(self) -> None:
        self._yaml = YAML()
        self._yaml.max_depth = _MAX_DEPTH

    @staticmethod
    def _check_text(content: str) -> None:
        if len(content) > _MAX_DOCUMENT_SIZE:
            raise YAMLSafetyError(
                f"YAML document exceeds maximum size "
                f"({len(content):,} chars > {_MAX_DOCUMENT_SIZE:,} limit)"
            )
        if _ANCHOR_RE.search(_COMMENT_RE.sub("", content)):
            raise YAMLSafetyError("YAML anchors/aliases are not supported in pipeline definitions")

    @staticmethod
    def _check_node_count(data: Any) -> None:
        count = 0
        stack: list[Any] = [data]
        while stack:
            node = stack.pop()
            count += 1
            if count > _MAX_NODE_COUNT:
                raise YAMLSafetyError(
                    f"YAML document exceeds maximum node count ({_MAX_NODE_COUNT:,})"
                )
            if isinstance(node, dict):
                stack.extend(node.values())
            elif isinstance(node, list):
                stack.extend(node)

    # -- loading -------------------------------------------------------------

    def load(self, path: Path) -> tuple[dict[str, Any], SourceMap]:
        """Load a definition file."""
        return self.load_string(path.read_text(encoding="utf-8"), filename=str(path))

    def load_string(
        self, content: str, filename: str = "<string>"
    ) -> tuple[dict[str, Any], SourceMap]:
        """Load definition text.  An empty document loads as ``{}``."""
        self._check_text(content)
        data = self._yaml.load(content)
        source_map = SourceMap()
        if data is None:
            return {}, source_map
        if not isinstance(data, CommentedMap):
            raise YAMLError("A pipeline definition must be a mapping at the top level")
        self._check_node_count(data)
        _record_positions(data, filename, "", source_map)
        return _plain(data), source_map


def _record_positions(data: Any, filename: str, prefix: str, source_map: SourceMap) -> None:
    if isinstance(data, CommentedMap):
        for key, value in data.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            line, column = data.lc.key(key)
            source_map.add(path, SourceSpan(file=filename, line=line + 1, column=column + 1))
            _record_positions(value, filename, path, source_map)
    elif isinstance(data, CommentedSeq):
        for index, item in enumerate(data):
            path = f"{prefix}[{index}]"
            line, column = data.lc.item(index)
            source_map.add(path, SourceSpan(file=filename, line=line + 1, column=column + 1))
            _record_positions(item, filename, path, source_map)


def _plain(data: Any) -> Any:
    """ruamel round-trip nodes → dict / list / str / scalars."""
    if isinstance(data, dict):
        return {str(key): _plain(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_plain(item) for item in data]
    if isinstance(data, str):
        return str(data)
    return data
