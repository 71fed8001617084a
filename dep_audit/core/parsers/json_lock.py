"""JSON lock file parser.

Reads the shape written by :meth:`DependencyGraph.dumps`::

    {"version": 1, "packages": [
        {"name": "libfoo", "version": "1.2.0", "source": "registry+...",
         "direct": true, "dependencies": ["libbar 0.3.1"]}
    ]}
"""

import json
from typing import Any, List, Optional

from ..errors import LockfileFormatError
from .base import BaseLockfileParser, DependencyGraph, GraphBuilder


class JSONLockParser(BaseLockfileParser):
    """Parser for dep-audit JSON lock files."""

    def __init__(self) -> None:
        super().__init__()
        self.format_name = "json"
        self.file_names = ["dep-audit.lock.json"]
        self.supported_extensions = [".lock.json"]

    def parse(self, data: bytes, path: Optional[str] = None) -> DependencyGraph:
        text = self._decode(data, path)
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise LockfileFormatError(f"invalid JSON: {e.msg}", line=e.lineno, path=path) from e

        if not isinstance(document, dict):
            raise LockfileFormatError("top level must be an object", line=1, path=path)
        packages = document.get("packages")
        if not isinstance(packages, list):
            raise LockfileFormatError("'packages' must be an array", path=path)

        entry_lines = self._package_entry_lines(text)
        builder = GraphBuilder(path)
        for index, entry in enumerate(packages):
            line = entry_lines[index] if index < len(entry_lines) else None
            self._add_entry(builder, index, entry, line, path)
        return builder.build()

    def _package_entry_lines(self, text: str) -> List[int]:
        """Line on which each element of the top-level ``packages`` array starts.

        Only called on text that already decoded, so the walk never fails.
        The last ``packages`` key wins, as it does for ``json.loads``.
        """
        decoder = json.JSONDecoder()
        lines: List[int] = []
        pos = _skip(text, 0) + 1
        while True:
            pos = _skip(text, pos)
            if text[pos] == "}":
                return lines
            key, pos = decoder.raw_decode(text, pos)
            pos = _skip(text, pos) + 1
            pos = _skip(text, pos)
            if key == "packages" and text[pos] == "[":
                lines = []
                pos = _skip(text, pos + 1)
                while text[pos] != "]":
                    lines.append(text.count("\n", 0, pos) + 1)
                    _, pos = decoder.raw_decode(text, pos)
                    pos = _skip(text, pos)
                    if text[pos] == ",":
                        pos = _skip(text, pos + 1)
                pos += 1
            else:
                _, pos = decoder.raw_decode(text, pos)
            pos = _skip(text, pos)
            if text[pos] == ",":
                pos += 1

    def _add_entry(
        self,
        builder: GraphBuilder,
        index: int,
        entry: Any,
        line: Optional[int],
        path: Optional[str],
    ) -> None:
        where = f"packages[{index}]"
        if not isinstance(entry, dict):
            raise LockfileFormatError(f"{where} must be an object", line=line, path=path)

        name = entry.get("name")
        version = entry.get("version")
        if not isinstance(name, str) or not name.strip():
            raise LockfileFormatError(f"{where} is missing 'name'", line=line, path=path)
        if not isinstance(version, str):
            raise LockfileFormatError(f"{where} ({name}) is missing 'version'", line=line, path=path)

        source = entry.get("source")
        if source is not None and not isinstance(source, str):
            raise LockfileFormatError(f"{where} ({name}) has a non-string 'source'", line=line, path=path)

        direct = entry.get("direct", False)
        if not isinstance(direct, bool):
            raise LockfileFormatError(f"{where} ({name}) 'direct' must be a boolean", line=line, path=path)

        dependencies = entry.get("dependencies", [])
        if not isinstance(dependencies, list) or not all(isinstance(dep, str) for dep in dependencies):
            raise LockfileFormatError(
                f"{where} ({name}) 'dependencies' must be an array of strings", line=line, path=path
            )

        builder.add(name, version, source, dependencies, direct=direct, line=line)


def _skip(text: str, pos: int) -> int:
    """Index of the next non-whitespace character at or after ``pos``."""
    while pos < len(text) and text[pos] in " \t\r\n":
        pos += 1
    return pos
