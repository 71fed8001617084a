"""Cargo.lock parser."""

import re
import tomllib
from typing import Any, List, Optional

from ..errors import LockfileFormatError
from .base import BaseLockfileParser, DependencyGraph, GraphBuilder

_TOML_LOCATION = re.compile(r"\(at line (\d+), column \d+\)")


class CargoLockParser(BaseLockfileParser):
    """Parser for Cargo.lock files.

    Packages without a ``source`` are workspace members; the packages they
    depend on are the direct dependencies.
    """

    def __init__(self) -> None:
        super().__init__()
        self.format_name = "cargo"
        self.file_names = ["Cargo.lock"]

    def parse(self, data: bytes, path: Optional[str] = None) -> DependencyGraph:
        text = self._decode(data, path)
        try:
            document = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise LockfileFormatError(
                f"invalid TOML: {e}", line=self._error_line(e), path=path
            ) from e

        packages = document.get("package", [])
        if not isinstance(packages, list):
            raise LockfileFormatError("'package' must be an array of tables", path=path)

        header_lines = self._package_header_lines(text)
        builder = GraphBuilder(path)
        for index, entry in enumerate(packages):
            line = header_lines[index] if index < len(header_lines) else None
            self._add_entry(builder, entry, line, path)
        return builder.build()

    def _add_entry(
        self,
        builder: GraphBuilder,
        entry: Any,
        line: Optional[int],
        path: Optional[str],
    ) -> None:
        if not isinstance(entry, dict):
            raise LockfileFormatError("package entry must be a table", line=line, path=path)

        name = entry.get("name")
        version = entry.get("version")
        if not isinstance(name, str) or not name.strip():
            raise LockfileFormatError("package entry is missing 'name'", line=line, path=path)
        if not isinstance(version, str):
            raise LockfileFormatError(f"package {name!r} is missing 'version'", line=line, path=path)

        source = entry.get("source")
        if source is not None and not isinstance(source, str):
            raise LockfileFormatError(f"package {name!r} has a non-string 'source'", line=line, path=path)

        dependencies = entry.get("dependencies", [])
        if not isinstance(dependencies, list) or not all(isinstance(dep, str) for dep in dependencies):
            raise LockfileFormatError(
                f"package {name!r} 'dependencies' must be an array of strings", line=line, path=path
            )

        builder.add(name, version, source, dependencies, line=line)

    def _package_header_lines(self, text: str) -> List[int]:
        return [
            number
            for number, line in enumerate(text.splitlines(), 1)
            if line.strip() == "[[package]]"
        ]

    def _error_line(self, error: tomllib.TOMLDecodeError) -> Optional[int]:
        line = getattr(error, "lineno", None)
        if line:
            return line
        match = _TOML_LOCATION.search(str(error))
        return int(match.group(1)) if match else None
