"""Base parser class and dependency graph model."""

import json
import os
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from ..errors import LockfileFormatError, MalformedVersion, UnresolvedVersionError
from ..version import Version, parse

PATH_SOURCE = "path"

NodeKey = Tuple[str, Version, str]


def canonical_name(name: str) -> str:
    """Normalize a package name for lookups.

    Registries treat names case-insensitively and ``_`` the same as ``-``.
    """
    return name.strip().lower().replace("_", "-")


@dataclass(frozen=True)
class DependencyNode:
    """A resolved package in the lock file."""

    name: str
    version: Version
    source: str = PATH_SOURCE
    direct: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Dependency name cannot be empty")
        object.__setattr__(self, "name", self.name.strip().lower())

    @property
    def key(self) -> NodeKey:
        return (self.name, self.version, self.source)

    @property
    def sort_key(self) -> Tuple[str, Version, str]:
        return (canonical_name(self.name), self.version, self.source)

    @property
    def is_path(self) -> bool:
        return self.source == PATH_SOURCE

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class DependencyGraph:
    """Immutable set of dependency nodes plus parent -> child edges."""

    def __init__(
        self,
        nodes: Iterable[DependencyNode],
        edges: Iterable[Tuple[NodeKey, NodeKey]] = (),
    ) -> None:
        by_key: Dict[NodeKey, DependencyNode] = {}
        for node in nodes:
            by_key[node.key] = node
        children: Dict[NodeKey, Set[NodeKey]] = {key: set() for key in by_key}
        for parent, child in edges:
            if parent not in by_key or child not in by_key:
                raise ValueError(f"Edge references unknown node: {parent} -> {child}")
            children[parent].add(child)

        ordered = sorted(by_key.values(), key=lambda node: node.sort_key)
        self._nodes: Tuple[DependencyNode, ...] = tuple(ordered)
        self._by_key: Mapping[NodeKey, DependencyNode] = MappingProxyType(by_key)
        self._children: Mapping[NodeKey, FrozenSet[NodeKey]] = MappingProxyType(
            {key: frozenset(value) for key, value in children.items()}
        )

    @property
    def nodes(self) -> Tuple[DependencyNode, ...]:
        """Nodes in canonical (name, version, source) order."""
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[DependencyNode]:
        return iter(self._nodes)

    def __contains__(self, node: object) -> bool:
        return isinstance(node, DependencyNode) and node.key in self._by_key

    def get(self, key: NodeKey) -> Optional[DependencyNode]:
        return self._by_key.get(key)

    def triples(self) -> Set[NodeKey]:
        return set(self._by_key)

    def children_of(self, node: DependencyNode) -> List[DependencyNode]:
        keys = self._children.get(node.key, frozenset())
        return sorted((self._by_key[key] for key in keys), key=lambda n: n.sort_key)

    def dependents_of(self, node: DependencyNode) -> List[DependencyNode]:
        parents = [
            self._by_key[key]
            for key, children in self._children.items()
            if node.key in children
        ]
        return sorted(parents, key=lambda n: n.sort_key)

    def edges(self) -> List[Tuple[NodeKey, NodeKey]]:
        result = []
        for parent in self._nodes:
            for child in self.children_of(parent):
                result.append((parent.key, child.key))
        return result

    def roots(self) -> List[DependencyNode]:
        """Workspace members: path-sourced nodes, or parentless nodes if none."""
        members = [node for node in self._nodes if node.is_path]
        if members:
            return members
        has_parent: Set[NodeKey] = set()
        for children in self._children.values():
            has_parent.update(children)
        return [node for node in self._nodes if node.key not in has_parent]

    def path_to(self, node: DependencyNode) -> List[DependencyNode]:
        """Shortest chain from a root to ``node`` (breadth-first, canonical order).

        Returns:
            List of nodes starting at a root and ending at ``node``, or just
            ``[node]`` when it is unreachable from any root
        """
        roots = self.roots()
        if node.key not in self._by_key:
            return [node]
        previous: Dict[NodeKey, Optional[NodeKey]] = {}
        queue: deque = deque()
        for root in roots:
            previous[root.key] = None
            queue.append(root.key)
        while queue:
            current = queue.popleft()
            if current == node.key:
                chain = []
                step: Optional[NodeKey] = current
                while step is not None:
                    chain.append(self._by_key[step])
                    step = previous[step]
                return list(reversed(chain))
            for child in self.children_of(self._by_key[current]):
                if child.key not in previous:
                    previous[child.key] = current
                    queue.append(child.key)
        return [node]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON lock file shape."""
        packages = []
        for node in self._nodes:
            packages.append({
                "name": node.name,
                "version": str(node.version),
                "source": node.source,
                "direct": node.direct,
                "dependencies": [
                    f"{child.name} {child.version} ({child.source})"
                    for child in self.children_of(node)
                ],
            })
        return {"version": 1, "packages": packages}

    def dumps(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"


class GraphBuilder:
    """Accumulates lock file entries and resolves their references.

    Identical (name, version, source) entries merge; differing versions of
    the same package stay distinct.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._nodes: Dict[NodeKey, DependencyNode] = {}
        self._lines: Dict[NodeKey, Optional[int]] = {}
        self._refs: Dict[NodeKey, List[str]] = {}

    def add(
        self,
        name: str,
        version_text: str,
        source: Optional[str],
        dependencies: Iterable[str] = (),
        direct: bool = False,
        line: Optional[int] = None,
    ) -> DependencyNode:
        try:
            version = parse(version_text)
        except MalformedVersion as e:
            raise UnresolvedVersionError(name, version_text, line=line, path=self.path) from e
        try:
            node = DependencyNode(name=name, version=version, source=source or PATH_SOURCE, direct=direct)
        except ValueError as e:
            raise LockfileFormatError(str(e), line=line, path=self.path) from e

        existing = self._nodes.get(node.key)
        if existing is not None:
            if direct and not existing.direct:
                node = DependencyNode(node.name, node.version, node.source, direct=True)
                self._nodes[node.key] = node
            else:
                node = existing
        else:
            self._nodes[node.key] = node
            self._lines[node.key] = line
        refs = self._refs.setdefault(node.key, [])
        for ref in dependencies:
            if ref not in refs:
                refs.append(ref)
        return node

    def resolve(self, reference: str, line: Optional[int] = None) -> NodeKey:
        """Resolve ``name``, ``name version`` or ``name version (source)``."""
        text = reference.strip()
        source: Optional[str] = None
        if text.endswith(")") and " (" in text:
            text, source = text[:-1].split(" (", 1)
        parts = text.split()
        if not parts or len(parts) > 2:
            raise LockfileFormatError(f"invalid dependency reference {reference!r}", line=line, path=self.path)
        name = parts[0].lower()
        version: Optional[Version] = None
        if len(parts) == 2:
            try:
                version = parse(parts[1])
            except MalformedVersion as e:
                raise LockfileFormatError(
                    f"invalid version in dependency reference {reference!r}", line=line, path=self.path
                ) from e

        candidates = [
            key for key in self._nodes
            if key[0] == name
            and (version is None or key[1] == version)
            and (source is None or key[2] == source)
        ]
        if not candidates:
            raise LockfileFormatError(f"dependency {reference!r} is not in the lock file", line=line, path=self.path)
        if len(candidates) > 1:
            raise LockfileFormatError(f"dependency reference {reference!r} is ambiguous", line=line, path=self.path)
        return candidates[0]

    def build(self) -> DependencyGraph:
        edges: List[Tuple[NodeKey, NodeKey]] = []
        for parent, refs in self._refs.items():
            for ref in refs:
                edges.append((parent, self.resolve(ref, line=self._lines.get(parent))))

        direct_keys: Set[NodeKey] = set()
        for parent, child in edges:
            if self._nodes[parent].is_path and not self._nodes[child].is_path:
                direct_keys.add(child)
        nodes = [
            DependencyNode(node.name, node.version, node.source, direct=True)
            if key in direct_keys and not node.direct else node
            for key, node in self._nodes.items()
        ]
        return DependencyGraph(nodes, edges)


class BaseLockfileParser(ABC):
    """Abstract base class for lock file parsers."""

    def __init__(self) -> None:
        self.format_name: str = ""
        self.file_names: List[str] = []
        self.supported_extensions: List[str] = []

    def can_parse(self, file_path: Path) -> bool:
        """Check if this parser can handle the given file.

        Args:
            file_path: Path to the file to check

        Returns:
            True if parser can handle the file
        """
        name = file_path.name
        return name in self.file_names or any(name.endswith(ext) for ext in self.supported_extensions)

    @abstractmethod
    def parse(self, data: bytes, path: Optional[str] = None) -> DependencyGraph:
        """Parse lock file contents into a dependency graph.

        Args:
            data: Raw lock file bytes
            path: Optional file name used in error messages

        Returns:
            Parsed dependency graph
        """

    def parse_file(self, file_path: Path) -> DependencyGraph:
        self.validate_file(file_path)
        return self.parse(file_path.read_bytes(), path=str(file_path))

    def validate_file(self, file_path: Path) -> None:
        """Validate that the file exists and is readable.

        Raises:
            FileNotFoundError: If file doesn't exist
            PermissionError: If file is not readable
        """
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        if not file_path.is_file():
            raise ValueError(f"Path is not a file: {file_path}")

        if not os.access(file_path, os.R_OK):
            raise PermissionError(f"File is not readable: {file_path}")

    def _decode(self, data: bytes, path: Optional[str]) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise LockfileFormatError(f"not valid UTF-8: {e.reason}", path=path) from e
