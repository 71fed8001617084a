"""Lock file parsers."""

from .base import (
    BaseLockfileParser,
    DependencyGraph,
    DependencyNode,
    GraphBuilder,
    PATH_SOURCE,
    canonical_name,
)
from .cargo import CargoLockParser
from .json_lock import JSONLockParser
from .registry import ParserRegistry

# Register built-in parsers
registry = ParserRegistry()
registry.register("cargo", CargoLockParser())
registry.register("json", JSONLockParser())

LockfileParser = registry
__all__ = [
    "BaseLockfileParser",
    "CargoLockParser",
    "DependencyGraph",
    "DependencyNode",
    "GraphBuilder",
    "JSONLockParser",
    "LockfileParser",
    "PATH_SOURCE",
    "ParserRegistry",
    "canonical_name",
    "registry",
]
