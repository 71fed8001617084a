"""Path utilities for finding lock files and filtering paths."""

import fnmatch
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

DEFAULT_IGNORE_PATTERNS = [
    "*/.git/*",
    "*/target/*",
    "*/node_modules/*",
    "*/.venv/*",
    "*/venv/*",
    "*/__pycache__/*",
    "*/.pytest_cache/*",
]


@dataclass
class LockfileCandidate:
    """A lock file discovered on disk."""

    path: Path
    format_name: str

    def __post_init__(self) -> None:
        """Validate the lock file."""
        if not self.path.is_file():
            raise ValueError(f"Lock file does not exist: {self.path}")


class PathFilter:
    """Filters paths based on glob patterns."""

    def __init__(self, ignore_patterns: Optional[List[str]] = None) -> None:
        """Initialize path filter.

        Args:
            ignore_patterns: Glob patterns to ignore, replacing the defaults
        """
        self.ignore_patterns = DEFAULT_IGNORE_PATTERNS if ignore_patterns is None else ignore_patterns

    def is_ignored(self, path: Path) -> bool:
        path_str = path.as_posix()
        return any(fnmatch.fnmatch(path_str, pattern) for pattern in self.ignore_patterns)

    def filter_paths(self, paths: Iterator[Path]) -> Iterator[Path]:
        for path in paths:
            if not self.is_ignored(path):
                yield path


def find_lockfiles(root_path: Path, ignore_patterns: Optional[List[str]] = None) -> List[LockfileCandidate]:
    """Find all lock files the parser registry understands below ``root_path``.

    Args:
        root_path: Root directory to search
        ignore_patterns: Glob patterns to skip (defaults skip VCS and build dirs)

    Returns:
        Lock files sorted by path

    Raises:
        ValueError: If ``root_path`` does not exist
    """
    from ..core.parsers import registry

    root_path = Path(root_path)
    if not root_path.exists():
        raise ValueError(f"Root path does not exist: {root_path}")

    path_filter = PathFilter(ignore_patterns)
    candidates = []
    for file_path in path_filter.filter_paths(sorted(root_path.rglob("*"))):
        if not file_path.is_file():
            continue
        for format_name in registry.get_supported_formats():
            if registry.get_parser(format_name).can_parse(file_path):
                candidates.append(LockfileCandidate(file_path, format_name))
                break
    return candidates
