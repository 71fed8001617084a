"""Utility functions and helpers for dep-audit."""

from .logging import get_logger, setup_logging
from .path_utils import find_lockfiles
from .performance import PerformanceMonitor

__all__ = [
    "setup_logging",
    "get_logger",
    "PerformanceMonitor",
    "find_lockfiles",
]
