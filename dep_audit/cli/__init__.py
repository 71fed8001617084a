"""Command line interface for dep-audit."""
