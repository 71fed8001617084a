"""Registry of lock file parsers."""

from pathlib import Path
from typing import Dict, List, Optional

from .base import BaseLockfileParser, DependencyGraph


class ParserRegistry:
    """Registry mapping lock file formats to parsers."""

    def __init__(self) -> None:
        self._parsers: Dict[str, BaseLockfileParser] = {}

    def register(self, format_name: str, parser: BaseLockfileParser) -> None:
        """Register a parser for a lock file format.

        Args:
            format_name: Format name (e.g., 'cargo', 'json')
            parser: Parser instance to register
        """
        self._parsers[format_name] = parser

    def get_parser(self, format_name: str) -> Optional[BaseLockfileParser]:
        return self._parsers.get(format_name)

    def find_parser_for_file(self, file_path: Path) -> Optional[BaseLockfileParser]:
        """Find a parser that can handle the given file.

        Args:
            file_path: Path to the file

        Returns:
            Parser that can handle the file or None
        """
        for parser in self._parsers.values():
            if parser.can_parse(file_path):
                return parser
        return None

    def get_supported_formats(self) -> List[str]:
        return list(self._parsers)

    def get_supported_file_names(self) -> List[str]:
        names: List[str] = []
        for parser in self._parsers.values():
            names.extend(parser.file_names)
        return names

    def parse_file(self, file_path: Path, format_name: Optional[str] = None) -> DependencyGraph:
        """Parse a lock file with the parser for its format.

        Args:
            file_path: Path to the lock file
            format_name: Force a format instead of detecting it from the name

        Returns:
            Parsed dependency graph

        Raises:
            ValueError: If no parser handles the file
        """
        if format_name:
            parser = self.get_parser(format_name)
            if parser is None:
                raise ValueError(
                    f"Unknown lock file format {format_name!r} "
                    f"(supported: {', '.join(self.get_supported_formats())})"
                )
        else:
            parser = self.find_parser_for_file(file_path)
            if parser is None:
                raise ValueError(f"No parser for lock file {file_path.name!r}; pass --lock-format")
        return parser.parse_file(file_path)
