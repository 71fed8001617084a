"""Exception taxonomy for dep-audit."""

from typing import Optional


class DepAuditError(Exception):
    """Base class for all dep-audit errors."""


class MalformedVersion(DepAuditError, ValueError):
    """Raised when a version string is not valid semantic versioning."""

    def __init__(self, text: str, reason: str = "not a semantic version") -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"Malformed version {text!r}: {reason}")


class MalformedRange(DepAuditError, ValueError):
    """Raised when a version-range expression cannot be parsed."""

    def __init__(self, text: str, reason: str) -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"Malformed version range {text!r}: {reason}")


class LockfileFormatError(DepAuditError):
    """Raised when a lock file violates its structural format."""

    def __init__(self, reason: str, line: Optional[int] = None, path: Optional[str] = None) -> None:
        self.reason = reason
        self.line = line
        self.path = path
        super().__init__(self._describe())

    def _describe(self) -> str:
        location = self.path or "lockfile"
        if self.line is not None:
            location = f"{location}:{self.line}"
        return f"{location}: {self.reason}"


class UnresolvedVersionError(LockfileFormatError):
    """Raised when a lock file entry carries an unparseable version."""

    def __init__(
        self,
        package: str,
        version: str,
        line: Optional[int] = None,
        path: Optional[str] = None,
    ) -> None:
        self.package = package
        self.version = version
        super().__init__(
            f"package {package!r} has unresolvable version {version!r}",
            line=line,
            path=path,
        )


class AdvisoryLoadError(DepAuditError):
    """Raised when an advisory source is unreadable or structurally invalid."""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class AdvisoryTimeoutError(AdvisoryLoadError):
    """Raised when retrieving advisories takes longer than allowed."""


class SuppressionConfigError(DepAuditError):
    """Raised for invalid suppression configuration."""

    def __init__(self, message: str, entry: Optional[int] = None, path: Optional[str] = None) -> None:
        self.entry = entry
        self.path = path
        location = path or "suppressions"
        if entry is not None:
            location = f"{location} (entry {entry})"
        super().__init__(f"{location}: {message}")
