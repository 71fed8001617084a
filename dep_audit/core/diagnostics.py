"""Non-fatal events surfaced in the audit report."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

MALFORMED_ADVISORY = "malformed-advisory"
WITHDRAWN_DROPPED = "withdrawn-dropped"
RANGE_OVERLAP = "range-overlap"
STALE_CACHE = "stale-cache"
CACHE_WRITE_FAILED = "cache-write-failed"
PACKAGE_ERROR = "package-error"
SUPPRESSION_EXPIRED = "suppression-expired"
SUPPRESSION_UNUSED = "suppression-unused"


@dataclass(frozen=True)
class Diagnostic:
    """Something the user must see that did not stop the audit."""

    kind: str
    message: str
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "subject": self.subject}

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"
