"""Advisory sources, cache and index for dep-audit."""

from .models import AdvisoryIndex, AdvisoryQuery, AdvisoryRecord, DatabaseInfo, Severity
from .sources import AdvisorySource, HttpFeedSource, InMemorySource, LocalFileSource, RawAdvisories
from .cache import AdvisoryCache
from .store import AdvisoryStore, WithdrawnPolicy, query

__all__ = [
    "AdvisoryCache",
    "AdvisoryIndex",
    "AdvisoryQuery",
    "AdvisoryRecord",
    "AdvisorySource",
    "AdvisoryStore",
    "DatabaseInfo",
    "HttpFeedSource",
    "InMemorySource",
    "LocalFileSource",
    "RawAdvisories",
    "Severity",
    "WithdrawnPolicy",
    "query",
]
