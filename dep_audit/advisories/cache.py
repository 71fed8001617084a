"""On-disk advisory cache.

The cache is a single JSON document holding the raw feed and the time it
was fetched. It is only ever replaced as a whole: the new content goes to a
temporary file in the same directory which is then renamed over the old one.
"""

import base64
import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from ..utils.logging import get_logger
from .sources import RawAdvisories

CACHE_FORMAT = 1


class AdvisoryCache:
    """Whole-file advisory cache with an embedded freshness timestamp."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.logger = get_logger("AdvisoryCache")

    def read(self) -> Optional[RawAdvisories]:
        """Read the cached feed.

        Returns:
            Cached feed, or None if there is no usable cache file
        """
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            if document.get("format") != CACHE_FORMAT:
                self.logger.warning(f"Ignoring cache {self.path} with unknown format")
                return None
            return RawAdvisories(
                data=base64.b64decode(document["data"]),
                fetched_at=datetime.fromisoformat(document["fetched_at"]),
                origin=document["origin"],
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Ignoring unreadable cache {self.path}: {e}")
            return None

    def write(self, raw: RawAdvisories) -> None:
        """Atomically replace the cache file with ``raw``.

        Raises:
            OSError: If the cache directory is not writable
        """
        document = {
            "format": CACHE_FORMAT,
            "origin": raw.origin,
            "fetched_at": raw.fetched_at.isoformat(),
            "data": base64.b64encode(raw.data).decode("ascii"),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        self.logger.debug(f"Cached advisories from {raw.origin} at {self.path}")

    @staticmethod
    def age(raw: RawAdvisories, now: datetime) -> timedelta:
        return now - raw.fetched_at

    @staticmethod
    def is_fresh(raw: RawAdvisories, now: datetime, max_age: Optional[timedelta]) -> bool:
        """A cache is fresh when it is no older than ``max_age``.

        ``max_age=None`` means the cache never counts as fresh.
        """
        if max_age is None:
            return False
        return now - raw.fetched_at <= max_age
