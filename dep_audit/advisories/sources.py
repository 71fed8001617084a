"""Advisory sources.

Any object that can produce raw advisory bytes together with a freshness
timestamp is a source. The store never cares where the bytes came from.
"""

import asyncio
import json
import os
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import aiohttp
import certifi
from aiohttp import ClientTimeout

from ..core.errors import AdvisoryLoadError, AdvisoryTimeoutError
from ..utils.logging import get_logger
from ..utils.time_utils import ensure_utc, utc_now

DEFAULT_TOKEN_ENV = "DEP_AUDIT_TOKEN"


@dataclass(frozen=True)
class RawAdvisories:
    """Unparsed advisory feed plus when it was produced."""

    data: bytes
    fetched_at: datetime
    origin: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "fetched_at", ensure_utc(self.fetched_at))


class AdvisorySource(ABC):
    """Capability: produce raw advisory bytes with a freshness timestamp."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable identifier used in reports and cache keys."""

    @abstractmethod
    async def fetch(self) -> RawAdvisories:
        """Retrieve the feed.

        Raises:
            AdvisoryLoadError: If the feed cannot be read
            AdvisoryTimeoutError: If retrieval timed out
        """


class LocalFileSource(AdvisorySource):
    """Advisory feed stored in a local JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @property
    def name(self) -> str:
        return str(self.path)

    async def fetch(self) -> RawAdvisories:
        return await asyncio.to_thread(self._read)

    def _read(self) -> RawAdvisories:
        try:
            data = self.path.read_bytes()
            mtime = self.path.stat().st_mtime
        except OSError as e:
            raise AdvisoryLoadError(f"cannot read advisory file: {e.strerror or e}", source=self.name) from e
        return RawAdvisories(
            data=data,
            fetched_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
            origin=self.name,
        )


class HttpFeedSource(AdvisorySource):
    """Advisory feed served over HTTP(S).

    A bearer token for private feeds is read from an environment variable at
    request time. It is never logged or included in error messages.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        token_env: str = DEFAULT_TOKEN_ENV,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url
        self.timeout = ClientTimeout(total=timeout)
        self.token_env = token_env
        self._session = session
        self.logger = get_logger("HttpFeedSource")
        self._ssl_context = ssl.create_default_context(cafile=certifi.where())

    @property
    def name(self) -> str:
        return self.url

    def __repr__(self) -> str:
        return f"HttpFeedSource(url={self.url!r})"

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        token = os.environ.get(self.token_env)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def fetch(self) -> RawAdvisories:
        self.logger.debug(f"Fetching advisories from {self.url}")
        try:
            if self._session is not None:
                return await self._fetch_with(self._session)
            connector = aiohttp.TCPConnector(ssl=self._ssl_context)
            async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
                return await self._fetch_with(session)
        except asyncio.TimeoutError as e:
            raise AdvisoryTimeoutError(
                f"timed out after {self.timeout.total}s", source=self.name
            ) from e
        except aiohttp.ClientError as e:
            raise AdvisoryLoadError(f"request failed: {e.__class__.__name__}", source=self.name) from e

    async def _fetch_with(self, session: aiohttp.ClientSession) -> RawAdvisories:
        async with session.get(self.url, headers=self._headers(), timeout=self.timeout) as response:
            if response.status != 200:
                raise AdvisoryLoadError(f"HTTP {response.status}", source=self.name)
            data = await response.read()
        return RawAdvisories(data=data, fetched_at=utc_now(), origin=self.name)


class InMemorySource(AdvisorySource):
    """Fixed advisory data, for tests and embedding."""

    def __init__(
        self,
        data: Union[bytes, str, Any],
        fetched_at: Optional[datetime] = None,
        origin: str = "memory",
    ) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        elif not isinstance(data, bytes):
            data = json.dumps(data).encode("utf-8")
        self._data = data
        self._fetched_at = fetched_at or utc_now()
        self._origin = origin

    @property
    def name(self) -> str:
        return self._origin

    async def fetch(self) -> RawAdvisories:
        return RawAdvisories(data=self._data, fetched_at=self._fetched_at, origin=self._origin)


def source_for(location: str, timeout: float = 30.0, token_env: str = DEFAULT_TOKEN_ENV) -> AdvisorySource:
    """Pick a source for a CLI ``--advisories`` value (URL or path)."""
    if location.startswith(("http://", "https://")):
        return HttpFeedSource(location, timeout=timeout, token_env=token_env)
    return LocalFileSource(Path(location))
