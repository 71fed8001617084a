"""Tests for advisory sources, cache and store."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from dep_audit.advisories.cache import AdvisoryCache
from dep_audit.advisories.models import Severity
from dep_audit.advisories.sources import (
    AdvisorySource,
    HttpFeedSource,
    InMemorySource,
    LocalFileSource,
    RawAdvisories,
    source_for,
)
from dep_audit.advisories.store import AdvisoryStore, WithdrawnPolicy, query
from dep_audit.core.diagnostics import (
    CACHE_WRITE_FAILED,
    MALFORMED_ADVISORY,
    RANGE_OVERLAP,
    STALE_CACHE,
    WITHDRAWN_DROPPED,
)
from dep_audit.core.errors import AdvisoryLoadError, AdvisoryTimeoutError
from dep_audit.core.version import parse

NOW = datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc)


class FailingSource(AdvisorySource):
    """Source whose fetch always fails."""

    def __init__(self, name="test-feed"):
        self._name = name
        self.calls = 0

    @property
    def name(self):
        return self._name

    async def fetch(self):
        self.calls += 1
        raise AdvisoryTimeoutError("timed out after 0.1s", source=self._name)


def feed(*records):
    return json.dumps({"advisories": list(records)})


def kinds(index):
    return [diagnostic.kind for diagnostic in index.diagnostics]


class TestAdvisoryStore:
    """Test feed validation and indexing."""

    def test_load_valid_feed(self, adv_001):
        index = asyncio.run(AdvisoryStore().load(InMemorySource(feed(adv_001), fetched_at=NOW)))

        assert len(index) == 1
        assert index.origin == "memory"
        assert index.fetched_at == NOW
        assert not index.stale
        record = next(iter(index.query("libfoo")))
        assert record.severity is Severity.HIGH
        assert record.affected.matches(parse("1.2.0"))
        assert record.patched.matches(parse("1.3.0"))

    def test_bare_list_feed(self, adv_001):
        index = asyncio.run(AdvisoryStore().load(InMemorySource([adv_001])))
        assert len(index) == 1

    def test_malformed_records_are_dropped_and_counted(self, make_index, adv_001):
        index = make_index([
            adv_001,
            {"id": "ADV-002", "affected": "<1.0.0", "severity": "low"},
            {"id": "ADV-003", "package": "x", "affected": "!=1.0.0", "severity": "low"},
            {"id": "ADV-004", "package": "x", "affected": "<1.0.0", "severity": "urgent"},
            {"id": "ADV-005", "package": "x", "affected": ">2.0.0, <1.0.0", "severity": "low"},
            {"id": "ADV-006", "package": "x", "severity": "low"},
            "not a record",
        ])

        assert len(index) == 1
        assert index.malformed_count == 6
        assert kinds(index) == [MALFORMED_ADVISORY] * 6
        assert [d.subject for d in index.diagnostics] == ["ADV-002", "ADV-003", "ADV-004", "ADV-005", "ADV-006", "#6"]

    def test_unsatisfiable_patched_range(self, make_index):
        index = make_index([
            {"id": "ADV-007", "package": "x", "affected": "<1.0.0", "patched": ">=3.0.0, <2.0.0", "severity": "low"},
        ])
        assert len(index) == 0
        assert "can never match" in index.diagnostics[0].message

    def test_duplicate_record_is_dropped(self, make_index, adv_001):
        index = make_index([adv_001, dict(adv_001, severity="low")])
        assert len(index) == 1
        assert next(iter(index.query("libfoo"))).severity is Severity.HIGH
        assert index.malformed_count == 1

    def test_severity_alias(self, make_index, adv_001):
        index = make_index([dict(adv_001, severity="Moderate")])
        assert next(iter(index.query("libfoo"))).severity is Severity.MEDIUM

    def test_range_lists(self, make_index):
        index = make_index([{
            "id": "ADV-010",
            "package": "libfoo",
            "affected": ["<0.9.5", ">=1.0.0, <1.0.3"],
            "patched": [">=0.9.5, <1.0.0", ">=1.0.3"],
            "severity": "critical",
        }])
        record = next(iter(index.query("libfoo")))
        assert record.affected.to_list() == ["<0.9.5", ">=1.0.0, <1.0.3"]
        assert index.diagnostics == ()

    def test_overlap_is_kept_with_warning(self, make_index, adv_001):
        index = make_index([dict(adv_001, affected=">=1.0.0")])
        assert len(index) == 1
        assert kinds(index) == [RANGE_OVERLAP]

    def test_withdrawn_retained_by_default(self, make_index, adv_001):
        index = make_index([dict(adv_001, withdrawn="2026-03-01T00:00:00Z")])
        assert len(index) == 1
        assert [record.id for record in index.withdrawn_records()] == ["ADV-001"]
        assert index.withdrawn_records()[0].withdrawn == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_withdrawn_dropped_by_policy(self, make_index, adv_001):
        index = make_index([dict(adv_001, withdrawn="2026-03-01")], policy=WithdrawnPolicy.DROP)
        assert len(index) == 0
        assert index.withdrawn_dropped == 1
        assert kinds(index) == [WITHDRAWN_DROPPED]

    def test_invalid_json_feed(self):
        with pytest.raises(AdvisoryLoadError, match="invalid JSON"):
            asyncio.run(AdvisoryStore().load(InMemorySource("{not json")))

    def test_feed_without_advisory_list(self):
        with pytest.raises(AdvisoryLoadError):
            asyncio.run(AdvisoryStore().load(InMemorySource({"advisories": 5})))

    def test_loading_twice_is_idempotent(self, adv_001):
        source = InMemorySource(feed(adv_001), fetched_at=NOW)
        store = AdvisoryStore()
        first = asyncio.run(store.load(source))
        second = asyncio.run(store.load(source))
        assert dict(first.records) == dict(second.records)


class TestAdvisoryQuery:
    """Test index lookups."""

    def test_name_normalization(self, make_index, adv_001):
        index = make_index([dict(adv_001, package="Lib_Foo")])
        for name in ("lib-foo", "LIB_FOO", "lib_foo"):
            assert [record.id for record in query(index, name)] == ["ADV-001"]

    def test_query_is_restartable(self, make_index, adv_001):
        index = make_index([adv_001, dict(adv_001, id="ADV-000")])
        advisories = index.query("libfoo")
        assert [record.id for record in advisories] == ["ADV-000", "ADV-001"]
        assert [record.id for record in advisories] == ["ADV-000", "ADV-001"]
        assert len(advisories) == 2

    def test_unknown_package(self, make_index, adv_001):
        advisories = make_index([adv_001]).query("nothing")
        assert not advisories
        assert list(advisories) == []

    def test_index_is_immutable(self, make_index, adv_001):
        index = make_index([adv_001])
        with pytest.raises(TypeError):
            index.records["libfoo"] = ()


class TestAdvisoryCache:
    """Test the on-disk cache."""

    def test_write_and_read(self, tmp_path):
        cache = AdvisoryCache(tmp_path / "cache" / "advisories.json")
        raw = RawAdvisories(data=b'{"advisories": []}', fetched_at=NOW, origin="https://example.com/feed")

        cache.write(raw)

        assert cache.read() == raw
        assert [p.name for p in cache.path.parent.iterdir()] == ["advisories.json"]

    def test_missing_or_corrupt_cache(self, tmp_path):
        cache = AdvisoryCache(tmp_path / "advisories.json")
        assert cache.read() is None
        cache.path.write_text("garbage")
        assert cache.read() is None

    def test_freshness(self):
        raw = RawAdvisories(data=b"[]", fetched_at=NOW - timedelta(hours=2), origin="x")
        assert AdvisoryCache.is_fresh(raw, NOW, timedelta(hours=2))
        assert not AdvisoryCache.is_fresh(raw, NOW, timedelta(hours=1))
        assert not AdvisoryCache.is_fresh(raw, NOW, None)
        assert AdvisoryCache.age(raw, NOW) == timedelta(hours=2)


class TestLoadCached:
    """Test cache-aware loading."""

    @pytest.fixture
    def cache(self, tmp_path, adv_001):
        cache = AdvisoryCache(tmp_path / "advisories.json")
        cache.write(RawAdvisories(
            data=feed(adv_001).encode(),
            fetched_at=NOW - timedelta(hours=30),
            origin="test-feed",
        ))
        return cache

    def load(self, source, cache, **kwargs):
        kwargs.setdefault("max_age", timedelta(hours=24))
        return asyncio.run(AdvisoryStore().load_cached(source, cache, now=NOW, **kwargs))

    def test_fresh_cache_skips_fetch(self, cache):
        source = FailingSource()
        index = self.load(source, cache, max_age=timedelta(hours=48))
        assert source.calls == 0
        assert len(index) == 1
        assert not index.stale

    def test_outdated_cache_is_refetched_and_replaced(self, cache, adv_001):
        fetched = NOW - timedelta(minutes=5)
        source = InMemorySource(feed(adv_001, dict(adv_001, id="ADV-002")), fetched_at=fetched, origin="test-feed")

        index = self.load(source, cache)

        assert len(index) == 2
        assert cache.read().fetched_at == fetched

    def test_force_refresh(self, cache, adv_001):
        source = FailingSource()
        with pytest.raises(AdvisoryLoadError):
            self.load(source, cache, max_age=timedelta(hours=48), force_refresh=True)
        assert source.calls == 1

    def test_stale_cache_requires_permission(self, cache):
        with pytest.raises(AdvisoryTimeoutError):
            self.load(FailingSource(), cache)

    def test_stale_cache_fallback(self, cache):
        index = self.load(FailingSource(), cache, allow_stale=True)

        assert index.stale
        assert len(index) == 1
        assert kinds(index) == [STALE_CACHE]
        assert "stale" in index.diagnostics[0].message

    def test_cache_from_other_source_is_ignored(self, cache):
        with pytest.raises(AdvisoryLoadError):
            self.load(FailingSource(name="https://elsewhere.example/feed"), cache, allow_stale=True)

    def test_no_cache_and_fetch_failure(self, tmp_path):
        with pytest.raises(AdvisoryLoadError):
            self.load(FailingSource(), AdvisoryCache(tmp_path / "none.json"), allow_stale=True)

    def test_cache_write_failure_is_a_diagnostic(self, tmp_path, adv_001):
        blocked = tmp_path / "blocked"
        blocked.mkdir()
        index = self.load(InMemorySource(feed(adv_001), origin="test-feed"), AdvisoryCache(blocked))
        assert len(index) == 1
        assert kinds(index) == [CACHE_WRITE_FAILED]


class TestLocalFileSource:
    """Test the local file source."""

    def test_fetch(self, feed_file):
        raw = asyncio.run(LocalFileSource(feed_file).fetch())
        assert raw.origin == str(feed_file)
        assert raw.fetched_at.tzinfo is not None
        assert json.loads(raw.data)["advisories"][0]["id"] == "ADV-001"

    def test_missing_file(self, tmp_path):
        with pytest.raises(AdvisoryLoadError):
            asyncio.run(LocalFileSource(tmp_path / "missing.json").fetch())

    def test_source_for(self, tmp_path):
        assert isinstance(source_for(str(tmp_path / "feed.json")), LocalFileSource)
        assert isinstance(source_for("https://example.com/feed.json"), HttpFeedSource)


async def serve(handler, action):
    """Run ``action(url)`` against a test server answering with ``handler``."""
    app = web.Application()
    app.router.add_get("/feed.json", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        return await action(str(server.make_url("/feed.json")))
    finally:
        await server.close()


class TestHttpFeedSource:
    """Test the HTTP feed source."""

    def test_fetch(self, adv_001):
        async def handler(request):
            return web.json_response({"advisories": [adv_001]})

        raw = asyncio.run(serve(handler, lambda url: HttpFeedSource(url).fetch()))

        assert raw.origin.endswith("/feed.json")
        assert json.loads(raw.data)["advisories"][0]["id"] == "ADV-001"

    def test_bearer_token_from_environment(self, monkeypatch):
        seen = {}

        async def handler(request):
            seen["authorization"] = request.headers.get("Authorization")
            return web.json_response([])

        monkeypatch.setenv("DEP_AUDIT_TOKEN", "s3cret")
        asyncio.run(serve(handler, lambda url: HttpFeedSource(url).fetch()))
        assert seen["authorization"] == "Bearer s3cret"

    def test_no_token(self, monkeypatch):
        seen = {}

        async def handler(request):
            seen["authorization"] = request.headers.get("Authorization")
            return web.json_response([])

        monkeypatch.delenv("DEP_AUDIT_TOKEN", raising=False)
        asyncio.run(serve(handler, lambda url: HttpFeedSource(url).fetch()))
        assert seen["authorization"] is None

    def test_http_error_does_not_leak_token(self, monkeypatch):
        async def handler(request):
            return web.Response(status=500, text="boom")

        monkeypatch.setenv("DEP_AUDIT_TOKEN", "s3cret")
        with pytest.raises(AdvisoryLoadError) as exc_info:
            asyncio.run(serve(handler, lambda url: HttpFeedSource(url).fetch()))
        assert "HTTP 500" in str(exc_info.value)
        assert "s3cret" not in str(exc_info.value)
        assert "s3cret" not in repr(HttpFeedSource("https://example.com/feed"))

    def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(0.5)
            return web.json_response([])

        with pytest.raises(AdvisoryTimeoutError):
            asyncio.run(serve(handler, lambda url: HttpFeedSource(url, timeout=0.05).fetch()))

    def test_connection_refused(self):
        async def handler(request):
            return web.json_response([])

        async def fetch_after_close(url):
            return url

        url = asyncio.run(serve(handler, fetch_after_close))
        with pytest.raises(AdvisoryLoadError):
            asyncio.run(HttpFeedSource(url, timeout=5).fetch())
