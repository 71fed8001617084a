"""Shared fixtures for dep-audit tests."""

import json
from datetime import datetime, timezone

import pytest

from dep_audit.advisories.sources import RawAdvisories
from dep_audit.advisories.store import AdvisoryStore, WithdrawnPolicy
from dep_audit.core.parsers.base import DependencyGraph, DependencyNode
from dep_audit.core.version import parse

REGISTRY = "registry+https://github.com/rust-lang/crates.io-index"
FETCHED_AT = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
NOW = datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_index():
    """Build an advisory index from a list of feed records."""

    def factory(records, policy=WithdrawnPolicy.RETAIN):
        raw = RawAdvisories(
            data=json.dumps({"advisories": records}).encode("utf-8"),
            fetched_at=FETCHED_AT,
            origin="test-feed",
        )
        return AdvisoryStore(withdrawn_policy=policy).parse(raw)

    return factory


@pytest.fixture
def make_node():
    def factory(name, version, direct=False, source=REGISTRY):
        return DependencyNode(name, parse(version), source, direct=direct)

    return factory


@pytest.fixture
def adv_001():
    return {
        "id": "ADV-001",
        "package": "libfoo",
        "affected": ">=1.0.0, <1.3.0",
        "patched": ">=1.3.0",
        "severity": "high",
        "title": "Heap overflow in frobnicate",
    }


@pytest.fixture
def libfoo_graph(make_node):
    """app (workspace) -> libfoo 1.2.0 (direct) -> libbar 0.3.1."""
    app = DependencyNode("app", parse("0.1.0"))
    libfoo = make_node("libfoo", "1.2.0", direct=True)
    libbar = make_node("libbar", "0.3.1")
    return DependencyGraph([app, libfoo, libbar], [(app.key, libfoo.key), (libfoo.key, libbar.key)])


@pytest.fixture
def lock_json_file(tmp_path, libfoo_graph):
    lock_file = tmp_path / "dep-audit.lock.json"
    lock_file.write_text(libfoo_graph.dumps(), encoding="utf-8")
    return lock_file


@pytest.fixture
def feed_file(tmp_path, adv_001):
    feed = tmp_path / "advisories.json"
    feed.write_text(json.dumps({"advisories": [adv_001]}), encoding="utf-8")
    return feed
