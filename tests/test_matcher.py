"""Tests for the audit matcher."""

import asyncio
from datetime import timedelta

import pytest

from dep_audit.core.diagnostics import PACKAGE_ERROR, SUPPRESSION_EXPIRED, SUPPRESSION_UNUSED
from dep_audit.core.matcher import AuditMatcher, Outcome
from dep_audit.core.parsers.base import DependencyGraph
from dep_audit.core.report import ReportBuilder
from dep_audit.core.suppressions import Suppression, suppressions_from_ids
from dep_audit.core.version import parse_range


def ids(result):
    return [(str(f.dependency), f.advisory.id) for f in result.findings]


class TestAuditScenarios:
    """End-to-end matching scenarios."""

    def test_vulnerable_direct_dependency_fails(self, libfoo_graph, make_index, adv_001, now):
        result = AuditMatcher().match(libfoo_graph, make_index([adv_001]), now=now)

        assert ids(result) == [("libfoo@1.2.0", "ADV-001")]
        assert result.findings[0].dependency.direct
        report = ReportBuilder().build(result.findings, result.suppressed, result.diagnostics)
        assert report.verdict == "fail"

    def test_expired_suppression_still_reports(self, libfoo_graph, make_index, adv_001, now):
        expired = Suppression(reason="accepted", package="libfoo", expires=now - timedelta(days=1))

        result = AuditMatcher().match(libfoo_graph, make_index([adv_001]), [expired], now=now)

        assert ids(result) == [("libfoo@1.2.0", "ADV-001")]
        assert result.suppressed == []
        assert [d.kind for d in result.diagnostics] == [SUPPRESSION_EXPIRED]
        report = ReportBuilder().build(result.findings, result.suppressed, result.diagnostics)
        assert report.verdict == "fail"

    def test_active_suppression(self, libfoo_graph, make_index, adv_001, now):
        active = Suppression(reason="accepted", package="libfoo", expires=now + timedelta(days=1))

        result = AuditMatcher().match(libfoo_graph, make_index([adv_001]), [active], now=now)

        assert result.findings == []
        assert len(result.suppressed) == 1
        assert result.suppressed[0].suppression is active
        assert result.diagnostics == []
        report = ReportBuilder().build(result.findings, result.suppressed, result.diagnostics)
        assert report.verdict == "pass"

    def test_withdrawn_advisory_never_matches(self, libfoo_graph, make_index, adv_001, now):
        index = make_index([dict(adv_001, withdrawn="2026-01-01", affected="*")])
        result = AuditMatcher().match(libfoo_graph, index, now=now)
        assert result.findings == []

    @pytest.mark.parametrize("version,expected", [
        ("1.0.1", ["ADV-B"]),
        ("1.0.3", []),
        ("0.9.6", []),
        ("0.9.0", ["ADV-A"]),
    ])
    def test_disjoint_patched_ranges(self, make_node, make_index, now, version, expected):
        index = make_index([
            {"id": "ADV-A", "package": "libfoo", "affected": "<1.0.0", "patched": ">=0.9.5, <1.0.0",
             "severity": "medium"},
            {"id": "ADV-B", "package": "libfoo", "affected": ">=1.0.0", "patched": ">=1.0.3",
             "severity": "high"},
        ])
        graph = DependencyGraph([make_node("libfoo", version)])

        result = AuditMatcher().match(graph, index, now=now)

        assert [f.advisory.id for f in result.findings] == expected

    def test_patched_branches_in_one_advisory(self, make_node, make_index, now):
        index = make_index([{
            "id": "ADV-010",
            "package": "libfoo",
            "affected": "<1.0.3",
            "patched": [">=0.9.5, <1.0.0", ">=1.0.3"],
            "severity": "high",
        }])
        graph = DependencyGraph([make_node("libfoo", v) for v in ("0.9.4", "0.9.6", "1.0.1", "1.0.3")])

        result = AuditMatcher().match(graph, index, now=now)

        assert ids(result) == [("libfoo@0.9.4", "ADV-010"), ("libfoo@1.0.1", "ADV-010")]

    def test_patched_range_wins_over_affected(self, make_node, make_index, now):
        index = make_index([{
            "id": "ADV-020", "package": "libfoo", "affected": ">=1.0.0", "patched": ">=1.3.0", "severity": "low",
        }])
        graph = DependencyGraph([make_node("libfoo", "1.3.0")])
        assert AuditMatcher().match(graph, index, now=now).findings == []

    def test_no_patched_range_means_never_patched(self, make_node, make_index, now):
        index = make_index([{"id": "ADV-030", "package": "libfoo", "affected": ">=1.0.0", "severity": "low"}])
        graph = DependencyGraph([make_node("libfoo", "99.0.0")])
        assert [f.advisory.id for f in AuditMatcher().match(graph, index, now=now).findings] == ["ADV-030"]

    def test_transitive_dependencies_are_audited(self, libfoo_graph, make_index, now):
        index = make_index([{"id": "ADV-040", "package": "libbar", "affected": "<1.0.0", "severity": "low"}])
        result = AuditMatcher().match(libfoo_graph, index, now=now)
        assert ids(result) == [("libbar@0.3.1", "ADV-040")]
        assert not result.findings[0].dependency.direct


class TestSuppressionMatching:
    """Test suppression handling in the matcher."""

    def test_suppress_by_alias(self, libfoo_graph, make_index, adv_001, now):
        index = make_index([dict(adv_001, aliases=["CVE-2026-0001"])])
        result = AuditMatcher().match(libfoo_graph, index, suppressions_from_ids(["CVE-2026-0001"]), now=now)
        assert result.findings == []
        assert len(result.suppressed) == 1

    def test_version_constrained_suppression(self, make_node, make_index, adv_001, now):
        graph = DependencyGraph([make_node("libfoo", "1.1.0"), make_node("libfoo", "1.2.0")])
        suppression = Suppression(reason="only 1.1 is safe", advisory_id="ADV-001", version=parse_range("<1.2.0"))

        result = AuditMatcher().match(graph, make_index([adv_001]), [suppression], now=now)

        assert ids(result) == [("libfoo@1.2.0", "ADV-001")]
        assert [str(s.finding.dependency) for s in result.suppressed] == ["libfoo@1.1.0"]

    def test_unused_suppression(self, libfoo_graph, make_index, adv_001, now):
        unused = Suppression(reason="old", advisory_id="ADV-999")
        result = AuditMatcher().match(libfoo_graph, make_index([adv_001]), [unused], now=now)
        assert [d.kind for d in result.diagnostics] == [SUPPRESSION_UNUSED]
        assert "ADV-999" in result.diagnostics[0].message

    def test_first_matching_suppression_is_used(self, libfoo_graph, make_index, adv_001, now):
        first = Suppression(reason="first", package="libfoo")
        second = Suppression(reason="second", advisory_id="ADV-001")
        result = AuditMatcher().match(libfoo_graph, make_index([adv_001]), [first, second], now=now)
        assert result.suppressed[0].suppression is first
        assert [d.subject for d in result.diagnostics] == ["ADV-001"]


class TestMatcherExecution:
    """Test determinism, isolation and fan-out."""

    @pytest.fixture
    def wide(self, make_node, make_index):
        nodes = [make_node(f"pkg{i:02d}", f"1.{i}.0") for i in range(20)]
        records = [
            {"id": f"ADV-{i:03d}", "package": f"pkg{i:02d}", "affected": "<2.0.0", "severity": "low"}
            for i in range(0, 20, 3)
        ]
        return DependencyGraph(list(reversed(nodes))), make_index(records)

    def test_deterministic(self, wide, now):
        graph, index = wide
        first = AuditMatcher().match(graph, index, now=now)
        second = AuditMatcher().match(graph, index, now=now)
        assert first.findings == second.findings
        assert [f.dependency.name for f in first.findings] == sorted(f.dependency.name for f in first.findings)

    def test_thread_pool_preserves_order(self, wide, now):
        graph, index = wide
        serial = AuditMatcher(max_workers=1).match(graph, index, now=now)
        parallel = AuditMatcher(max_workers=4).match(graph, index, now=now)
        assert parallel.findings == serial.findings

    def test_async_matches_sync(self, wide, now):
        graph, index = wide
        serial = AuditMatcher().match(graph, index, now=now)
        result = asyncio.run(AuditMatcher().match_async(graph, index, now=now))
        assert result.findings == serial.findings

    def test_async_thread_pool_preserves_order(self, wide, now):
        graph, index = wide
        serial = AuditMatcher().match(graph, index, now=now)
        result = asyncio.run(AuditMatcher(max_workers=4).match_async(graph, index, now=now))
        assert result.findings == serial.findings

    def test_package_failure_is_isolated(self, wide, now, monkeypatch):
        graph, index = wide
        matcher = AuditMatcher()
        original = matcher.evaluate

        def flaky(dependency, advisory, suppressions, when):
            if dependency.name == "pkg03":
                raise RuntimeError("corrupt advisory")
            return original(dependency, advisory, suppressions, when)

        monkeypatch.setattr(matcher, "evaluate", flaky)
        result = matcher.match(graph, index, now=now)

        assert "pkg03" not in [f.dependency.name for f in result.findings]
        assert len(result.findings) == 6
        assert [(d.kind, d.subject) for d in result.diagnostics] == [(PACKAGE_ERROR, "pkg03")]

    def test_explain(self, make_node, make_index, adv_001, now):
        index = make_index([
            adv_001,
            dict(adv_001, id="ADV-002", affected="<1.0.0"),
            dict(adv_001, id="ADV-003", withdrawn="2026-01-01"),
            dict(adv_001, id="ADV-004", affected="<2.0.0", patched=">=1.2.0"),
        ])
        rows = AuditMatcher().explain(make_node("libfoo", "1.2.0"), index, now=now)
        assert [(record.id, outcome) for record, outcome in rows] == [
            ("ADV-001", Outcome.VULNERABLE),
            ("ADV-002", Outcome.NOT_AFFECTED),
            ("ADV-003", Outcome.WITHDRAWN),
            ("ADV-004", Outcome.PATCHED),
        ]
