"""Tests for run configuration and time helpers."""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from dep_audit.advisories.models import Severity
from dep_audit.advisories.store import WithdrawnPolicy
from dep_audit.config import AuditConfig
from dep_audit.utils.time_utils import format_duration, parse_duration, parse_expiry, parse_timestamp


class TestAuditConfig:
    """Test configuration validation and environment loading."""

    def test_defaults(self):
        config = AuditConfig()
        assert config.fail_severity is Severity.LOW
        assert config.cache_path is None
        assert config.cache_max_age == timedelta(hours=24)
        assert config.token_env == "DEP_AUDIT_TOKEN"
        assert config.withdrawn_policy is WithdrawnPolicy.RETAIN

    def test_string_values_are_converted(self):
        config = AuditConfig(fail_severity="High", withdrawn_policy="drop", cache_max_age="7d", cache_path="c.json")
        assert config.fail_severity is Severity.HIGH
        assert config.withdrawn_policy is WithdrawnPolicy.DROP
        assert config.cache_max_age == timedelta(days=7)
        assert config.cache_path == Path("c.json")

    @pytest.mark.parametrize("kwargs", [
        {"timeout": 0},
        {"max_workers": 0},
        {"fail_severity": "urgent"},
        {"cache_max_age": "soon"},
        {"token_env": ""},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            AuditConfig(**kwargs)

    def test_from_env(self, tmp_path):
        config = AuditConfig.from_env({
            "DEP_AUDIT_FAIL_SEVERITY": "critical",
            "DEP_AUDIT_CACHE": str(tmp_path / "cache.json"),
            "DEP_AUDIT_CACHE_MAX_AGE": "15m",
            "DEP_AUDIT_ALLOW_STALE": "yes",
            "DEP_AUDIT_TIMEOUT": "2.5",
            "DEP_AUDIT_WITHDRAWN": "DROP",
            "DEP_AUDIT_ESCALATE_DIRECT": "1",
            "DEP_AUDIT_WORKERS": "4",
        })
        assert config.fail_severity is Severity.CRITICAL
        assert config.cache_path == tmp_path / "cache.json"
        assert config.cache_max_age == timedelta(minutes=15)
        assert config.allow_stale
        assert config.timeout == 2.5
        assert config.withdrawn_policy is WithdrawnPolicy.DROP
        assert config.escalate_direct
        assert config.max_workers == 4

    def test_from_env_ignores_empty_values(self):
        assert AuditConfig.from_env({"DEP_AUDIT_FAIL_SEVERITY": ""}) == AuditConfig()

    def test_from_env_invalid_boolean(self):
        with pytest.raises(ValueError):
            AuditConfig.from_env({"DEP_AUDIT_ALLOW_STALE": "maybe"})

    def test_override_skips_none(self):
        base = AuditConfig(fail_severity=Severity.HIGH)
        config = base.override(fail_severity=None, timeout=5.0)
        assert config.fail_severity is Severity.HIGH
        assert config.timeout == 5.0
        assert base.timeout == 30.0


class TestTimeHelpers:
    """Test duration and timestamp parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("90", timedelta(seconds=90)),
        ("30s", timedelta(seconds=30)),
        ("15m", timedelta(minutes=15)),
        ("24h", timedelta(hours=24)),
        ("7D", timedelta(days=7)),
        ("2w", timedelta(weeks=2)),
    ])
    def test_parse_duration(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "1.5h", "-1h", "1y", "h"])
    def test_invalid_duration(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_format_duration(self):
        assert format_duration(timedelta(hours=30)) == "1d"
        assert format_duration(timedelta(minutes=5)) == "5m"
        assert format_duration(timedelta(seconds=5)) == "5s"
        assert format_duration(None) == "unknown"

    def test_parse_timestamp_normalizes_to_utc(self):
        assert parse_timestamp("2026-03-01T02:00:00+02:00") == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2026-03-01") == datetime(2026, 3, 1, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")

    def test_date_expiry_lasts_the_whole_day(self):
        expected = datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert parse_expiry("2026-01-31") == expected
        assert parse_expiry(date(2026, 1, 31)) == expected
