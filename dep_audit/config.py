"""Run configuration for dep-audit."""

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

from .advisories.models import Severity
from .advisories.sources import DEFAULT_TOKEN_ENV
from .advisories.store import WithdrawnPolicy
from .utils.time_utils import parse_duration

ENV_PREFIX = "DEP_AUDIT_"
DEFAULT_CACHE_MAX_AGE = timedelta(hours=24)


def _truthy(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


@dataclass
class AuditConfig:
    """Settings for one audit run."""

    fail_severity: Severity = Severity.LOW
    cache_path: Optional[Path] = None
    cache_max_age: Optional[timedelta] = DEFAULT_CACHE_MAX_AGE
    allow_stale: bool = False
    force_refresh: bool = False
    timeout: float = 30.0
    token_env: str = DEFAULT_TOKEN_ENV
    withdrawn_policy: WithdrawnPolicy = WithdrawnPolicy.RETAIN
    escalate_direct: bool = False
    max_workers: int = 1
    lock_format: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if isinstance(self.fail_severity, str):
            self.fail_severity = Severity.parse(self.fail_severity)
        if isinstance(self.withdrawn_policy, str):
            self.withdrawn_policy = WithdrawnPolicy(self.withdrawn_policy.lower())
        if isinstance(self.cache_max_age, str):
            self.cache_max_age = parse_duration(self.cache_max_age)
        if self.cache_path is not None:
            self.cache_path = Path(self.cache_path)
        if self.cache_max_age is not None and self.cache_max_age < timedelta(0):
            raise ValueError(f"Cache max age must not be negative: {self.cache_max_age}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive: {self.timeout}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1: {self.max_workers}")
        if not self.token_env:
            raise ValueError("token_env must name an environment variable")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AuditConfig":
        """Build a configuration from ``DEP_AUDIT_*`` environment variables.

        Recognised variables: ``FAIL_SEVERITY``, ``CACHE``, ``CACHE_MAX_AGE``,
        ``ALLOW_STALE``, ``TIMEOUT``, ``WITHDRAWN``, ``ESCALATE_DIRECT`` and
        ``WORKERS``. Caching is off unless ``DEP_AUDIT_CACHE`` names a file.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        values: dict = {}

        def get(name: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        if get("FAIL_SEVERITY"):
            values["fail_severity"] = Severity.parse(get("FAIL_SEVERITY"))
        cache = get("CACHE")
        if cache:
            values["cache_path"] = Path(cache).expanduser()
        if get("CACHE_MAX_AGE"):
            values["cache_max_age"] = parse_duration(get("CACHE_MAX_AGE"))
        if get("ALLOW_STALE"):
            values["allow_stale"] = _truthy(get("ALLOW_STALE"))
        if get("TIMEOUT"):
            values["timeout"] = float(get("TIMEOUT"))
        if get("WITHDRAWN"):
            values["withdrawn_policy"] = WithdrawnPolicy(get("WITHDRAWN").lower())
        if get("ESCALATE_DIRECT"):
            values["escalate_direct"] = _truthy(get("ESCALATE_DIRECT"))
        if get("WORKERS"):
            values["max_workers"] = int(get("WORKERS"))
        return cls(**values)

    def override(self, **changes: Any) -> "AuditConfig":
        """Copy with the given non-None values replaced (CLI flags win over env)."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})
