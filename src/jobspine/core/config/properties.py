"""
Dotted-key property source backed by a TOML file.

Scheduler configuration is addressed with dotted keys such as
``jobScheduler.pollInterval`` or ``jobScheduler.jobsEnabled.reports-nightly``.
The TOML file nests them as tables::

    [jobScheduler]
    enabled = true
    pollInterval = "PT30S"
    maxParallelJobs = 4

    [jobScheduler.jobsEnabled]
    reports-nightly = true
    jobReconciler-scanForJobs = true

Resolution order (first hit wins):

1. explicit overrides (``--set key=value`` on the CLI, tests)
2. environment: ``JOBSPINE_PROP_`` + key with ``.`` → ``__`` and
   ``-`` → ``_``, matched case-insensitively
   (``JOBSPINE_PROP_JOBSCHEDULER__JOBSENABLED__REPORTS_NIGHTLY=false``)
3. the TOML file

Tags:
    jobspine, configuration, toml, properties

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from jobspine.core.errors import InvalidConfigError, MissingConfigError

ENV_PREFIX = "JOBSPINE_PROP_"

# Key segments whose spelling survives the trip through an environment name.
KNOWN_SEGMENTS = (
    "jobScheduler",
    "jobsEnabled",
    "enabled",
    "pollInterval",
    "maxParallelJobs",
    "exitWhenIdle",
    "jobReconciler-scanForJobs",
)
_SEGMENTS = {segment.replace("-", "_").upper(): segment for segment in KNOWN_SEGMENTS}

_BOOL = TypeAdapter(bool)


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested tables into dotted keys."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            result.update(flatten(value, dotted))
        else:
            result[dotted] = value
    return result


def env_name(key: str) -> str:
    """Environment variable consulted for *key*."""
    return ENV_PREFIX + key.replace(".", "__").replace("-", "_").upper()


def key_from_env(name: str) -> str:
    """Dotted key for a ``JOBSPINE_PROP_*`` variable name.

    Known segments get their camelCase spelling back; anything else is
    lower-cased with ``_`` read as ``-``. Either way ``env_name`` of the
    result is *name* again.
    """
    parts = name[len(ENV_PREFIX):].upper().split("__")
    return ".".join(_SEGMENTS.get(part, part.lower().replace("_", "-")) for part in parts)


class ConfigProperties:
    """Read-only view over file, environment and override values."""

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        *,
        overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
        source: Path | None = None,
    ) -> None:
        self._values = flatten(values or {})
        self._overrides = dict(overrides or {})
        self._environ = environ
        self.source = source

    @classmethod
    def from_toml(
        cls,
        path: Path | str,
        *,
        overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
        missing_ok: bool = True,
    ) -> ConfigProperties:
        """Load properties from a ``.toml`` file.

        A missing file yields an empty source when *missing_ok* is set, so
        a deployment can be configured through the environment alone.
        """
        path = Path(path)
        if not path.exists():
            if not missing_ok:
                raise MissingConfigError(str(path), f"Configuration file not found: {path}")
            return cls({}, overrides=overrides, environ=environ, source=None)
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise InvalidConfigError(str(path), None, f"Malformed TOML in {path}: {exc}") from exc
        return cls(data, overrides=overrides, environ=environ, source=path)

    # ── Lookup ───────────────────────────────────────────────────

    def _environment(self) -> dict[str, str]:
        """Prefixed variables keyed by their upper-cased name."""
        environ = os.environ if self._environ is None else self._environ
        return {
            name.upper(): value
            for name, value in environ.items()
            if name.upper().startswith(ENV_PREFIX) and len(name) > len(ENV_PREFIX)
        }

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        environment = self._environment()
        name = env_name(key)
        if name in environment:
            return environment[name]
        return self._values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def keys(self) -> set[str]:
        """Keys known from the file, the environment and the overrides.

        An environment variable that shadows a file or override key is
        reported under that key's spelling.
        """
        known = set(self._values) | set(self._overrides)
        spelled = {env_name(key): key for key in known}
        return known | {spelled.get(name) or key_from_env(name) for name in self._environment()}

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        value = self.get(key)
        if value is None:
            return default
        try:
            return _BOOL.validate_python(value)
        except ValidationError as exc:
            raise InvalidConfigError(key, value) from exc

    def get_required_bool(self, key: str) -> bool:
        """Boolean property that must be present.

        Raises:
            MissingConfigError: the key is not set anywhere.
            InvalidConfigError: the value is not a boolean.
        """
        value = self.get_bool(key)
        if value is None:
            raise MissingConfigError(key)
        return value

    def __repr__(self) -> str:
        return f"ConfigProperties(source={self.source}, keys={len(self.keys())})"


def parse_assignments(assignments: list[str] | None) -> dict[str, str]:
    """Parse ``key=value`` strings from the command line."""
    result: dict[str, str] = {}
    for item in assignments or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise InvalidConfigError(item, item, f"Expected key=value, got {item!r}")
        result[key.strip()] = value.strip()
    return result
