"""Tests for jobspine.core.config (property source and settings)."""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

import pytest

from jobspine.core.config import (
    ConfigProperties,
    JobSchedulerSettings,
    JobSpineSettings,
    clear_settings_cache,
    get_settings,
    parse_assignments,
)
from jobspine.core.config.properties import env_name, flatten, key_from_env
from jobspine.core.errors import InvalidConfigError, MissingConfigError

TOML = """
[jobScheduler]
enabled = true
pollInterval = "PT30S"
maxParallelJobs = 4

[jobScheduler.jobsEnabled]
reports-nightly = true
cleanup-vacuum = false
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "jobspine.toml"
    path.write_text(TOML, encoding="utf-8")
    return path


class TestFlatten:
    def test_nested_tables_become_dotted_keys(self):
        """Tables flatten; scalar leaves keep their value."""
        assert flatten({"a": {"b": {"c": 1}, "d": "x"}}) == {"a.b.c": 1, "a.d": "x"}

    def test_env_name(self):
        """Dots become double underscores and dashes single ones."""
        assert env_name("jobScheduler.jobsEnabled.reports-nightly") == (
            "JOBSPINE_PROP_JOBSCHEDULER__JOBSENABLED__REPORTS_NIGHTLY"
        )


class TestConfigProperties:
    def test_from_toml(self, config_file):
        """Values from the file are addressable by dotted key."""
        props = ConfigProperties.from_toml(config_file, environ={})
        assert props.get("jobScheduler.maxParallelJobs") == 4
        assert props.get_bool("jobScheduler.jobsEnabled.reports-nightly") is True
        assert props.get_bool("jobScheduler.jobsEnabled.cleanup-vacuum") is False
        assert props.source == config_file

    def test_missing_file_is_empty_when_allowed(self, tmp_path):
        """A deployment may configure itself through the environment only."""
        props = ConfigProperties.from_toml(tmp_path / "absent.toml", environ={})
        assert props.keys() == set()
        assert props.source is None

    def test_missing_file_raises_when_required(self, tmp_path):
        """missing_ok=False turns a missing file into a config error."""
        with pytest.raises(MissingConfigError):
            ConfigProperties.from_toml(tmp_path / "absent.toml", missing_ok=False)

    def test_malformed_toml(self, tmp_path):
        """Syntax errors are reported as InvalidConfigError."""
        path = tmp_path / "bad.toml"
        path.write_text("[jobScheduler\nenabled = ", encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            ConfigProperties.from_toml(path)

    def test_precedence_override_env_file(self, config_file):
        """Overrides beat the environment, which beats the file."""
        key = "jobScheduler.maxParallelJobs"
        environ = {env_name(key): "8"}
        assert ConfigProperties.from_toml(config_file, environ=environ).get(key) == "8"
        props = ConfigProperties.from_toml(config_file, overrides={key: "2"}, environ=environ)
        assert props.get(key) == "2"

    def test_environment_names_match_case_insensitively(self):
        """A lower-case variable name still supplies the property."""
        props = ConfigProperties(environ={"jobspine_prop_jobScheduler__exitWhenIdle": "true"})
        assert props.get_bool("jobScheduler.exitWhenIdle") is True

    def test_keys_include_environment(self, config_file):
        """Environment-only keys are listed; shadowing ones keep the file spelling."""
        environ = {
            "JOBSPINE_PROP_JOBSCHEDULER__EXITWHENIDLE": "true",
            "JOBSPINE_PROP_JOBSCHEDULER__JOBSENABLED__REPORTS_NIGHTLY": "false",
            "JOBSPINE_PROP_JOBSCHEDULER__JOBSENABLED__JOBRECONCILER_SCANFORJOBS": "true",
            "JOBSPINE_PROP_": "ignored",
            "OTHER_VARIABLE": "x",
        }
        props = ConfigProperties.from_toml(config_file, environ=environ)
        assert props.keys() == {
            "jobScheduler.enabled",
            "jobScheduler.pollInterval",
            "jobScheduler.maxParallelJobs",
            "jobScheduler.exitWhenIdle",
            "jobScheduler.jobsEnabled.reports-nightly",
            "jobScheduler.jobsEnabled.cleanup-vacuum",
            "jobScheduler.jobsEnabled.jobReconciler-scanForJobs",
        }
        assert props.get_bool("jobScheduler.jobsEnabled.reports-nightly") is False

    def test_key_from_env(self):
        """Unknown segments come back lower-cased with dashes."""
        assert key_from_env("JOBSPINE_PROP_JOBSCHEDULER__JOBSENABLED__BILLING_CLOSE") == (
            "jobScheduler.jobsEnabled.billing-close"
        )

    def test_live_environment(self, monkeypatch):
        """Without an explicit environ mapping, os.environ is consulted."""
        monkeypatch.setenv("JOBSPINE_PROP_JOBSCHEDULER__EXITWHENIDLE", "true")
        props = ConfigProperties({})
        assert props.get_bool("jobScheduler.exitWhenIdle") is True

    def test_get_required_bool(self):
        """Missing keys and non-boolean values both fail."""
        props = ConfigProperties({"a": {"yes": "true", "bad": "perhaps"}}, environ={})
        assert props.get_required_bool("a.yes") is True
        with pytest.raises(MissingConfigError):
            props.get_required_bool("a.missing")
        with pytest.raises(InvalidConfigError):
            props.get_required_bool("a.bad")

    def test_contains(self):
        """Membership means 'has a non-None value'."""
        props = ConfigProperties({"a": 1}, environ={})
        assert "a" in props
        assert "b" not in props


class TestParseAssignments:
    def test_parses_pairs(self):
        """key=value pairs, whitespace stripped, '=' allowed in values."""
        assert parse_assignments(["a.b = 1", "c=x=y"]) == {"a.b": "1", "c": "x=y"}

    def test_none_is_empty(self):
        assert parse_assignments(None) == {}

    def test_rejects_missing_equals(self):
        """A bare word is not an assignment."""
        with pytest.raises(InvalidConfigError):
            parse_assignments(["oops"])


class TestJobSchedulerSettings:
    def test_defaults(self):
        """Disabled, one-minute poll, no cap, no exit."""
        settings = JobSchedulerSettings.from_properties(ConfigProperties({}, environ={}))
        assert settings.enabled is False
        assert settings.poll_interval == timedelta(minutes=1)
        assert settings.max_parallel_jobs is None
        assert settings.exit_when_idle is False

    def test_from_file(self, config_file):
        """camelCase keys map onto the model."""
        settings = JobSchedulerSettings.from_properties(ConfigProperties.from_toml(config_file, environ={}))
        assert settings.enabled is True
        assert settings.poll_interval == timedelta(seconds=30)
        assert settings.max_parallel_jobs == 4

    def test_enabled_requires_max_parallel_jobs(self):
        """maxParallelJobs is mandatory once the scheduler is enabled."""
        props = ConfigProperties({"jobScheduler": {"enabled": True}}, environ={})
        with pytest.raises(MissingConfigError) as exc_info:
            JobSchedulerSettings.from_properties(props)
        assert exc_info.value.key == "jobScheduler.maxParallelJobs"

    def test_invalid_value_names_key(self):
        """Validation errors point at the offending property."""
        props = ConfigProperties({"jobScheduler": {"maxParallelJobs": 0}}, environ={})
        with pytest.raises(InvalidConfigError) as exc_info:
            JobSchedulerSettings.from_properties(props)
        assert exc_info.value.key == "jobScheduler.maxParallelJobs"

    def test_non_positive_poll_interval(self):
        """A zero poll interval would busy-loop."""
        props = ConfigProperties({"jobScheduler": {"pollInterval": "PT0S"}}, environ={})
        with pytest.raises(InvalidConfigError):
            JobSchedulerSettings.from_properties(props)


class TestJobSpineSettings:
    def test_env_prefix(self, monkeypatch):
        """JOBSPINE_* variables populate the settings."""
        monkeypatch.setenv("JOBSPINE_APPLICATION_NAME", "billing")
        monkeypatch.setenv("JOBSPINE_TENANT_ID", "00000000-0000-0000-0000-000000000007")
        settings = JobSpineSettings()
        assert settings.application_name == "billing"
        assert settings.tenant_id == UUID(int=7)

    @pytest.mark.parametrize(("value", "expected"), [("json", True), ("console", False), ("auto", None)])
    def test_json_logs(self, value, expected):
        assert JobSpineSettings(log_format=value).json_logs is expected

    def test_get_settings_is_cached(self, monkeypatch):
        """Cached until cleared."""
        first = get_settings()
        assert get_settings() is first
        monkeypatch.setenv("JOBSPINE_APPLICATION_NAME", "changed")
        assert get_settings().application_name == first.application_name
        clear_settings_cache()
        assert get_settings().application_name == "changed"
