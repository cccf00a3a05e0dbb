"""Tests for JobRegistry and the scheduled_job decorator."""

from __future__ import annotations

import pytest

from jobspine.core.errors import JobResolutionError
from jobspine.scheduling.models import JobName
from jobspine.scheduling.registry import (
    JobRegistry,
    ScheduledJobSpec,
    declared_parameters,
    default_bean_name,
    scheduled_job,
)


class ReportService:
    def __init__(self):
        self.calls = []

    @scheduled_job(cron="0 0 2 * * *", timezone="Europe/Copenhagen")
    def nightly(self):
        self.calls.append("nightly")

    @scheduled_job(rate="PT5M", name="refreshCache")
    def refresh(self):
        self.calls.append("refresh")

    def helper(self):
        """Not a job."""


class TestRegisterBean:
    def test_discovers_marked_methods(self):
        """Only decorated methods become jobs, under the camelCase bean name."""
        registry = JobRegistry()
        registry.register_bean(ReportService())
        assert registry.names() == {JobName("reportService", "nightly"), JobName("reportService", "refreshCache")}
        assert len(registry) == 2

    def test_spec_is_kept(self):
        registry = JobRegistry()
        registry.register_bean(ReportService())
        declaration = registry.declarations()[0]
        assert declaration.display_name == "reportService.nightly"
        assert declaration.spec.cron == "0 0 2 * * *"
        assert declaration.spec.timezone == "Europe/Copenhagen"

    def test_explicit_bean_name(self):
        registry = JobRegistry()
        registry.register_bean(ReportService(), name="reports")
        assert JobName("reports", "nightly") in registry

    def test_duplicate_bean_rejected(self):
        registry = JobRegistry()
        registry.register_bean(ReportService())
        with pytest.raises(ValueError, match="already registered"):
            registry.register_bean(ReportService())


class TestFunctions:
    def test_job_decorator(self):
        registry = JobRegistry()

        @registry.job("maintenance", delay="PT1H")
        def vacuum():
            return "done"

        assert registry.resolve(JobName("maintenance", "vacuum"))() == "done"
        assert registry.declarations()[0].spec.schedule_fields == ["delay"]

    def test_add_defaults_to_manual(self):
        registry = JobRegistry()
        declaration = registry.add("ops", "rebuild", lambda: None)
        assert declaration.spec == ScheduledJobSpec()
        assert declaration.spec.schedule_fields == []

    def test_duplicate_job_rejected(self):
        registry = JobRegistry()
        registry.add("ops", "rebuild", lambda: None)
        with pytest.raises(ValueError):
            registry.add("ops", "rebuild", lambda: None)


class TestResolve:
    def test_renamed_method_resolves_to_attribute(self):
        """A job name that differs from the Python name still finds the method."""
        service = ReportService()
        registry = JobRegistry()
        registry.register_bean(service)
        registry.resolve(JobName("reportService", "refreshCache"))()
        assert service.calls == ["refresh"]

    def test_unknown_job(self):
        """Resolution failures name the job and what is available."""
        registry = JobRegistry()
        registry.register_bean(ReportService())
        with pytest.raises(JobResolutionError) as exc_info:
            registry.resolve(JobName("reportService", "gone"))
        assert "reportService.gone" in str(exc_info.value)

    def test_unknown_bean(self):
        with pytest.raises(JobResolutionError):
            JobRegistry().resolve(JobName("missing", "run"))


class TestHelpers:
    def test_default_bean_name(self):
        assert default_bean_name(ReportService()) == "reportService"

    def test_declared_parameters(self):
        def no_args():
            pass

        def with_defaults(a=1, *args, **kwargs):
            pass

        def required(a, b=2):
            pass

        assert declared_parameters(no_args) == []
        assert declared_parameters(with_defaults) == []
        assert declared_parameters(required) == ["a"]
        assert declared_parameters(ReportService().nightly) == []
