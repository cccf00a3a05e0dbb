"""
CLI layer for jobspine.

Provides a Typer application whose sub-commands delegate to
:class:`jobspine.scheduling.JobService` and
:class:`jobspine.scheduling.JobSchedulerRuntime`. This package handles only
terminal transport: argument parsing, coloured output and tables.

Entry point::

    jobspine --help
"""

from jobspine.cli.app import app

__all__ = ["app"]
