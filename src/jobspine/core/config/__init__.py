"""Configuration: process settings and the ``jobScheduler.*`` property source."""

from .properties import ConfigProperties, parse_assignments
from .settings import (
    JobSchedulerSettings,
    JobSpineSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "ConfigProperties",
    "JobSchedulerSettings",
    "JobSpineSettings",
    "clear_settings_cache",
    "get_settings",
    "parse_assignments",
]
