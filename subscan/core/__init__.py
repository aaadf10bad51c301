"""Core modules for Subscan."""

from subscan.core.config import ConfigurationError, Settings, get_settings
from subscan.core.logger import get_logger, setup_logging
from subscan.core.exporter import ReportExporter, format_probe_records, format_report
from subscan.core.scheduler import Scheduler

__all__ = [
    "ConfigurationError",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "ReportExporter",
    "format_probe_records",
    "format_report",
    "Scheduler",
]
