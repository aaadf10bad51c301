"""
Subscan v1.0.0 - Subdomain misconfiguration scanner.
"""

__version__ = "1.0.0"
__author__ = "Subscan Team"

from subscan.core.config import Settings, get_settings
from subscan.core.logger import get_logger, setup_logging

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
