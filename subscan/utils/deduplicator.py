"""Hostname loading and deduplication."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from subscan.core.config import ConfigurationError
from subscan.core.logger import get_logger

logger = get_logger(__name__)


class Deduplicator:
    """
    Order-preserving hostname deduplication.

    Hostnames are compared after trimming whitespace, dropping a
    trailing root dot and (unless case-sensitive) lower-casing. The
    first spelling seen is the one kept.
    """

    def __init__(self, case_sensitive: bool = False):
        """
        Initialize deduplicator.

        Args:
            case_sensitive: Whether to treat hostnames as case-sensitive
        """
        self.case_sensitive = case_sensitive
        self._seen: set[str] = set()

    def _normalize(self, item: str) -> str:
        """Normalize a hostname for comparison."""
        item = item.strip().rstrip(".")
        if not self.case_sensitive:
            item = item.lower()
        return item

    def add(self, item: str) -> bool:
        """
        Add a hostname to the seen set.

        Returns:
            True if the hostname was new, False if already seen or blank
        """
        normalized = self._normalize(item)
        if not normalized or normalized in self._seen:
            return False

        self._seen.add(normalized)
        return True

    def is_new(self, item: str) -> bool:
        """Check if a hostname has not been seen yet."""
        normalized = self._normalize(item)
        return bool(normalized) and normalized not in self._seen

    def deduplicate(self, items: Iterable[str]) -> list[str]:
        """
        Deduplicate hostnames against the seen set.

        Args:
            items: Raw hostnames in discovery order

        Returns:
            New normalized hostnames, first occurrence order
        """
        new_items = []
        for item in items:
            if self.add(item):
                new_items.append(self._normalize(item))
        return new_items

    @property
    def count(self) -> int:
        """Get number of seen hostnames."""
        return len(self._seen)

    def clear(self) -> None:
        """Clear all seen hostnames."""
        self._seen.clear()


def read_host_lines(path: Path) -> list[str]:
    """
    Read raw host lines from a file, skipping blanks and ``#`` comments.

    Raises:
        ConfigurationError: If the file cannot be read
    """
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ConfigurationError(f"Cannot read hosts file {path}: {e}") from e

    lines = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            lines.append(line)
    return lines


def deduplicate_hosts(hosts: Iterable[str]) -> tuple[list[str], int]:
    """
    Deduplicate a list of hostnames.

    Returns:
        Tuple of (unique_hosts, duplicate_count)
    """
    hosts = list(hosts)
    unique = Deduplicator().deduplicate(hosts)
    duplicate_count = len(hosts) - len(unique)

    logger.debug(
        "Deduplication complete",
        total=len(hosts),
        unique=len(unique),
        duplicates=duplicate_count,
    )
    return unique, duplicate_count


def load_hosts(path: Path, limit: Optional[int] = None) -> list[str]:
    """
    Load the ordered, deduplicated host list from a file.

    Args:
        path: One hostname per line
        limit: Keep only the first ``limit`` unique hosts

    Returns:
        Normalized hostnames in file order

    Raises:
        ConfigurationError: If the file cannot be read
    """
    hosts, duplicates = deduplicate_hosts(read_host_lines(path))
    if limit is not None:
        hosts = hosts[:limit]

    logger.info(f"Loaded {len(hosts)} hosts from {path}", duplicates=duplicates)
    return hosts
