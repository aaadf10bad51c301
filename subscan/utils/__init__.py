"""Utility modules for Subscan."""

from subscan.utils.deduplicator import Deduplicator, deduplicate_hosts, load_hosts

__all__ = [
    "Deduplicator",
    "deduplicate_hosts",
    "load_hosts",
]
