"""Scan report models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from subscan.models.finding import FindingKind
from subscan.models.host import HostResult, ProbeRecord


class ScanStats(BaseModel):
    """Scan statistics."""

    hosts_total: int = 0
    hosts_completed: int = 0
    hosts_reachable: int = 0
    hosts_skipped: int = 0

    takeovers: int = 0
    public_buckets: int = 0
    private_buckets: int = 0
    unclaimed_buckets: int = 0
    exposed_files: int = 0
    open_redirects: int = 0

    duration_seconds: float = 0.0

    def record(self, result: HostResult) -> None:
        """Count one completed host."""
        self.hosts_completed += 1
        if result.is_reachable:
            self.hosts_reachable += 1

        counters = {
            FindingKind.TAKEOVER: "takeovers",
            FindingKind.PUBLIC_BUCKET: "public_buckets",
            FindingKind.PRIVATE_BUCKET: "private_buckets",
            FindingKind.UNCLAIMED_BUCKET: "unclaimed_buckets",
            FindingKind.EXPOSED_FILE: "exposed_files",
            FindingKind.OPEN_REDIRECT: "open_redirects",
        }
        for finding in result.findings:
            attr = counters[finding.kind]
            setattr(self, attr, getattr(self, attr) + 1)


class ScanReport(BaseModel):
    """
    All host results of one run, ordered by descending score.

    Ties keep the discovery order of the input hostnames.
    """

    results: list[HostResult] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    cancelled: bool = False

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    stats: ScanStats = Field(default_factory=ScanStats)

    @property
    def total(self) -> int:
        """Number of evaluated hosts."""
        return len(self.results)

    @property
    def vulnerable(self) -> list[HostResult]:
        """Hosts with at least one reportable finding."""
        return [r for r in self.results if r.vulnerabilities]

    def probe_records(self) -> list[ProbeRecord]:
        """Renderer-facing view of the results, in report order."""
        return [r.to_probe_record() for r in self.results]

    def by_hostname(self) -> dict[str, HostResult]:
        """Index results by hostname."""
        return {r.hostname: r for r in self.results}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json")
