"""Data models for Subscan."""

from subscan.models.finding import Finding, FindingKind
from subscan.models.host import HostResult, ProbeRecord, TagSet, TlsCertificate
from subscan.models.scan import ScanReport, ScanStats

__all__ = [
    "Finding",
    "FindingKind",
    "HostResult",
    "ProbeRecord",
    "TagSet",
    "TlsCertificate",
    "ScanReport",
    "ScanStats",
]
