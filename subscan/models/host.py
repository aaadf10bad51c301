"""Per-host result models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from subscan.models.finding import Finding, FindingKind


class TlsCertificate(BaseModel):
    """Summary of the leaf certificate presented during the TLS handshake."""

    model_config = ConfigDict(frozen=True)

    issuer: str = ""
    subject: str = ""
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None
    sans: list[str] = Field(default_factory=list)

    def is_valid(self, at: Optional[datetime] = None) -> bool:
        """Check whether ``at`` (default: now) falls inside the validity window."""
        if self.not_before is None or self.not_after is None:
            return False
        at = at or datetime.now(timezone.utc)
        return self.not_before <= at <= self.not_after


class ProbeRecord(BaseModel):
    """
    Finding-oriented host summary consumed by the report renderers.

    Field names are the serialized contract of the probe output
    (JSON/CSV/HTML/Markdown) and must not be renamed.
    """

    domain: str
    cname: Optional[str] = None
    status: int = 0
    content_length: int = 0
    is_takeover: bool = False
    s3_public: bool = False
    s3_private: bool = False
    exposed_files: list[str] = Field(default_factory=list)
    redirect_url: Optional[str] = None
    open_redirect: bool = False
    vulnerabilities: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json", exclude_none=True)


class HostResult(BaseModel):
    """
    The unit of output per hostname.

    Built by a scheduler worker once the finding pipeline and scoring
    have run, and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    hostname: str = Field(..., description="Hostname as received from discovery")
    position: int = Field(0, description="Index in the discovery order")

    alias_chain: list[str] = Field(default_factory=list)

    # Probe summary
    status_code: int = 0
    content_length: int = -1
    scheme: str = ""
    certificate: Optional[TlsCertificate] = None
    cloud_provider: Optional[str] = None

    findings: list[Finding] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    score: float = 1.0

    error: Optional[str] = None

    @computed_field
    @property
    def cname(self) -> Optional[str]:
        """First hop of the alias chain."""
        return self.alias_chain[0] if self.alias_chain else None

    @property
    def is_reachable(self) -> bool:
        """Whether either HTTP attempt produced a response."""
        return self.status_code > 0

    @property
    def is_tls(self) -> bool:
        """Whether the probe succeeded over HTTPS."""
        return self.scheme == "https"

    @property
    def vulnerabilities(self) -> list[str]:
        """Descriptions of the reportable findings."""
        return [f.description for f in self.findings if f.is_vulnerability]

    def has_finding(self, kind: FindingKind) -> bool:
        """Check for at least one finding of ``kind``."""
        return any(f.kind == kind for f in self.findings)

    def findings_of(self, kind: FindingKind) -> list[Finding]:
        """Get all findings of ``kind`` in detection order."""
        return [f for f in self.findings if f.kind == kind]

    def to_probe_record(self) -> ProbeRecord:
        """Project onto the renderer contract."""
        exposed: list[str] = []
        for finding in self.findings_of(FindingKind.PUBLIC_BUCKET):
            exposed.extend(finding.objects)
        exposed.extend(
            f.path for f in self.findings_of(FindingKind.EXPOSED_FILE) if f.path
        )

        redirects = self.findings_of(FindingKind.OPEN_REDIRECT)

        return ProbeRecord(
            domain=self.hostname,
            cname=self.cname,
            status=self.status_code,
            content_length=self.content_length,
            is_takeover=self.has_finding(FindingKind.TAKEOVER),
            s3_public=self.has_finding(FindingKind.PUBLIC_BUCKET),
            s3_private=self.has_finding(FindingKind.PRIVATE_BUCKET),
            exposed_files=exposed,
            redirect_url=redirects[0].redirect_url if redirects else None,
            open_redirect=bool(redirects),
            vulnerabilities=self.vulnerabilities,
            tags=list(self.tags),
            score=self.score,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json")


class TagSet:
    """Insertion-ordered, deduplicated tag collection."""

    def __init__(self, tags: Optional[list[str]] = None):
        self._tags: dict[str, None] = {}
        for tag in tags or []:
            self.add(tag)

    def add(self, tag: str) -> None:
        """Add a tag, ignoring empties and duplicates."""
        if tag:
            self._tags.setdefault(tag, None)

    def extend(self, tags: list[str]) -> None:
        """Add several tags in order."""
        for tag in tags:
            self.add(tag)

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self):
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def to_list(self) -> list[str]:
        """Return tags in insertion order."""
        return list(self._tags)
