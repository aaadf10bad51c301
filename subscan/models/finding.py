"""Misconfiguration finding data model."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FindingKind(str, Enum):
    """Kinds of detected misconfigurations."""
    TAKEOVER = "takeover"
    PUBLIC_BUCKET = "public_bucket"
    PRIVATE_BUCKET = "private_bucket"
    UNCLAIMED_BUCKET = "unclaimed_bucket"
    EXPOSED_FILE = "exposed_file"
    OPEN_REDIRECT = "open_redirect"


class Finding(BaseModel):
    """
    A single detected issue on a host.

    Evidence fields are kind-specific: ``provider`` for takeovers,
    ``objects`` for public buckets, ``path`` for exposed files and
    ``redirect_url`` for open redirects.
    """

    model_config = ConfigDict(frozen=True)

    kind: FindingKind
    description: str
    tag: str = ""

    # Evidence
    provider: Optional[str] = None
    path: Optional[str] = None
    redirect_url: Optional[str] = None
    objects: list[str] = Field(default_factory=list)

    @property
    def is_vulnerability(self) -> bool:
        """A private bucket is informational, everything else is reportable."""
        return self.kind != FindingKind.PRIVATE_BUCKET

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json", exclude_none=True)
