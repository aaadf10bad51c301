"""Validation modules: DNS alias resolution, liveness and HTTP probing."""

from subscan.modules.validation.dns_resolve import (
    AliasResolutionError,
    AliasResolver,
    LivenessChecker,
)
from subscan.modules.validation.http_probe import HttpProber, ProbeResponse

__all__ = [
    "AliasResolutionError",
    "AliasResolver",
    "LivenessChecker",
    "HttpProber",
    "ProbeResponse",
]
