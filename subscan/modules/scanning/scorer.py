"""Interest scoring and classification tags for probed hosts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from subscan.models.host import HostResult, TagSet
from subscan.modules.scanning.signatures import DEFAULT_SIGNATURES, SignatureTables
from subscan.modules.validation.http_probe import ProbeResponse

LARGE_BODY_BYTES = 100 * 1024


@dataclass(frozen=True)
class ScoreBreakdown:
    """Score plus the classification tags it was derived from."""
    score: float
    tags: list[str] = field(default_factory=list)
    cloud_provider: Optional[str] = None


class HostScorer:
    """
    Deterministic additive scoring.

    Scores only rank hosts against each other within a run; they are
    not probabilities and are never clamped.
    """

    BASE_SCORE = 1.0
    TLS_VALID = 0.5
    TLS_INVALID = -0.3
    CLOUD_PROVIDER = 1.0
    STATUS_2XX = 1.0
    STATUS_3XX = 0.5
    STATUS_403 = 0.7
    STATUS_4XX = 0.2
    STATUS_5XX = 0.3
    LARGE_BODY = 0.2

    def __init__(self, signatures: Optional[SignatureTables] = None):
        self.signatures = signatures or DEFAULT_SIGNATURES

    def match_provider(self, chain: list[str]) -> Optional[str]:
        """
        Identify the cloud or hosting provider behind an alias chain.

        Providers are tried in lexicographic order and the first match wins.
        """
        for provider in self.signatures.ordered_cloud_providers():
            regex = provider.regex
            if any(regex.search(hop) for hop in chain):
                return provider.provider
        return None

    def score(
        self,
        probe: ProbeResponse,
        chain: list[str],
        now: Optional[datetime] = None,
    ) -> ScoreBreakdown:
        """
        Score a host from its probe response and alias chain.

        Args:
            probe: Initial probe response
            chain: Resolved alias chain
            now: Reference time for certificate validity (default: current time)

        Returns:
            ScoreBreakdown with score, classification tags and provider
        """
        score = self.BASE_SCORE
        tags = TagSet()

        if probe.certificate is not None:
            if probe.certificate.is_valid(now):
                score += self.TLS_VALID
            else:
                tags.add("CERT-INVALID")
                score += self.TLS_INVALID

        if not probe.reachable:
            tags.add("NO-HTTP")

        provider = self.match_provider(chain)
        if provider:
            tags.add(provider)
            score += self.CLOUD_PROVIDER

        status = probe.status_code
        if 200 <= status < 300:
            tags.add(str(status))
            score += self.STATUS_2XX
        elif 300 <= status < 400:
            tags.add(str(status))
            tags.add("REDIRECT")
            score += self.STATUS_3XX
        elif status == 403:
            tags.add("403")
            score += self.STATUS_403
        elif 400 <= status < 500:
            tags.add(str(status))
            score += self.STATUS_4XX
        elif status >= 500:
            tags.add(str(status))
            score += self.STATUS_5XX

        if probe.content_length > 0:
            if probe.content_length > LARGE_BODY_BYTES:
                tags.add("LARGE")
                score += self.LARGE_BODY
            else:
                tags.add(f"{probe.content_length // 1024}KB")

        return ScoreBreakdown(score=round(score, 4), tags=tags.to_list(), cloud_provider=provider)


def sort_results(results: Iterable[HostResult]) -> list[HostResult]:
    """Order by descending score, ties in discovery order."""
    return sorted(results, key=lambda r: (-r.score, r.position))
