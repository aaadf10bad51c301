"""Subdomain takeover detection against static provider fingerprints."""

from __future__ import annotations

from typing import Optional

from subscan.core.logger import get_logger
from subscan.models.finding import Finding, FindingKind
from subscan.modules.scanning.signatures import (
    DEFAULT_SIGNATURES,
    SignatureTables,
    TakeoverSignature,
)

logger = get_logger(__name__)

TAKEOVER_TAG = "TAKEOVER-CANDIDATE"


class TakeoverDetector:
    """
    Subdomain takeover detection.

    A host is a takeover candidate for a provider when one of its alias
    hops matches the provider's alias pattern and the served page
    carries one of the provider's "nothing here" fingerprints.
    """

    def __init__(self, signatures: Optional[SignatureTables] = None):
        """
        Initialize takeover detector.

        Args:
            signatures: Signature tables (default: built-in tables)
        """
        self.signatures = signatures or DEFAULT_SIGNATURES

    def match_alias(self, chain: list[str]) -> list[tuple[TakeoverSignature, str]]:
        """
        Find providers whose alias pattern appears in the chain.

        Args:
            chain: Alias hops of the host

        Returns:
            (signature, matching hop) pairs in provider order
        """
        matches = []
        for signature in self.signatures.ordered_takeovers():
            for hop in chain:
                if signature.matches_alias(hop):
                    matches.append((signature, hop))
                    break
        return matches

    def check(
        self,
        host: str,
        chain: list[str],
        body: str,
        limit: Optional[int] = None,
    ) -> list[Finding]:
        """
        Check a host for takeover candidates.

        Args:
            host: Hostname being evaluated
            chain: Resolved alias chain
            body: Body of the initial probe response
            limit: Maximum number of findings to emit

        Returns:
            One Takeover finding per matching provider
        """
        if not chain or not body:
            return []

        findings: list[Finding] = []
        for signature, hop in self.match_alias(chain):
            if limit is not None and len(findings) >= limit:
                break
            if not signature.matches_body(body):
                continue

            findings.append(
                Finding(
                    kind=FindingKind.TAKEOVER,
                    description=f"Subdomain Takeover ({signature.provider})",
                    tag=TAKEOVER_TAG,
                    provider=signature.provider,
                )
            )
            logger.debug(
                "Takeover fingerprint matched",
                host=host,
                provider=signature.provider,
                cname=hop,
            )

        return findings
