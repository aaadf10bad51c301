"""
Per-host finding pipeline.

Stages run in a fixed order against the alias chain and the initial
probe response:

1. takeover         - dangling alias to an unclaimed hosting service
2. object storage   - public, private or unclaimed bucket
3. sensitive files  - well-known paths leaking configuration
4. open redirect    - redirect parameters echoing an external URL

Every stage is bounded by the per-host finding budget. Once the budget
is spent the remaining stages are skipped entirely, which also bounds
the number of requests sent to any single target.
"""

from __future__ import annotations

from typing import Optional, Protocol
from urllib.parse import urlencode, urlsplit
from xml.etree import ElementTree

from subscan.core.config import ProbeConfig
from subscan.core.logger import get_logger
from subscan.models.finding import Finding, FindingKind
from subscan.models.host import TagSet
from subscan.modules.scanning.signatures import DEFAULT_SIGNATURES, SignatureTables
from subscan.modules.scanning.takeover import TakeoverDetector
from subscan.modules.validation.http_probe import ProbeResponse

logger = get_logger(__name__)


class Fetcher(Protocol):
    """Anything that can issue a single capped GET (see ``HttpProber.fetch``)."""

    async def fetch(
        self,
        url: str,
        body_limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[ProbeResponse]:
        ...


def extract_bucket_keys(body: str, limit: int = 5) -> list[str]:
    """
    Extract object keys from a bucket listing.

    Args:
        body: ListBucketResult XML document
        limit: Maximum number of keys to return

    Returns:
        Up to ``limit`` object keys

    Raises:
        ElementTree.ParseError: If the body is not well-formed XML
    """
    root = ElementTree.fromstring(body)
    # S3 XML uses namespace
    ns = ""
    if root.tag.startswith("{"):
        ns = root.tag.split("}")[0] + "}"

    keys = []
    for contents in root.iter(f"{ns}Contents"):
        key = contents.findtext(f"{ns}Key")
        if key:
            keys.append(key)
        if len(keys) >= limit:
            break
    return keys


class FindingPipeline:
    """
    Runs the detection stages for one host at a time.

    Holds no per-host state, so a single instance is shared by all
    scheduler workers.
    """

    def __init__(
        self,
        signatures: Optional[SignatureTables] = None,
        config: Optional[ProbeConfig] = None,
        fetcher: Optional[Fetcher] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            signatures: Signature tables (default: built-in tables)
            config: Probe configuration (budget, sentinel, body caps)
            fetcher: HTTP fetcher for the active stages; without one the
                sensitive-file and open-redirect stages never run
        """
        self.signatures = signatures or DEFAULT_SIGNATURES
        self.config = config or ProbeConfig()
        self.fetcher = fetcher
        self.budget = self.config.finding_budget
        self.takeover = TakeoverDetector(self.signatures)

    @property
    def active_enabled(self) -> bool:
        return self.fetcher is not None and self.config.active_checks

    async def evaluate(
        self,
        host: str,
        chain: list[str],
        probe: ProbeResponse,
        timeout: Optional[float] = None,
    ) -> tuple[list[Finding], list[str]]:
        """
        Evaluate one host.

        Args:
            host: Hostname
            chain: Resolved alias chain (may be empty)
            probe: Initial probe response (may be the zero-status sentinel)
            timeout: Per-request timeout for the active stages

        Returns:
            (findings in detection order, finding-derived tags)
        """
        findings: list[Finding] = []
        body = probe.text if probe.reachable else ""

        findings.extend(self.takeover.check(host, chain, body, limit=self.budget))

        if self._remaining(findings) > 0:
            findings.extend(self._storage_stage(host, chain, body)[: self._remaining(findings)])

        if self.active_enabled and probe.reachable:
            if self._remaining(findings) > 0:
                findings.extend(await self._sensitive_file_stage(host, findings, timeout))
            if self._remaining(findings) > 0:
                findings.extend(await self._open_redirect_stage(host, findings, timeout))

        if self._remaining(findings) <= 0:
            logger.debug("Finding budget reached", host=host, budget=self.budget)

        return findings, self.derive_tags(findings)

    @staticmethod
    def derive_tags(findings: list[Finding]) -> list[str]:
        """One tag per finding kind, plus the provider for takeovers."""
        tags = TagSet()
        for finding in findings:
            tags.add(finding.tag)
            if finding.kind == FindingKind.TAKEOVER and finding.provider:
                tags.add(finding.provider)
        return tags.to_list()

    def _remaining(self, findings: list[Finding]) -> int:
        return self.budget - len(findings)

    def _storage_stage(self, host: str, chain: list[str], body: str) -> list[Finding]:
        markers = self.signatures.storage
        referenced = any(domain in hop for hop in chain for domain in markers.domains)
        if not referenced and markers.listing not in body:
            return []

        if markers.listing in body:
            objects: list[str] = []
            try:
                objects = extract_bucket_keys(body, limit=markers.max_listed_objects)
            except ElementTree.ParseError as e:
                logger.debug("Unparseable bucket listing", host=host, error=str(e))
            return [
                Finding(
                    kind=FindingKind.PUBLIC_BUCKET,
                    description="Public S3 Bucket",
                    tag="PUBLIC-S3",
                    objects=objects,
                )
            ]

        if markers.access_denied in body:
            return [
                Finding(
                    kind=FindingKind.PRIVATE_BUCKET,
                    description="Private S3 Bucket",
                    tag="PRIVATE-S3",
                )
            ]

        if markers.no_such_bucket in body:
            return [
                Finding(
                    kind=FindingKind.UNCLAIMED_BUCKET,
                    description="Unclaimed S3 Bucket",
                    tag="UNCLAIMED-S3",
                )
            ]

        return []

    async def _sensitive_file_stage(
        self,
        host: str,
        findings: list[Finding],
        timeout: Optional[float],
    ) -> list[Finding]:
        found: list[Finding] = []

        for entry in self.signatures.sensitive_files:
            if len(findings) + len(found) >= self.budget:
                break

            url = f"https://{host}/{entry.path.lstrip('/')}"
            response = await self.fetcher.fetch(
                url,
                body_limit=self.config.file_body_limit,
                timeout=timeout,
            )
            if response is None or response.status_code != 200:
                continue

            text = response.text
            if any(sig in text for sig in entry.content_signatures):
                found.append(
                    Finding(
                        kind=FindingKind.EXPOSED_FILE,
                        description=f"Exposed {entry.description}",
                        tag=entry.tag,
                        path=entry.path,
                    )
                )

        return found

    async def _open_redirect_stage(
        self,
        host: str,
        findings: list[Finding],
        timeout: Optional[float],
    ) -> list[Finding]:
        sentinel = self.config.redirect_sentinel
        sentinel_host = urlsplit(sentinel).hostname or sentinel

        for probe in self.signatures.redirect_probes:
            if len(findings) >= self.budget:
                break

            query = urlencode({probe.param: sentinel}, safe=":/")
            url = f"https://{host}{probe.path}?{query}"
            response = await self.fetcher.fetch(url, timeout=timeout)
            if response is None or not response.is_redirect:
                continue

            if response.location and sentinel_host in response.location:
                return [
                    Finding(
                        kind=FindingKind.OPEN_REDIRECT,
                        description="Open Redirect",
                        tag="OPEN-REDIRECT",
                        redirect_url=url,
                    )
                ]

        return []
