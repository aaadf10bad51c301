"""HTTP probing for reachability and fingerprinting using httpx."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from cryptography import x509
from cryptography.x509.oid import NameOID

from subscan.core.config import ProbeConfig
from subscan.core.logger import get_logger
from subscan.models.host import TlsCertificate

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeResponse:
    """Result of one HTTP attempt against a host or URL."""
    url: str = ""
    scheme: str = ""
    status_code: int = 0
    content_length: int = -1
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    location: Optional[str] = None
    certificate: Optional[TlsCertificate] = None
    error: Optional[str] = None

    @property
    def reachable(self) -> bool:
        """Zero status means neither attempt got a response."""
        return self.status_code > 0

    @property
    def is_tls(self) -> bool:
        return self.reachable and self.scheme == "https"

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def text(self) -> str:
        """Body decoded leniently for fingerprint matching."""
        return self.body.decode("utf-8", errors="replace")

    @classmethod
    def unreachable(cls, url: str = "", error: Optional[str] = None) -> "ProbeResponse":
        """Sentinel for a host that answered neither HTTPS nor HTTP."""
        return cls(url=url, error=error)


def _first_attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> str:
    attrs = name.get_attributes_for_oid(oid)
    return str(attrs[0].value) if attrs else ""


def summarize_certificate(der: bytes) -> Optional[TlsCertificate]:
    """
    Summarize a DER-encoded leaf certificate.

    Args:
        der: Certificate bytes as returned by ``getpeercert(binary_form=True)``

    Returns:
        TlsCertificate, or None when the bytes cannot be parsed
    """
    try:
        cert = x509.load_der_x509_certificate(der)
    except ValueError as e:
        logger.debug("Unparseable peer certificate", error=str(e))
        return None

    try:
        san_ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        sans = san_ext.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        sans = []

    return TlsCertificate(
        issuer=_first_attribute(cert.issuer, NameOID.COMMON_NAME),
        subject=_first_attribute(cert.subject, NameOID.COMMON_NAME),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        sans=list(sans),
    )


def _peer_certificate(response: httpx.Response) -> Optional[TlsCertificate]:
    """Pull the leaf certificate from the live connection of a streamed response."""
    stream = response.extensions.get("network_stream")
    if stream is None:
        return None
    ssl_object = stream.get_extra_info("ssl_object")
    if ssl_object is None:
        return None
    der = ssl_object.getpeercert(binary_form=True)
    return summarize_certificate(der) if der else None


class HttpProber:
    """
    HTTP prober for reachability and fingerprinting.

    Tries HTTPS first with certificate validation disabled, falls back
    once to plain HTTP, never follows redirects and reads at most a
    fixed number of body bytes per response.
    """

    def __init__(
        self,
        config: Optional[ProbeConfig] = None,
        max_connections: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP prober.

        Args:
            config: Probe configuration
            max_connections: Connection pool size (default: 4x configured concurrency)
            transport: Custom httpx transport (used by tests)
        """
        self.config = config or ProbeConfig()
        self.max_connections = max_connections or self.config.concurrency * 4
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HttpProber":
        self._ensure_client()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=False,
                follow_redirects=False,
                timeout=httpx.Timeout(self.config.timeout),
                headers={"User-Agent": self.config.user_agent},
                limits=httpx.Limits(max_connections=self.max_connections),
                transport=self.transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def probe(
        self,
        host: str,
        timeout: Optional[float] = None,
    ) -> ProbeResponse:
        """
        Probe a host over HTTPS, falling back to HTTP.

        Args:
            host: Hostname to probe
            timeout: Per-request timeout in seconds (default: configured timeout)

        Returns:
            ProbeResponse of whichever attempt answered, or a zero-status response
        """
        errors = []
        for scheme in ("https", "http"):
            url = f"{scheme}://{host}"
            try:
                return await self._request(
                    url,
                    body_limit=self.config.body_limit,
                    timeout=timeout,
                    capture_certificate=scheme == "https",
                )
            except (httpx.RequestError, httpx.InvalidURL) as e:
                errors.append(f"{scheme}: {type(e).__name__}")
                logger.debug("Probe attempt failed", url=url, error=repr(e))

        return ProbeResponse.unreachable(url=f"http://{host}", error="; ".join(errors))

    async def fetch(
        self,
        url: str,
        body_limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[ProbeResponse]:
        """
        Issue a single GET without scheme fallback.

        Args:
            url: Absolute URL to request
            body_limit: Maximum body bytes to keep (default: configured file body limit)
            timeout: Per-request timeout in seconds

        Returns:
            ProbeResponse, or None on network failure
        """
        try:
            return await self._request(
                url,
                body_limit=body_limit or self.config.file_body_limit,
                timeout=timeout,
                capture_certificate=False,
            )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            logger.debug("Fetch failed", url=url, error=repr(e))
            return None

    async def _request(
        self,
        url: str,
        body_limit: int,
        timeout: Optional[float],
        capture_certificate: bool,
    ) -> ProbeResponse:
        client = self._ensure_client()
        request_timeout = httpx.Timeout(timeout) if timeout else client.timeout

        async with client.stream("GET", url, timeout=request_timeout) as response:
            certificate = None
            if capture_certificate:
                try:
                    certificate = _peer_certificate(response)
                except (OSError, ValueError) as e:
                    logger.debug("Certificate extraction failed", url=url, error=str(e))

            body = bytearray()
            truncated = False
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= body_limit:
                    truncated = True
                    del body[body_limit:]
                    break

            declared = response.headers.get("content-length")
            if declared and declared.isdigit():
                content_length = int(declared)
            elif not truncated:
                content_length = len(body)
            else:
                content_length = -1

            headers = dict(response.headers) if self.config.capture_headers else {}

            return ProbeResponse(
                url=url,
                scheme=response.url.scheme,
                status_code=response.status_code,
                content_length=content_length,
                body=bytes(body),
                headers=headers,
                location=response.headers.get("location"),
                certificate=certificate,
            )
