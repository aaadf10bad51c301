"""Test doubles for DNS, HTTP and TLS."""

from __future__ import annotations

import asyncio
import ssl
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Union

import dns.exception
import dns.resolver
import httpx
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID


class _Record:
    def __init__(self, text: str):
        self._text = text

    def to_text(self) -> str:
        return self._text


class FakeDnsResolver:
    """
    Stands in for ``dns.asyncresolver.Resolver``.

    ``records`` maps (name, record type) to record values; names listed in
    ``failing`` raise a timeout for every query.
    """

    def __init__(
        self,
        records: Optional[dict[tuple[str, str], list[str]]] = None,
        failing: Optional[set[str]] = None,
    ):
        self.records = records or {}
        self.failing = failing or set()
        self.queries: list[tuple[str, str]] = []

    async def resolve(self, name: str, record_type: str, lifetime: Optional[float] = None):
        self.queries.append((name, record_type))
        if name in self.failing:
            raise dns.exception.Timeout()
        values = self.records.get((name, record_type))
        if not values:
            raise dns.resolver.NoAnswer()
        return [_Record(v) for v in values]


def cname_records(aliases: dict[str, str]) -> dict[tuple[str, str], list[str]]:
    """Build CNAME records from a name -> target map (targets get a root dot)."""
    return {(name, "CNAME"): [f"{target}."] for name, target in aliases.items()}


class FakeChainResolver:
    """Stands in for ``AliasResolver`` with canned chains."""

    def __init__(self, chains: Optional[dict[str, list[str]]] = None):
        self.chains = chains or {}

    async def resolve_chain(self, host: str) -> list[str]:
        return list(self.chains.get(host, []))


Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class RoutedTransport:
    """
    ``httpx.MockTransport`` routing on scheme, host and path.

    Keys are ``"https://host/path"`` without query string. Unrouted
    requests fail with a connection error, like an unreachable host.
    """

    def __init__(self, routes: Optional[dict[str, Route]] = None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get(key)
        if route is None:
            raise httpx.ConnectError("connection refused", request=request)
        if callable(route):
            return route(request)
        # Fresh copy so one route can answer repeated requests
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def paths_for(self, host: str) -> list[str]:
        return [r.url.path for r in self.requests if r.url.host == host]




def make_certificate(
    common_name: str,
    not_before: datetime,
    not_after: datetime,
    sans: Optional[list[str]] = None,
    issuer: Optional[str] = None,
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Build a certificate and its key with the given validity window."""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    issuer_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer or common_name)])

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    if sans:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in sans]),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256()), key


@asynccontextmanager
async def tls_server(
    certificate: x509.Certificate,
    key: ec.EllipticCurvePrivateKey,
    workdir: Path,
    body: bytes = b"ok",
) -> AsyncIterator[str]:
    """
    Serve one fixed HTTP/1.1 response over TLS on loopback.

    Yields the ``host:port`` to probe.
    """
    cert_path = workdir / f"{certificate.serial_number}.crt"
    key_path = workdir / f"{certificate.serial_number}.key"
    cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(str(cert_path), str(key_path))

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                + f"Content-Length: {len(body)}\r\n".encode()
                + b"Connection: close\r\n\r\n"
                + body
            )
            await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0, ssl=context)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"127.0.0.1:{port}"
    finally:
        server.close()
