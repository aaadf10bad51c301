"""DNS alias-chain resolution and liveness checks using dnspython."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from subscan.core.config import DnsConfig
from subscan.core.logger import get_logger

logger = get_logger(__name__)


class AliasResolutionError(Exception):
    """The resolving infrastructure failed (timeout, no reachable nameserver)."""


def normalize_name(name: str) -> str:
    """Lower-case a DNS name and strip the trailing root label dot."""
    return name.strip().rstrip(".").lower()


def build_resolver(config: DnsConfig) -> dns.asyncresolver.Resolver:
    """Create an async resolver honouring the configured nameservers and timeout."""
    resolver = dns.asyncresolver.Resolver()
    if config.nameservers:
        resolver.nameservers = list(config.nameservers)
    resolver.timeout = config.timeout
    resolver.lifetime = config.timeout
    return resolver


class _DnsQueryMixin:
    """Shared record lookup with uniform error mapping."""

    resolver: Any
    timeout: float

    async def _query(self, name: str, record_type: str) -> Optional[list[str]]:
        """
        Query one record type.

        Returns:
            Record values as text, or None when the name has no such record

        Raises:
            AliasResolutionError: On timeout or nameserver failure
        """
        try:
            answer = await self.resolver.resolve(name, record_type, lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.YXDOMAIN):
            return None
        except dns.exception.DNSException as e:
            # NoNameservers, LifetimeTimeout and friends
            raise AliasResolutionError(f"{record_type} lookup for {name} failed: {e}") from e

        return [r.to_text() for r in answer]


class AliasResolver(_DnsQueryMixin):
    """
    Follows a hostname's CNAME chain.

    Resolution is an explicit loop bounded by a hop limit and a visited
    set, so aliases that loop back on themselves terminate with the
    chain accumulated so far.
    """

    def __init__(
        self,
        config: Optional[DnsConfig] = None,
        resolver: Optional[Any] = None,
    ):
        """
        Initialize alias resolver.

        Args:
            config: DNS configuration
            resolver: Object exposing dnspython's async ``resolve`` (default: system resolver)
        """
        self.config = config or DnsConfig()
        self.resolver = resolver or build_resolver(self.config)
        self.timeout = self.config.timeout
        self.max_hops = self.config.max_alias_hops

    async def lookup_cname(self, name: str) -> Optional[str]:
        """
        Get the alias target of a single name.

        Args:
            name: Name to query

        Returns:
            Normalized alias target, or None when the name has no alias

        Raises:
            AliasResolutionError: When resolution infrastructure fails
        """
        records = await self._query(name, "CNAME")
        if not records:
            return None
        return normalize_name(records[0])

    async def resolve_chain(self, host: str) -> list[str]:
        """
        Resolve the alias chain of a hostname.

        Args:
            host: Hostname to resolve

        Returns:
            Ordered alias hops (empty when the host has no alias)
        """
        chain: list[str] = []
        visited: set[str] = set()
        current = normalize_name(host)

        while len(chain) < self.max_hops:
            try:
                target = await self.lookup_cname(current)
            except AliasResolutionError as e:
                logger.debug("Alias resolution failed", host=host, hop=current, error=str(e))
                break

            if not target or target == current:
                break

            if target in visited:
                logger.debug("Alias cycle detected", host=host, hop=target, length=len(chain))
                break

            visited.add(target)
            chain.append(target)
            current = target

        return chain


class LivenessChecker(_DnsQueryMixin):
    """Cheap existence probe: does a hostname resolve to any address at all."""

    def __init__(
        self,
        config: Optional[DnsConfig] = None,
        resolver: Optional[Any] = None,
    ):
        self.config = config or DnsConfig()
        self.resolver = resolver or build_resolver(self.config)
        self.timeout = self.config.timeout

    async def is_alive(self, host: str) -> bool:
        """Check whether ``host`` has an A or AAAA record."""
        for record_type in ("A", "AAAA"):
            try:
                if await self._query(host, record_type):
                    return True
            except AliasResolutionError as e:
                logger.debug("Liveness lookup failed", host=host, error=str(e))
        return False

    async def filter_alive(
        self,
        hosts: list[str],
        concurrency: Optional[int] = None,
        progress_interval: float = 2.0,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> list[str]:
        """
        Filter to only hostnames that resolve.

        Args:
            hosts: Hostnames to check
            concurrency: Maximum in-flight lookups (default: configured liveness budget)
            progress_interval: Seconds between progress reports
            progress_callback: Callback(completed, total), defaults to a log line

        Returns:
            Alive hostnames, in input order
        """
        if not hosts:
            return []

        concurrency = concurrency or self.config.liveness_concurrency
        total = len(hosts)
        completed = 0
        semaphore = asyncio.Semaphore(concurrency)
        start = time.monotonic()

        logger.info("Starting liveness check", total=total, workers=concurrency)

        async def check(host: str) -> bool:
            nonlocal completed
            async with semaphore:
                alive = await self.is_alive(host)
            completed += 1
            return alive

        def report() -> None:
            if progress_callback:
                progress_callback(completed, total)
            else:
                logger.info(
                    "Liveness progress",
                    completed=completed,
                    total=total,
                    percent=round(completed / total * 100, 1),
                )

        async def reporter() -> None:
            while True:
                await asyncio.sleep(progress_interval)
                report()

        progress_task = asyncio.create_task(reporter())
        try:
            flags = await asyncio.gather(*(check(h) for h in hosts))
        finally:
            progress_task.cancel()
            try:
                await progress_task
            except asyncio.CancelledError:
                pass

        alive = [host for host, ok in zip(hosts, flags) if ok]
        logger.info(
            "Liveness check complete",
            alive=len(alive),
            total=total,
            duration_seconds=round(time.monotonic() - start, 2),
        )
        return alive
