"""Bounded-concurrency orchestration of per-host evaluation."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from subscan.core.config import ConfigurationError, Settings, get_settings
from subscan.core.logger import get_logger, log_finding, log_phase_complete, log_phase_start
from subscan.models.host import HostResult, ProbeRecord, TagSet
from subscan.models.scan import ScanReport
from subscan.modules.scanning.pipeline import FindingPipeline
from subscan.modules.scanning.scorer import HostScorer, sort_results
from subscan.modules.scanning.signatures import DEFAULT_SIGNATURES, SignatureTables
from subscan.modules.validation.dns_resolve import AliasResolver
from subscan.modules.validation.http_probe import HttpProber, ProbeResponse

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


class Scheduler:
    """
    Fans a host list out across a fixed worker budget.

    Each unit of work runs alias resolution, the HTTP probe, the finding
    pipeline and scoring for one host. Workers only share the result
    list, which is appended to under a lock; everything else a worker
    touches belongs to the host it is evaluating.

    Usage:
        scheduler = Scheduler()
        report = await scheduler.run(hosts, worker_budget=10, per_host_timeout=10)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resolver: Optional[Any] = None,
        signatures: Optional[SignatureTables] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        active_checks: Optional[bool] = None,
        verbose: Optional[bool] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            settings: Application settings (default: cached settings)
            resolver: Alias resolver exposing ``resolve_chain`` (default: AliasResolver)
            signatures: Signature tables for the pipeline and scorer
            transport: Custom httpx transport for every outbound request
            active_checks: Run the sensitive-file and open-redirect stages
                (default: ``settings.probe.active_checks``)
            verbose: Emit one log line per finished host (default: ``settings.probe.verbose``)
            progress_callback: Callback(completed, total) invoked periodically
        """
        self.settings = settings or get_settings()
        self.resolver = resolver or AliasResolver(self.settings.dns)
        self.signatures = signatures or DEFAULT_SIGNATURES
        self.transport = transport
        self.active_checks = (
            self.settings.probe.active_checks if active_checks is None else active_checks
        )
        self.verbose = self.settings.probe.verbose if verbose is None else verbose
        self.progress_callback = progress_callback
        self.scorer = HostScorer(self.signatures)

        self._cancel_event = asyncio.Event()
        self._completed = 0

    @property
    def completed(self) -> int:
        """Hosts finished so far in the current run."""
        return self._completed

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop dispatching new hosts in the current run; in-flight hosts still finish."""
        if not self._cancel_event.is_set():
            logger.warning("Cancellation requested, no further hosts will be dispatched")
        self._cancel_event.set()

    async def run(
        self,
        hosts: list[str],
        worker_budget: Optional[int] = None,
        per_host_timeout: Optional[float] = None,
    ) -> ScanReport:
        """
        Evaluate hosts with a fixed pool of workers.

        Args:
            hosts: Normalized hostnames in discovery order
            worker_budget: Number of workers (default: configured probe concurrency)
            per_host_timeout: Timeout for each network call (default: configured probe timeout)

        Returns:
            ScanReport sorted by descending score

        Raises:
            ConfigurationError: If the worker budget or timeout is invalid
        """
        budget, timeout = self._validate(worker_budget, per_host_timeout)
        report = self._start_report(hosts)

        queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue()
        for position, host in enumerate(hosts):
            queue.put_nowait((position, host))

        results: list[HostResult] = []
        lock = asyncio.Lock()

        log_phase_start("host evaluation", hosts=len(hosts), workers=budget)
        start = time.monotonic()

        async with self._make_prober(budget, timeout) as prober:
            pipeline = self._make_pipeline(prober)

            async def worker() -> None:
                while not self._cancel_event.is_set():
                    try:
                        position, host = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    try:
                        result = await self.evaluate_host(host, position, prober, pipeline, timeout)
                        async with lock:
                            results.append(result)
                            report.stats.record(result)
                        self._host_done(result)
                    finally:
                        queue.task_done()

            workers = [asyncio.create_task(worker()) for _ in range(min(budget, max(len(hosts), 1)))]
            async with self._progress(len(hosts)):
                await asyncio.gather(*workers)

        while not queue.empty():
            _, host = queue.get_nowait()
            report.skipped.append(host)

        return self._finish_report(report, results, start, "host evaluation")

    async def run_gated(
        self,
        hosts: list[str],
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> ScanReport:
        """
        Evaluate hosts with one task per host behind a semaphore.

        Same budget discipline as ``run``: at most ``concurrency`` hosts
        are in flight at any time.
        """
        budget, timeout = self._validate(concurrency, timeout)
        report = self._start_report(hosts)

        results: list[HostResult] = []
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(budget)

        log_phase_start("probing", hosts=len(hosts), concurrency=budget)
        start = time.monotonic()

        async with self._make_prober(budget, timeout) as prober:
            pipeline = self._make_pipeline(prober)

            async def probe_one(position: int, host: str) -> None:
                async with semaphore:
                    if self._cancel_event.is_set():
                        async with lock:
                            report.skipped.append(host)
                        return
                    result = await self.evaluate_host(host, position, prober, pipeline, timeout)
                async with lock:
                    results.append(result)
                    report.stats.record(result)
                self._host_done(result)

            async with self._progress(len(hosts)):
                await asyncio.gather(*(probe_one(i, h) for i, h in enumerate(hosts)))

        return self._finish_report(report, results, start, "probing")

    async def run_probes(
        self,
        hosts: list[str],
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> list[ProbeRecord]:
        """
        Probing-only entry point returning the renderer-facing records.

        Args:
            hosts: Normalized hostnames in discovery order
            concurrency: Maximum hosts in flight
            timeout: Timeout for each network call

        Returns:
            ProbeRecords ordered by descending score
        """
        report = await self.run_gated(hosts, concurrency=concurrency, timeout=timeout)
        return report.probe_records()

    async def evaluate_host(
        self,
        host: str,
        position: int,
        prober: HttpProber,
        pipeline: FindingPipeline,
        timeout: float,
    ) -> HostResult:
        """
        Resolve, probe, evaluate and score a single host.

        Network failures never escape: they degrade the host to an
        unreachable result. Any other error is logged and the host is
        reported with an ``ERROR`` tag so the run still covers it.
        """
        try:
            chain = await self._resolve(host, timeout)
            probe = await prober.probe(host, timeout=timeout)
            findings, finding_tags = await pipeline.evaluate(host, chain, probe, timeout=timeout)
        except Exception as e:
            logger.exception("Host evaluation failed", host=host)
            return self._error_result(host, position, e)

        breakdown = self.scorer.score(probe, chain)
        tags = TagSet(breakdown.tags)
        tags.extend(finding_tags)

        for finding in findings:
            if finding.is_vulnerability:
                log_finding(finding.kind.value, host, description=finding.description)

        return HostResult(
            hostname=host,
            position=position,
            alias_chain=chain,
            status_code=probe.status_code,
            content_length=probe.content_length,
            scheme=probe.scheme,
            certificate=probe.certificate,
            cloud_provider=breakdown.cloud_provider,
            findings=findings,
            tags=tags.to_list(),
            score=breakdown.score,
            error=probe.error if not probe.reachable else None,
        )

    async def _resolve(self, host: str, timeout: float) -> list[str]:
        # The chain lookup is a sequence of DNS calls; bound all of it.
        try:
            return await asyncio.wait_for(
                self.resolver.resolve_chain(host),
                timeout=timeout * 2,
            )
        except asyncio.TimeoutError:
            logger.debug("Alias resolution timed out", host=host)
            return []

    def _error_result(self, host: str, position: int, error: Exception) -> HostResult:
        breakdown = self.scorer.score(ProbeResponse.unreachable(), [])
        tags = TagSet(breakdown.tags)
        tags.add("ERROR")
        return HostResult(
            hostname=host,
            position=position,
            tags=tags.to_list(),
            score=breakdown.score,
            error=f"{type(error).__name__}: {error}",
        )

    def _validate(
        self,
        budget: Optional[int],
        timeout: Optional[float],
    ) -> tuple[int, float]:
        budget = self.settings.probe.concurrency if budget is None else budget
        timeout = self.settings.probe.timeout if timeout is None else timeout

        if not isinstance(budget, int) or budget < 1:
            raise ConfigurationError(f"Worker budget must be an integer >= 1, got {budget!r}")
        if timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {timeout!r}")
        return budget, float(timeout)

    def _make_prober(self, budget: int, timeout: float) -> HttpProber:
        config = self.settings.probe.model_copy(update={"timeout": timeout})
        return HttpProber(config, max_connections=budget * 4, transport=self.transport)

    def _make_pipeline(self, prober: HttpProber) -> FindingPipeline:
        config = self.settings.probe.model_copy(update={"active_checks": self.active_checks})
        return FindingPipeline(self.signatures, config, fetcher=prober)

    def _start_report(self, hosts: list[str]) -> ScanReport:
        # A cancel only applies to the run it was issued in
        self._cancel_event.clear()
        self._completed = 0
        report = ScanReport(started_at=datetime.now())
        report.stats.hosts_total = len(hosts)
        return report

    def _finish_report(
        self,
        report: ScanReport,
        results: list[HostResult],
        start: float,
        phase: str,
    ) -> ScanReport:
        duration = time.monotonic() - start
        report.results = sort_results(results)
        report.cancelled = self._cancel_event.is_set()
        report.completed_at = datetime.now()
        report.stats.hosts_skipped = len(report.skipped)
        report.stats.duration_seconds = round(duration, 2)

        log_phase_complete(
            phase,
            success=not report.cancelled,
            duration=duration,
            evaluated=len(results),
            skipped=len(report.skipped),
            vulnerable=len(report.vulnerable),
        )
        return report

    def _host_done(self, result: HostResult) -> None:
        self._completed += 1
        if not self.verbose:
            return

        issues = result.vulnerabilities
        if issues:
            logger.info(f"{result.hostname}: {', '.join(issues)}", host=result.hostname, score=result.score)
        else:
            logger.info(f"{result.hostname}: No issues found", host=result.hostname, score=result.score)

    def _progress(self, total: int) -> "_ProgressReporter":
        return _ProgressReporter(
            scheduler=self,
            total=total,
            interval=self.settings.probe.progress_interval,
            callback=self.progress_callback,
            enabled=self.verbose or self.progress_callback is not None,
        )


class _ProgressReporter:
    """Background task reporting the completed counter at a fixed interval."""

    def __init__(
        self,
        scheduler: Scheduler,
        total: int,
        interval: float,
        callback: Optional[ProgressCallback],
        enabled: bool,
    ):
        self.scheduler = scheduler
        self.total = total
        self.interval = interval
        self.callback = callback
        self.enabled = enabled and interval > 0 and total > 0
        self._task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "_ProgressReporter":
        if self.enabled:
            self._task = asyncio.create_task(self._loop())
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._report()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._report()

    def _report(self) -> None:
        completed = self.scheduler.completed
        if self.callback:
            self.callback(completed, self.total)
        else:
            logger.info(
                "Progress",
                completed=completed,
                total=self.total,
                percent=round(completed / self.total * 100, 1),
            )
