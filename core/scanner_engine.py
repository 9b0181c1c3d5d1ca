"""
core/scanner_engine.py
Async TCP-connect scan engine with:
  • asyncio.open_connection — non-blocking, no raw sockets needed
  • Fixed-size worker pool draining a port queue (in-flight ≤ concurrency)
  • Tri-state classification: open / closed (refused) / filtered (timeout)
  • Granular per-exception handling (no bare except)
  • Optional passive banner read on open ports
  • Fire-and-forget progress events
  • Cooperative cancellation with partial results
"""

from __future__ import annotations

import asyncio
import errno
import time
from typing import Callable, Dict, Optional, Sequence, Union

from core.cancel import CancelToken
from core.probes import close_stream, read_some
from core.progress import ProgressSink, as_sink
from core.results import PortOutcome, ProgressEvent, ScanResult, TimingParameters
from utils.constants import PortState
from utils.logger import get_logger

log = get_logger("scanner")

_FD_EXHAUSTED = {errno.EMFILE, errno.ENFILE}


# ─── Core Engine ─────────────────────────────────────────────────────────────

class ScanEngine:
    """
    High-performance async TCP-connect scanner.

    Layering contract:
      Imports only: core/*, utils/*
      Does NOT import: main, rich, yaml
    """

    def __init__(
        self,
        params: TimingParameters,
        grab_banners: bool = False,
        progress: Union[ProgressSink, Callable[[ProgressEvent], None], None] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.params = params
        self._grab_banners = grab_banners
        self._sink = as_sink(progress)
        self.cancel = cancel or CancelToken()
        self._fd_warned = False

    # ── Public scan API ───────────────────────────────────────────────────────

    async def scan(self, target: str, ports: Sequence[int]) -> ScanResult:
        """Scan every port once. Returns ScanResult in ``ports`` order."""
        ports = list(ports)
        total = len(ports)
        t0 = time.monotonic()

        queue: asyncio.Queue = asyncio.Queue()
        for p in ports:
            queue.put_nowait(p)

        outcomes: Dict[int, PortOutcome] = {}
        completed = 0

        async def worker() -> None:
            nonlocal completed
            while not self.cancel.cancelled:
                try:
                    port = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcomes[port] = await self.scan_port(target, port)
                completed += 1
                self._sink.emit(
                    ProgressEvent(completed, total, time.monotonic() - t0)
                )

        n_workers = min(self.params.concurrency_limit, total)
        log.info(
            f"Scanning {target}: {total} ports, {n_workers} workers, "
            f"timeout {self.params.connect_timeout * 1000:.0f}ms"
        )
        await asyncio.gather(*(worker() for _ in range(n_workers)))

        elapsed = time.monotonic() - t0
        complete = completed == total
        if not complete:
            log.warning(f"Scan cancelled after {completed}/{total} ports")
        if total == 0 or not complete:
            # the last worker already emitted 100% for a finished run
            self._sink.emit(ProgressEvent(completed, total, elapsed))

        return ScanResult.assemble(
            target, ports, outcomes,
            parameters=self.params, elapsed=elapsed, complete=complete,
        )

    # ── Port-level scan ───────────────────────────────────────────────────────

    async def scan_port(self, target: str, port: int) -> PortOutcome:
        """Attempt one TCP connection to target:port. Never raises for
        network failures; they are the CLOSED / FILTERED states."""
        t0 = time.monotonic()
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(target, port),
                timeout=self.params.connect_timeout,
            )
        except asyncio.TimeoutError:
            return PortOutcome(port, PortState.FILTERED)
        except ConnectionRefusedError:
            return PortOutcome(port, PortState.CLOSED)
        except OSError as exc:
            if exc.errno in _FD_EXHAUSTED and not self._fd_warned:
                self._fd_warned = True
                log.warning(
                    "Out of file descriptors; affected ports are reported "
                    "as filtered. Lower the timing template or raise ulimit -n."
                )
            return PortOutcome(port, PortState.FILTERED)

        rtt = time.monotonic() - t0
        try:
            raw: Optional[bytes] = None
            if self._grab_banners:
                raw = await read_some(reader, self.params.probe_timeout)
        finally:
            await close_stream(writer, self.params.connect_timeout)

        log.debug(f"{target}:{port} open ({rtt * 1000:.1f}ms)")
        return PortOutcome(port, PortState.OPEN, raw_response=raw, rtt=rtt)


# ── Module-level convenience ──────────────────────────────────────────────────

async def scan(
    target: str,
    ports: Sequence[int],
    params: TimingParameters,
    progress: Union[ProgressSink, Callable[[ProgressEvent], None], None] = None,
    cancel: Optional[CancelToken] = None,
    grab_banners: bool = False,
) -> ScanResult:
    """Scan ``ports`` once with a fresh engine."""
    engine = ScanEngine(params, grab_banners=grab_banners,
                        progress=progress, cancel=cancel)
    return await engine.scan(target, ports)
