"""
core/pipeline.py
One complete scan run:

  resolve target → calibrate (adaptive templates) → derive timing
  → port scan → fingerprint open ports → ScanResult
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from typing import Callable, Dict, Optional, Sequence, Union

from core.cancel import CancelToken, ScanCancelled
from core.fingerprint_engine import FingerprintEngine
from core.latency import measure
from core.port_parser import parse_ports
from core.progress import ProgressSink, as_sink
from core.results import PortRecord, ProgressEvent, ScanResult, ServiceIdentification
from core.scanner_engine import scan
from core.signatures import SignatureMatcher
from core.target import resolve_target
from core.timing import derive, get_timing
from utils.constants import CALIBRATION_PORTS, TimingProfile
from utils.logger import get_logger

log = get_logger("pipeline")


async def run_scan(
    target: str,
    ports: Optional[Sequence[int]] = None,
    template: Union[int, str, TimingProfile] = 3,
    progress: Union[ProgressSink, Callable[[ProgressEvent], None], None] = None,
    cancel: Optional[CancelToken] = None,
    fingerprint: bool = True,
    sample_ports: Sequence[int] = CALIBRATION_PORTS,
    matcher: Optional[SignatureMatcher] = None,
    fd_limit: Optional[int] = -1,
) -> ScanResult:
    """
    Scan ``target`` and identify services on its open ports.

    Args:
        target: IPv4 address or hostname
        ports: PortSpec; None means the default 1-1024
        template: Timing template 0-5 (or name / TimingProfile)
        progress: Sink or callback receiving ProgressEvents; closed on return
        cancel: Token that stops the run early; a partial result is returned
        fingerprint: Run the fingerprint stages on open ports
        sample_ports: Calibration ports for adaptive templates
        matcher: Signature rules to use (default: built-in rules)
        fd_limit: Descriptor cap, see core.timing.derive

    Raises:
        TargetResolutionError: target cannot be resolved; nothing is scanned
    """
    t0 = time.monotonic()
    cancel = cancel or CancelToken()
    sink = as_sink(progress)
    ports = list(ports) if ports is not None else parse_ports(None)
    profile = get_timing(template) if not isinstance(template, TimingProfile) else template

    try:
        ip = await resolve_target(target)

        rtt: Optional[float] = None
        if profile.adaptive:
            rtt = await measure(ip, sample_ports)
        params = derive(profile, rtt, fd_limit=fd_limit)

        result = await scan(ip, ports, params, progress=sink, cancel=cancel,
                            grab_banners=fingerprint)
    finally:
        sink.close()

    if fingerprint and not cancel.cancelled:
        idents = await identify_open_ports(result, params.probe_timeout,
                                           params.concurrency_limit,
                                           matcher=matcher, cancel=cancel)
        result = result.with_identifications(idents)
    if cancel.cancelled:
        # ports or fingerprint stages were skipped
        result = dataclasses.replace(result, complete=False)

    result = dataclasses.replace(result, elapsed=time.monotonic() - t0)
    stats = result.stats()
    log.info(
        f"Done: {stats.ports_open} open, {stats.ports_closed} closed, "
        f"{stats.ports_filtered} filtered in {stats.elapsed_s:.2f}s"
    )
    return result


async def identify_open_ports(
    result: ScanResult,
    probe_timeout: float,
    concurrency: int,
    matcher: Optional[SignatureMatcher] = None,
    cancel: Optional[CancelToken] = None,
) -> Dict[int, ServiceIdentification]:
    """Fingerprint every OPEN record of ``result``, at most ``concurrency``
    at a time. Ports skipped because of cancellation are simply absent."""
    engine = FingerprintEngine(probe_timeout, matcher=matcher, cancel=cancel)
    sem = asyncio.Semaphore(max(1, concurrency))
    idents: Dict[int, ServiceIdentification] = {}

    async def one(record: PortRecord) -> None:
        async with sem:
            try:
                idents[record.port] = await engine.identify(
                    result.target, record.port, record.outcome.raw_response,
                )
            except ScanCancelled:
                pass

    open_records = result.open_ports()
    if open_records:
        log.info(f"Fingerprinting {len(open_records)} open ports")
    await asyncio.gather(*(one(r) for r in open_records))
    return idents
