"""
core/latency.py
Calibration probes used to estimate RTT before the real scan.

A completed handshake and an active refusal both prove a round trip
happened, so both count as samples; timeouts and unreachable errors don't.
The sample set and timeout are fixed and nothing is retried, so
calibration costs at most one CALIBRATION_TIMEOUT_S.
"""

from __future__ import annotations

import asyncio
import time
from typing import List, Optional, Sequence

from core.probes import close_stream
from utils.constants import CALIBRATION_PORTS, CALIBRATION_TIMEOUT_S
from utils.logger import get_logger

log = get_logger("latency")


class LatencyProber:

    def __init__(
        self,
        sample_ports: Sequence[int] = CALIBRATION_PORTS,
        timeout: float = CALIBRATION_TIMEOUT_S,
    ):
        self.sample_ports = tuple(sample_ports)
        self.timeout = timeout

    async def measure(
        self, target: str, sample_ports: Optional[Sequence[int]] = None
    ) -> Optional[float]:
        """Mean RTT in seconds over the successful samples, or None."""
        ports = tuple(sample_ports) if sample_ports is not None else self.sample_ports
        if not ports:
            return None

        results = await asyncio.gather(*(self._sample(target, p) for p in ports))
        rtts: List[float] = [r for r in results if r is not None]

        if not rtts:
            log.info(f"No calibration samples from {target}")
            return None

        avg = sum(rtts) / len(rtts)
        log.info(
            f"Calibration: {len(rtts)}/{len(ports)} samples, "
            f"average RTT {avg * 1000:.1f}ms"
        )
        return avg

    async def _sample(self, target: str, port: int) -> Optional[float]:
        t0 = time.monotonic()
        try:
            _, w = await asyncio.wait_for(
                asyncio.open_connection(target, port),
                timeout=self.timeout,
            )
        except ConnectionRefusedError:
            return time.monotonic() - t0     # RST received → host answered
        except (asyncio.TimeoutError, OSError):
            return None                      # no reply / unreachable

        rtt = time.monotonic() - t0
        await close_stream(w, self.timeout)
        return rtt


async def measure(
    target: str, sample_ports: Sequence[int] = CALIBRATION_PORTS
) -> Optional[float]:
    """Module-level convenience function."""
    return await LatencyProber(sample_ports).measure(target)
