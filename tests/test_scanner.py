"""
tests/test_scanner.py
Unit tests for the TCP-connect scan engine.
Run: pytest tests/test_scanner.py -v
"""

import sys
import os
import asyncio
import errno
import random
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import patch

from core.cancel import CancelToken
from core.results import PortOutcome, ScanResult, TimingParameters
from core.scanner_engine import ScanEngine, scan
from utils.constants import PortState
from tests.fake_services import SSH_BANNER, fake_service, hang_forever, unused_port


def params(concurrency=50, timeout=0.5, probe=0.5):
    return TimingParameters(concurrency_limit=concurrency,
                            connect_timeout=timeout, probe_timeout=probe)


class FakeWriter:
    def close(self):
        pass

    async def wait_closed(self):
        pass


async def jittery_open(host, port, **kwargs):
    """Open on even ports, refused on odd ones, random completion order."""
    await asyncio.sleep(random.random() * 0.01)
    if port % 2:
        raise ConnectionRefusedError(errno.ECONNREFUSED, "refused")
    return None, FakeWriter()


# ─── Classification ───────────────────────────────────────────────────────────

class TestScanPort:

    @pytest.mark.asyncio
    async def test_open_port(self):
        async with fake_service(banner=SSH_BANNER) as port:
            outcome = await ScanEngine(params()).scan_port("127.0.0.1", port)
        assert outcome.state == PortState.OPEN
        assert outcome.raw_response is None
        assert outcome.rtt is not None

    @pytest.mark.asyncio
    async def test_open_port_passive_read(self):
        async with fake_service(banner=SSH_BANNER) as port:
            engine = ScanEngine(params(), grab_banners=True)
            outcome = await engine.scan_port("127.0.0.1", port)
        assert outcome.state == PortState.OPEN
        assert outcome.raw_response == SSH_BANNER

    @pytest.mark.asyncio
    async def test_silent_open_port_reads_empty(self):
        async with fake_service() as port:
            engine = ScanEngine(params(probe=0.1), grab_banners=True)
            outcome = await engine.scan_port("127.0.0.1", port)
        assert outcome.state == PortState.OPEN
        assert outcome.raw_response == b""

    @pytest.mark.asyncio
    async def test_refused_is_closed(self):
        outcome = await ScanEngine(params()).scan_port("127.0.0.1", unused_port())
        assert outcome.state == PortState.CLOSED

    @pytest.mark.asyncio
    async def test_timeout_is_filtered(self):
        with patch("asyncio.open_connection", new=hang_forever):
            outcome = await ScanEngine(params(timeout=0.05)).scan_port("192.0.2.1", 80)
        assert outcome.state == PortState.FILTERED

    @pytest.mark.asyncio
    async def test_unreachable_is_filtered(self):
        async def unreachable(*args, **kwargs):
            raise OSError(errno.EHOSTUNREACH, "No route to host")

        with patch("asyncio.open_connection", new=unreachable):
            outcome = await ScanEngine(params()).scan_port("192.0.2.1", 80)
        assert outcome.state == PortState.FILTERED

    @pytest.mark.asyncio
    async def test_descriptor_exhaustion_is_filtered(self):
        async def exhausted(*args, **kwargs):
            raise OSError(errno.EMFILE, "Too many open files")

        engine = ScanEngine(params())
        with patch("asyncio.open_connection", new=exhausted):
            result = await engine.scan("127.0.0.1", [1, 2, 3])
        assert all(r.state == PortState.FILTERED for r in result.records)
        assert result.complete is True


# ─── Whole scans ──────────────────────────────────────────────────────────────

class TestScan:

    @pytest.mark.asyncio
    async def test_order_matches_port_spec(self):
        ports = list(range(1, 201))
        with patch("asyncio.open_connection", new=jittery_open):
            result = await ScanEngine(params(concurrency=64)).scan("10.0.0.1", ports)
        assert result.ports == ports
        assert isinstance(result, ScanResult)
        assert result.complete is True

    @pytest.mark.asyncio
    async def test_each_port_exactly_once(self):
        ports = [5, 3, 9, 100, 7]
        with patch("asyncio.open_connection", new=jittery_open):
            result = await ScanEngine(params()).scan("10.0.0.1", ports)
        assert result.ports == ports
        assert len(result.records) == len(set(result.ports))

    @pytest.mark.asyncio
    async def test_states_assigned(self):
        with patch("asyncio.open_connection", new=jittery_open):
            result = await ScanEngine(params()).scan("10.0.0.1", [1, 2, 3, 4])
        states = {r.port: r.state for r in result.records}
        assert states == {1: PortState.CLOSED, 2: PortState.OPEN,
                          3: PortState.CLOSED, 4: PortState.OPEN}

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeded(self):
        in_flight = 0
        peak = 0

        async def counting_open(host, port, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.002)
            finally:
                in_flight -= 1
            return None, FakeWriter()

        with patch("asyncio.open_connection", new=counting_open):
            await ScanEngine(params(concurrency=7)).scan("10.0.0.1", range(1, 101))
        assert 1 <= peak <= 7

    @pytest.mark.asyncio
    async def test_all_filtered_host(self):
        with patch("asyncio.open_connection", new=hang_forever):
            result = await ScanEngine(params(timeout=0.05)).scan("192.0.2.1", range(1, 21))
        assert len(result.records) == 20
        assert all(r.state == PortState.FILTERED for r in result.records)
        assert result.open_ports() == []

    @pytest.mark.asyncio
    async def test_real_sockets(self):
        closed = unused_port()
        async with fake_service(banner=SSH_BANNER) as open_port:
            result = await ScanEngine(params(), grab_banners=True).scan(
                "127.0.0.1", sorted([open_port, closed]),
            )
        states = {r.port: r.state for r in result.records}
        assert states[open_port] == PortState.OPEN
        assert states[closed] == PortState.CLOSED
        assert result.open_ports()[0].outcome.raw_response == SSH_BANNER

    @pytest.mark.asyncio
    async def test_empty_port_list(self):
        events = []
        result = await ScanEngine(params(), progress=events.append).scan("10.0.0.1", [])
        assert result.records == ()
        assert result.complete is True
        assert len(events) == 1
        assert events[0].is_final

    @pytest.mark.asyncio
    async def test_module_level_scan(self):
        with patch("asyncio.open_connection", new=jittery_open):
            result = await scan("10.0.0.1", [2, 4], params())
        assert [r.state for r in result.records] == [PortState.OPEN, PortState.OPEN]
        assert result.parameters == params()


# ─── Progress ─────────────────────────────────────────────────────────────────

class TestProgress:

    @pytest.mark.asyncio
    async def test_events_monotonic_with_final(self):
        events = []
        with patch("asyncio.open_connection", new=jittery_open):
            await ScanEngine(params(concurrency=10), progress=events.append).scan(
                "10.0.0.1", range(1, 51),
            )
        counts = [e.completed_count for e in events]
        assert counts == sorted(counts)
        assert counts[-1] == 50
        assert all(e.total_count == 50 for e in events)
        assert events[-1].is_final
        assert events[-1].percent == 100.0

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_scan(self):
        def explode(event):
            raise RuntimeError("renderer crashed")

        with patch("asyncio.open_connection", new=jittery_open):
            result = await ScanEngine(params(), progress=explode).scan("10.0.0.1", [2, 4, 6])
        assert len(result.records) == 3


# ─── Cancellation ─────────────────────────────────────────────────────────────

class TestCancellation:

    @pytest.mark.asyncio
    async def test_partial_result_after_cancel(self):
        token = CancelToken()
        events = []

        def on_progress(event):
            events.append(event)
            if event.completed_count == 5:
                token.cancel("test")

        with patch("asyncio.open_connection", new=jittery_open):
            result = await ScanEngine(params(concurrency=1), progress=on_progress,
                                      cancel=token).scan("10.0.0.1", range(1, 101))
        assert result.complete is False
        assert result.ports == [1, 2, 3, 4, 5]
        assert events[-1].completed_count == 5
        assert not events[-1].is_final

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        token = CancelToken()
        token.cancel()
        with patch("asyncio.open_connection", new=jittery_open):
            result = await ScanEngine(params(), cancel=token).scan("10.0.0.1", [1, 2, 3])
        assert result.records == ()
        assert result.complete is False

    def test_cancel_is_idempotent(self):
        token = CancelToken()
        token.cancel("stop")
        token.cancel("again")
        assert token.cancelled
        assert token.reason == "stop"


class TestScanResult:

    def test_assemble_uses_given_order(self):
        outcomes = {p: PortOutcome(p, PortState.OPEN) for p in (80, 22, 443)}
        result = ScanResult.assemble("10.0.0.1", [22, 80, 443], outcomes)
        assert result.ports == [22, 80, 443]

    def test_assemble_skips_missing(self):
        outcomes = {22: PortOutcome(22, PortState.CLOSED)}
        result = ScanResult.assemble("10.0.0.1", [22, 80], outcomes, complete=False)
        assert result.ports == [22]

    def test_stats_and_dict(self):
        outcomes = {
            22: PortOutcome(22, PortState.OPEN),
            23: PortOutcome(23, PortState.CLOSED),
            24: PortOutcome(24, PortState.FILTERED),
        }
        result = ScanResult.assemble("10.0.0.1", [22, 23, 24], outcomes, elapsed=1.5)
        stats = result.stats()
        assert (stats.ports_open, stats.ports_closed, stats.ports_filtered) == (1, 1, 1)
        assert stats.rate_per_s == pytest.approx(2.0)
        data = result.to_dict(include_closed=False)
        assert [p["port"] for p in data["ports"]] == [22]
        assert data["ports"][0]["state"] == "open"


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
