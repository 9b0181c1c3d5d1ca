"""
core/progress.py
One-directional progress delivery from the scan engine to whoever renders it.

The engine calls ``emit`` and moves on; it never waits on a consumer.
``ProgressChannel`` buffers a bounded number of events and drops the oldest
on overflow, so a slow renderer loses intermediate ticks but always sees
the final event.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Optional, Protocol, Union, runtime_checkable

from core.results import ProgressEvent
from utils.logger import get_logger

log = get_logger("progress")


@runtime_checkable
class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...
    def close(self) -> None: ...


class NullSink:
    """Used when progress output is suppressed (e.g. --json)."""

    def emit(self, event: ProgressEvent) -> None:
        pass

    def close(self) -> None:
        pass


class CallbackSink:
    """Adapts a plain ``fn(event)`` callback. A failing callback is logged
    and disabled rather than allowed to break the scan."""

    def __init__(self, fn: Callable[[ProgressEvent], None]):
        self._fn: Optional[Callable[[ProgressEvent], None]] = fn

    def emit(self, event: ProgressEvent) -> None:
        if self._fn is None:
            return
        try:
            self._fn(event)
        except Exception as exc:
            log.warning(f"Progress callback failed, disabling it: {exc}")
            self._fn = None

    def close(self) -> None:
        pass


class ProgressChannel:
    """
    Bounded, drop-oldest progress queue.

    Producer side (engine):   channel.emit(event); channel.close()
    Consumer side (renderer): async for event in channel: ...
    """

    def __init__(self, maxsize: int = 64):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        self._put(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(None)          # end-of-stream marker

    def _put(self, item: Optional[ProgressEvent]) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item


def as_sink(
    progress: Union[ProgressSink, Callable[[ProgressEvent], None], None]
) -> ProgressSink:
    if progress is None:
        return NullSink()
    if isinstance(progress, ProgressSink):
        return progress
    if callable(progress):
        return CallbackSink(progress)
    raise TypeError(f"Unsupported progress sink: {progress!r}")
