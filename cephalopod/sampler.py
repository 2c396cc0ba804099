"""Periodic samplers that drive fade ticks.

A sampler calls a handler every ``interval`` seconds until the returned
handle is cancelled. Ticks of one handle are always delivered serially.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from typing import Callable, Protocol

from .errors import SamplerError
from .logging_utils import log_exception

_LOGGER = logging.getLogger("cephalopod.sampler")

TickHandler = Callable[[], None]

_thread_ids = itertools.count(1)


class SamplerHandle(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class PeriodicSampler(Protocol):
    def start(
        self,
        interval: float,
        handler: TickHandler,
        *,
        repeating: bool = True,
    ) -> SamplerHandle: ...


def _check_interval(interval: float) -> None:
    if not interval >= 0.0:
        raise SamplerError(f"Sampler interval must be >= 0, got {interval!r}")


def _report_tick_failure(exc: Exception) -> None:
    _LOGGER.warning("Sampler tick failed, stopping sampler: %s", exc, exc_info=True)
    log_exception("sampler tick", exc)


class _ThreadHandle:
    def __init__(
        self,
        interval: float,
        handler: TickHandler,
        *,
        repeating: bool,
        name: str,
    ) -> None:
        self._interval = interval
        self._handler = handler
        self._repeating = repeating
        self._stop = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def active(self) -> bool:
        return not self._stop.is_set() and not self._done.is_set()

    def cancel(self) -> None:
        # Never joins: the handler may be waiting on a lock the canceller holds.
        self._stop.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the sampler thread has exited."""

        return self._done.wait(timeout)

    def _start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        deadline = time.monotonic()
        try:
            while True:
                deadline += self._interval
                now = time.monotonic()
                if deadline < now - self._interval:
                    # Fell behind (suspended process, slow handler); skip the backlog.
                    deadline = now
                if self._stop.wait(max(0.0, deadline - now)):
                    return
                try:
                    self._handler()
                except Exception as exc:
                    _report_tick_failure(exc)
                    return
                if not self._repeating:
                    return
        finally:
            self._done.set()


class ThreadSampler:
    """Runs each started handler on its own daemon thread."""

    def start(
        self,
        interval: float,
        handler: TickHandler,
        *,
        repeating: bool = True,
    ) -> _ThreadHandle:
        _check_interval(interval)
        handle = _ThreadHandle(
            interval,
            handler,
            repeating=repeating,
            name=f"cephalopod-sampler-{next(_thread_ids)}",
        )
        handle._start()
        return handle


class _AsyncioHandle:
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        handler: TickHandler,
        *,
        repeating: bool,
    ) -> None:
        self._loop = loop
        self._interval = interval
        self._handler = handler
        self._repeating = repeating
        self._timer: asyncio.TimerHandle | None = None
        self._deadline = 0.0
        self._cancelled = False
        self._finished = False

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._finished

    def cancel(self) -> None:
        self._cancelled = True
        if _running_loop() is self._loop:
            self._cancel_timer()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._cancel_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_first(self) -> None:
        if self._cancelled:
            return
        self._deadline = self._loop.time()
        self._schedule_next()

    def _schedule_next(self) -> None:
        self._deadline += self._interval
        self._timer = self._loop.call_at(self._deadline, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._cancelled:
            return
        try:
            self._handler()
        except Exception as exc:
            _report_tick_failure(exc)
            self._finished = True
            return
        if self._repeating and not self._cancelled:
            self._schedule_next()
        else:
            self._finished = True


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class AsyncioSampler:
    """Schedules ticks on an asyncio event loop with ``call_at``.

    Without an explicit loop, ``start`` must be called from inside a running
    loop; ticks then run on that loop's thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def start(
        self,
        interval: float,
        handler: TickHandler,
        *,
        repeating: bool = True,
    ) -> _AsyncioHandle:
        _check_interval(interval)
        running = _running_loop()
        loop = self._loop or running
        if loop is None:
            raise SamplerError("AsyncioSampler.start() needs a running event loop")
        if loop.is_closed():
            raise SamplerError("AsyncioSampler event loop is closed")
        handle = _AsyncioHandle(loop, interval, handler, repeating=repeating)
        if running is loop:
            handle._schedule_first()
        else:
            loop.call_soon_threadsafe(handle._schedule_first)
        return handle


class _ManualHandle:
    def __init__(self, interval: float, handler: TickHandler, *, repeating: bool) -> None:
        self.interval = interval
        self._handler = handler
        self._repeating = repeating
        self._cancelled = False
        self._finished = False

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._finished

    def cancel(self) -> None:
        self._cancelled = True

    def _fire(self) -> None:
        try:
            self._handler()
        except Exception:
            self._finished = True
            raise
        if not self._repeating:
            self._finished = True


class ManualSampler:
    """Host-driven sampler: every ``advance`` call is one period for all handles.

    Handler exceptions propagate to the caller of ``advance``.
    """

    def __init__(self) -> None:
        self._handles: list[_ManualHandle] = []
        self.ticks = 0

    def start(
        self,
        interval: float,
        handler: TickHandler,
        *,
        repeating: bool = True,
    ) -> _ManualHandle:
        _check_interval(interval)
        handle = _ManualHandle(interval, handler, repeating=repeating)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._handles if handle.active)

    def advance(self, ticks: int = 1) -> int:
        """Fire ``ticks`` periods; returns how many handler calls were made."""

        fired = 0
        for _ in range(ticks):
            self.ticks += 1
            # Handles started during this period first fire on the next one.
            for handle in list(self._handles):
                if handle.active:
                    handle._fire()
                    fired += 1
            self._handles = [handle for handle in self._handles if handle.active]
        return fired

    def run_until_idle(self, *, max_ticks: int = 1_000_000) -> int:
        """Advance until no handle is active; returns the number of periods."""

        periods = 0
        while self.pending and periods < max_ticks:
            self.advance()
            periods += 1
        return periods
