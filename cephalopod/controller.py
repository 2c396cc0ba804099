from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict

from .config import FadeSettings
from .curves import (
    clamp01,
    fade_in_multiplier,
    fade_out_multiplier,
    normalized_time,
    tick_interval,
    total_steps,
)
from .errors import ControllerClosedError, SamplerError
from .sampler import PeriodicSampler, SamplerHandle, ThreadSampler
from .sinks import AudioSink

_LOGGER = logging.getLogger("cephalopod.controller")

FadeDirection = Literal["in", "out"]
ControllerState = Literal["idle", "fading", "stopped", "closed"]
CompletionCallback = Callable[[bool], None]


@dataclass(slots=True, eq=False)
class FadeSession:
    from_volume: float
    to_volume: float
    duration: float
    velocity: float
    sample_rate: float
    on_complete: CompletionCallback | None = None
    current_step: int = 0
    ticking: bool = False
    delivered: bool = False
    result: Future[bool] = field(default_factory=Future)

    @property
    def direction(self) -> FadeDirection:
        return "in" if self.from_volume < self.to_volume else "out"

    def deliver(self, success: bool) -> None:
        """Resolve the session outcome; later calls are ignored."""

        if self.delivered:
            return
        self.delivered = True
        # A caller may have cancelled the future; the callback still fires.
        if self.result.set_running_or_notify_cancel():
            self.result.set_result(success)
        if self.on_complete is not None:
            self.on_complete(success)


class FadeProgress(BaseModel):
    from_volume: float
    to_volume: float
    duration: float
    velocity: float
    sample_rate: float
    current_step: int
    direction: FadeDirection
    ticking: bool

    model_config = ConfigDict(frozen=True, extra="forbid")


class FadeController:
    """Fades the volume of an audio sink along a velocity-shaped curve.

    At most one fade runs at a time: starting a new one supersedes the
    current one, whose completion is delivered with ``False``. Every public
    call and every tick runs under one re-entrant lock, so the controller may
    be driven from any thread, including from inside completion callbacks.

    Completion is reported both through the optional ``on_complete`` callback
    and through the ``Future[bool]`` returned by ``fade``/``fade_in``/``fade_out``.
    """

    def __init__(
        self,
        sink: AudioSink,
        *,
        sampler: PeriodicSampler | None = None,
        settings: FadeSettings | None = None,
    ) -> None:
        self._sink = sink
        self._sampler: PeriodicSampler = sampler or ThreadSampler()
        self._settings = settings or FadeSettings()
        # Ticks per second; read when a fade starts.
        self.volume_alterations_per_second = self._settings.volume_alterations_per_second
        self._lock = threading.RLock()
        self._session: FadeSession | None = None
        self._handle: SamplerHandle | None = None
        self._closed = False

    @property
    def sink(self) -> AudioSink:
        return self._sink

    @property
    def settings(self) -> FadeSettings:
        return self._settings

    @property
    def state(self) -> ControllerState:
        with self._lock:
            if self._closed:
                return "closed"
            if self._session is None:
                return "idle"
            handle = self._handle
            # A handle that died on a failing tick no longer drives the session.
            if self._session.ticking and handle is not None and handle.active:
                return "fading"
            return "stopped"

    @property
    def is_fading(self) -> bool:
        return self.state == "fading"

    @property
    def session(self) -> FadeProgress | None:
        with self._lock:
            session = self._session
            if session is None:
                return None
            return FadeProgress(
                from_volume=session.from_volume,
                to_volume=session.to_volume,
                duration=session.duration,
                velocity=session.velocity,
                sample_rate=session.sample_rate,
                current_step=session.current_step,
                direction=session.direction,
                ticking=session.ticking,
            )

    def fade_in(
        self,
        duration: float | None = None,
        velocity: float | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> Future[bool]:
        with self._lock:
            return self.fade(self._sink.volume, 1.0, duration, velocity, on_complete)

    def fade_out(
        self,
        duration: float | None = None,
        velocity: float | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> Future[bool]:
        with self._lock:
            return self.fade(self._sink.volume, 0.0, duration, velocity, on_complete)

    def fade(
        self,
        from_volume: float,
        to_volume: float,
        duration: float | None = None,
        velocity: float | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> Future[bool]:
        with self._lock:
            if self._closed:
                raise ControllerClosedError("Cannot start a fade on a closed controller")

            start = clamp01(float(from_volume))
            target = clamp01(float(to_volume))
            duration = self._settings.duration if duration is None else float(duration)
            velocity = self._settings.velocity if velocity is None else float(velocity)

            # A superseded callback may itself start a fade; supersede that one too.
            while self._session is not None:
                previous = self._session
                self._stop_sampler()
                self._session = None
                if not previous.delivered:
                    _LOGGER.debug(
                        "Superseding fade %.3f -> %.3f at step %d",
                        previous.from_volume,
                        previous.to_volume,
                        previous.current_step,
                    )
                    previous.deliver(False)
            if self._closed:
                raise ControllerClosedError("Controller was closed while superseding a fade")

            session = FadeSession(
                from_volume=start,
                to_volume=target,
                duration=duration,
                velocity=velocity,
                sample_rate=float(self.volume_alterations_per_second),
                on_complete=on_complete,
            )
            self._session = session
            self._sink.volume = start

            if start == target:
                _LOGGER.debug("Fade target equals current volume %.3f; nothing to do", start)
                self._session = None
                session.deliver(True)
                return session.result

            session.current_step = 0
            try:
                self._handle = self._sampler.start(
                    tick_interval(session.sample_rate),
                    partial(self._tick, session),
                )
            except SamplerError:
                self._session = None
                raise
            session.ticking = True
            _LOGGER.debug(
                "Fading %s %.3f -> %.3f over %.2fs (velocity=%.2f, %.1f ticks/s)",
                session.direction,
                start,
                target,
                duration,
                velocity,
                session.sample_rate,
            )
            return session.result

    def stop(self) -> None:
        """Stop ticking. Does not touch the volume and does not report completion.

        A pending completion is delivered as ``False`` by the next fade or by
        ``close()``.
        """

        with self._lock:
            if self._session is not None and self._session.ticking:
                _LOGGER.debug("Fade stopped at step %d", self._session.current_step)
            self._stop_sampler()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            session = self._session
            self._session = None
            try:
                if session is not None:
                    session.ticking = False
                    session.deliver(False)
            finally:
                self._stop_sampler()

    def __enter__(self) -> "FadeController":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _stop_sampler(self) -> None:
        if self._session is not None:
            self._session.ticking = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self, session: FadeSession) -> None:
        with self._lock:
            # Ticks already dispatched before a cancel land here; drop them.
            if self._session is not session or not session.ticking:
                return

            budget = total_steps(session.duration, session.sample_rate)
            if budget == 0.0 or session.current_step > budget:
                self._sink.volume = session.to_volume
                self._stop_sampler()
                self._session = None
                _LOGGER.debug(
                    "Fade complete at %.3f after %d steps",
                    session.to_volume,
                    session.current_step,
                )
                session.deliver(True)
                return

            time = normalized_time(session.current_step, session.duration, session.sample_rate)
            span = session.to_volume - session.from_volume
            if session.direction == "in":
                volume = session.from_volume + span * fade_in_multiplier(time, session.velocity)
            else:
                volume = session.to_volume - span * fade_out_multiplier(time, session.velocity)
            self._sink.volume = clamp01(volume)
            session.current_step += 1
