from __future__ import annotations

import threading
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class AudioSink(Protocol):
    """Anything exposing a settable scalar gain in ``[0, 1]``."""

    @property
    def volume(self) -> float: ...

    @volume.setter
    def volume(self, value: float) -> None: ...


class MemorySink:
    """Sink that keeps every write; handy for hosts that poll and for tests."""

    def __init__(self, volume: float = 1.0) -> None:
        self._lock = threading.Lock()
        self._volume = volume
        self._history: list[float] = []

    @property
    def volume(self) -> float:
        with self._lock:
            return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        with self._lock:
            self._volume = value
            self._history.append(value)

    @property
    def history(self) -> list[float]:
        with self._lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


class CallbackSink:
    """Forwards each volume write to ``on_volume`` (a stream gain, a meter, ...)."""

    def __init__(self, on_volume: Callable[[float], None], *, volume: float = 1.0) -> None:
        self._on_volume = on_volume
        self._volume = volume

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._volume = value
        self._on_volume(value)
