from __future__ import annotations

import asyncio
import threading
import time

import pytest

from cephalopod.controller import FadeController
from cephalopod.errors import SamplerError
from cephalopod.sampler import AsyncioSampler, ManualSampler, ThreadSampler
from cephalopod.sinks import CallbackSink, MemorySink


def test_thread_sampler_ticks_until_cancelled() -> None:
    sampler = ThreadSampler()
    ticks: list[float] = []
    enough = threading.Event()

    def _tick() -> None:
        ticks.append(time.monotonic())
        if len(ticks) >= 3:
            enough.set()

    handle = sampler.start(0.01, _tick)
    assert enough.wait(2.0)
    handle.cancel()
    handle.cancel()

    assert handle.wait(1.0)
    assert not handle.active
    count = len(ticks)
    time.sleep(0.05)
    assert len(ticks) == count


def test_thread_sampler_single_shot() -> None:
    sampler = ThreadSampler()
    ticks: list[int] = []

    handle = sampler.start(0.0, lambda: ticks.append(1), repeating=False)

    assert handle.wait(1.0)
    assert ticks == [1]
    handle.cancel()


def test_thread_sampler_stops_on_handler_error(
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CEPHALOPOD_LOG_DIR", str(tmp_path))
    calls: list[int] = []

    def _boom() -> None:
        calls.append(1)
        raise RuntimeError("sink went away")

    handle = ThreadSampler().start(0.0, _boom)

    assert handle.wait(1.0)
    assert calls == [1]
    assert "sink went away" in (tmp_path / "cephalopod.log").read_text(encoding="utf-8")


def test_negative_interval_is_rejected() -> None:
    with pytest.raises(SamplerError):
        ThreadSampler().start(-1.0, lambda: None)
    with pytest.raises(SamplerError):
        ManualSampler().start(float("nan"), lambda: None)


def test_manual_sampler_fires_each_active_handle_once_per_period() -> None:
    sampler = ManualSampler()
    fired: list[str] = []
    repeating = sampler.start(0.1, lambda: fired.append("r"))
    sampler.start(0.1, lambda: fired.append("once"), repeating=False)

    assert sampler.advance(2) == 3
    assert fired == ["r", "once", "r"]

    repeating.cancel()
    assert sampler.pending == 0
    assert sampler.advance() == 0


def test_manual_sampler_propagates_handler_errors() -> None:
    sampler = ManualSampler()

    def _boom() -> None:
        raise ValueError("bad tick")

    sampler.start(0.1, _boom)
    with pytest.raises(ValueError):
        sampler.advance()
    assert sampler.pending == 0


def test_controller_on_thread_sampler() -> None:
    sink = MemorySink(1.0)
    controller = FadeController(sink, sampler=ThreadSampler())
    controller.volume_alterations_per_second = 100.0

    result = controller.fade_out(duration=0.1, velocity=2.0)

    assert result.result(timeout=2.0) is True
    assert sink.volume == 0.0
    assert controller.state == "idle"
    controller.close()


def test_thread_controller_close_mid_fade_stops_writes() -> None:
    writes: list[float] = []
    sink = CallbackSink(writes.append, volume=0.0)
    controller = FadeController(sink, sampler=ThreadSampler())
    controller.volume_alterations_per_second = 200.0
    result = controller.fade_in(duration=10.0)

    time.sleep(0.05)
    controller.close()
    count = len(writes)
    time.sleep(0.05)

    assert result.result(timeout=0) is False
    assert len(writes) == count


def test_asyncio_sampler_needs_a_loop() -> None:
    with pytest.raises(SamplerError):
        AsyncioSampler().start(0.1, lambda: None)


@pytest.mark.asyncio
async def test_asyncio_sampler_cancel_stops_ticks() -> None:
    ticks: list[int] = []
    handle = AsyncioSampler().start(0.005, lambda: ticks.append(1))

    await asyncio.sleep(0.05)
    handle.cancel()
    count = len(ticks)
    await asyncio.sleep(0.03)

    assert count > 0
    assert len(ticks) == count
    assert not handle.active


@pytest.mark.asyncio
async def test_controller_on_asyncio_sampler() -> None:
    sink = MemorySink(0.0)
    controller = FadeController(sink, sampler=AsyncioSampler())
    controller.volume_alterations_per_second = 100.0

    result = controller.fade_in(duration=0.05, velocity=2.0)
    finished = await asyncio.wait_for(asyncio.wrap_future(result), timeout=2.0)

    assert finished is True
    assert sink.volume == 1.0


def test_thread_controller_reports_dead_sampler_as_stopped(
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CEPHALOPOD_LOG_DIR", str(tmp_path))
    failed = threading.Event()

    def _write(volume: float) -> None:
        if volume < 1.0:
            failed.set()
            raise OSError("device unplugged")

    controller = FadeController(CallbackSink(_write, volume=1.0), sampler=ThreadSampler())
    controller.volume_alterations_per_second = 200.0
    result = controller.fade_out(duration=1.0)

    assert failed.wait(2.0)
    deadline = time.monotonic() + 2.0
    while controller.state == "fading" and time.monotonic() < deadline:
        time.sleep(0.01)

    assert controller.state == "stopped"
    assert not result.done()
    controller.close()
    assert result.result(timeout=0) is False
