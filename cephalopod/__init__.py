from __future__ import annotations

from .config import FadeSettings
from .controller import (
    CompletionCallback,
    ControllerState,
    FadeController,
    FadeDirection,
    FadeProgress,
    FadeSession,
)
from .curves import (
    clamp01,
    fade_envelope,
    fade_in_multiplier,
    fade_out_multiplier,
    normalized_time,
    total_steps,
)
from .errors import CephalopodError, ControllerClosedError, InvalidConfigError, SamplerError
from .logging_utils import configure_logging as _configure_logging
from .sampler import AsyncioSampler, ManualSampler, PeriodicSampler, SamplerHandle, ThreadSampler
from .sinks import AudioSink, CallbackSink, MemorySink

__all__ = [
    "AsyncioSampler",
    "AudioSink",
    "CallbackSink",
    "CephalopodError",
    "CompletionCallback",
    "ControllerClosedError",
    "ControllerState",
    "FadeController",
    "FadeDirection",
    "FadeProgress",
    "FadeSession",
    "FadeSettings",
    "InvalidConfigError",
    "ManualSampler",
    "MemorySink",
    "PeriodicSampler",
    "SamplerError",
    "SamplerHandle",
    "ThreadSampler",
    "clamp01",
    "fade_envelope",
    "fade_in_multiplier",
    "fade_out_multiplier",
    "normalized_time",
    "total_steps",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
