"""Fade curve math.

The curves are asymmetric exponentials: ``velocity`` controls how far the
shape departs from a plain ramp (``velocity == 0`` leaves only the linear
factor). Graph: https://www.desmos.com/calculator/wnstesdf0h
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float64]


def clamp01(value: float) -> float:
    # NaN maps to silence.
    if not value >= 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def total_steps(duration: float, sample_rate: float) -> float:
    """Step budget of a fade; ``0.0`` when the budget is degenerate."""

    steps = duration * sample_rate
    if not math.isfinite(steps) or steps <= 0.0:
        return 0.0
    return steps


def tick_interval(sample_rate: float) -> float:
    if not math.isfinite(sample_rate) or sample_rate <= 0.0:
        return 0.0
    return 1.0 / sample_rate


def normalized_time(step: int, duration: float, sample_rate: float) -> float:
    budget = total_steps(duration, sample_rate)
    if budget == 0.0:
        return 1.0
    return clamp01(step / budget)


def fade_out_multiplier(time: float, velocity: float) -> float:
    time = clamp01(time)
    return math.exp(-velocity * time) * (1.0 - time)


def fade_in_multiplier(time: float, velocity: float) -> float:
    time = clamp01(time)
    return math.exp(velocity * (time - 1.0)) * time


def fade_envelope(
    from_volume: float,
    to_volume: float,
    duration: float,
    velocity: float,
    sample_rate: float,
) -> FloatArray:
    """Every volume a controller writes for one uninterrupted fade, in order.

    The first value is the immediate ``from_volume`` write, the last one the
    exact target written by the completing tick.
    """

    start = clamp01(from_volume)
    target = clamp01(to_volume)
    if start == target:
        return np.array([start], dtype=np.float64)

    budget = total_steps(duration, sample_rate)
    if budget == 0.0:
        return np.array([start, target], dtype=np.float64)

    steps = np.arange(0, math.floor(budget) + 1, dtype=np.float64)
    times = np.clip(steps / budget, 0.0, 1.0)
    if start < target:
        multipliers = np.exp(velocity * (times - 1.0)) * times
        volumes = start + (target - start) * multipliers
    else:
        multipliers = np.exp(-velocity * times) * (1.0 - times)
        volumes = target - (target - start) * multipliers
    volumes = np.clip(volumes, 0.0, 1.0)
    return np.concatenate(([start], volumes, [target])).astype(np.float64)
