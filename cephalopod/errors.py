from __future__ import annotations


class CephalopodError(Exception):
    """Base error for the Cephalopod library."""


class InvalidConfigError(CephalopodError):
    """Raised when fade settings cannot be parsed or validated."""


class ControllerClosedError(CephalopodError):
    """Raised when a fade is requested on a controller that was closed."""


class SamplerError(CephalopodError):
    """Raised when a periodic sampler cannot be started."""
