from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidConfigError

_LOGGER = logging.getLogger("cephalopod.config")

DEFAULT_FADE_DURATION_SECONDS = 3.0
DEFAULT_VELOCITY = 2.0
# Higher rates give smoother fades at the cost of more CPU.
DEFAULT_VOLUME_ALTERATIONS_PER_SECOND = 30.0

ENV_OVERRIDES: Mapping[str, str] = MappingProxyType(
    {
        "CEPHALOPOD_FADE_DURATION": "duration",
        "CEPHALOPOD_FADE_VELOCITY": "velocity",
        "CEPHALOPOD_VOLUME_ALTERATIONS_PER_SECOND": "volume_alterations_per_second",
    }
)


class FadeSettings(BaseModel):
    """Defaults applied when a fade call leaves duration/velocity unset."""

    duration: float = Field(default=DEFAULT_FADE_DURATION_SECONDS, allow_inf_nan=False)
    velocity: float = Field(default=DEFAULT_VELOCITY, allow_inf_nan=False)
    volume_alterations_per_second: float = Field(
        default=DEFAULT_VOLUME_ALTERATIONS_PER_SECOND,
        allow_inf_nan=False,
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "FadeSettings":
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid fade settings: {exc}") from exc

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "FadeSettings":
        source = os.environ if env is None else env
        overrides: dict[str, str] = {}
        for key, field_name in ENV_OVERRIDES.items():
            raw = source.get(key)
            if raw is None or not raw.strip():
                continue
            overrides[field_name] = raw.strip()
            _LOGGER.debug("Fade setting %s overridden by %s=%s", field_name, key, raw)
        return cls.parse(overrides)

    def with_overrides(self, **updates: Any) -> "FadeSettings":
        values = self.model_dump()
        values.update({key: value for key, value in updates.items() if value is not None})
        return type(self).parse(values)
