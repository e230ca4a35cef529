"""Server and simulation configuration for lampfleet."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any

from lampfleet._constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    FLYING_DELAY_S,
    REPLACING_DELAY_S,
    RETURNING_DELAY_S,
    TEMPERATURE_MAX_C,
    TEMPERATURE_MIN_C,
    TICK_INTERVAL_S,
)
from lampfleet.exceptions import FleetConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Fleet server configuration.

    Parameters
    ----------
    host : str
        Interface the websocket server binds to.
    port : int
        TCP port of the websocket server.
    tick_interval : float
        Seconds between periodic temperature ticks, per connection.
    flying_delay : float
        Seconds the drone spends flying out before it starts replacing.
    replacing_delay : float
        Seconds the module replacement takes.
    returning_delay : float
        Seconds the drone needs to fly home (also used after a cancel).
    temperature_min : float
        Lower clamp for lamp temperature drift (°C).
    temperature_max : float
        Upper clamp for lamp temperature drift (°C).
    reply_rejections : bool
        Answer malformed commands with a ``rejected`` message instead of
        dropping them silently.
    random_seed : int or None
        Seed for the temperature random walk.  ``None`` uses system entropy.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    tick_interval: float = TICK_INTERVAL_S
    flying_delay: float = FLYING_DELAY_S
    replacing_delay: float = REPLACING_DELAY_S
    returning_delay: float = RETURNING_DELAY_S
    temperature_min: float = TEMPERATURE_MIN_C
    temperature_max: float = TEMPERATURE_MAX_C
    reply_rejections: bool = False
    random_seed: int | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise FleetConfigError(f"port must be between 0 and 65535, got {self.port}")
        if self.tick_interval <= 0:
            raise FleetConfigError(f"tick_interval must be positive, got {self.tick_interval}")
        for name in ("flying_delay", "replacing_delay", "returning_delay"):
            if getattr(self, name) < 0:
                raise FleetConfigError(f"{name} must not be negative, got {getattr(self, name)}")
        if self.temperature_min > self.temperature_max:
            raise FleetConfigError(
                f"temperature_min ({self.temperature_min}) exceeds temperature_max ({self.temperature_max})"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from environment variables.

        Reads optional ``LAMPFLEET_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FleetConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "LAMPFLEET_HOST": ("host", str),
            "LAMPFLEET_PORT": ("port", int),
            "LAMPFLEET_TICK_INTERVAL": ("tick_interval", float),
            "LAMPFLEET_FLYING_DELAY": ("flying_delay", float),
            "LAMPFLEET_REPLACING_DELAY": ("replacing_delay", float),
            "LAMPFLEET_RETURNING_DELAY": ("returning_delay", float),
            "LAMPFLEET_TEMPERATURE_MIN": ("temperature_min", float),
            "LAMPFLEET_TEMPERATURE_MAX": ("temperature_max", float),
            "LAMPFLEET_RANDOM_SEED": ("random_seed", int),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, convert) in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise FleetConfigError(f"{env_key}={val!r} is not a valid {field_name}") from exc

        if "reply_rejections" not in overrides:
            config_kwargs["reply_rejections"] = _env_bool(env.get("LAMPFLEET_REPLY_REJECTIONS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
