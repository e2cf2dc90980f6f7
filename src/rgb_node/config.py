from __future__ import annotations

import os
from dataclasses import dataclass

from .colormath import PWM_RANGE
from .device import DEFAULT_FREQUENCY, DEFAULT_PINS
from .effects import BREATHE_SHAPES

ENV_PREFIX = "RGB_NODE_"


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used."""


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    pigpio_host: str = "127.0.0.1"
    pigpio_port: int = 8888
    pins: tuple[int, int, int] = DEFAULT_PINS
    pwm_range: int = PWM_RANGE
    pwm_frequency: int = DEFAULT_FREQUENCY
    gamma: bool = False
    breathe_shape: str = "cosine"
    dry_run: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if len(self.pins) != 3:
            raise ConfigError(f"pins needs exactly three GPIO numbers (r,g,b), got {self.pins!r}")
        if not 25 <= self.pwm_range <= 40000:
            raise ConfigError(f"pwm_range must be within 25..40000, got {self.pwm_range}")
        if self.pwm_frequency <= 0:
            raise ConfigError(f"pwm_frequency must be positive, got {self.pwm_frequency}")
        if self.breathe_shape not in BREATHE_SHAPES:
            raise ConfigError(f"breathe_shape must be one of {', '.join(BREATHE_SHAPES)}")


def _get_setting(name: str) -> str:
    return os.environ.get(ENV_PREFIX + name, "").strip()


def _int_setting(name: str, default: int) -> int:
    raw = _get_setting(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def _bool_setting(name: str, default: bool) -> bool:
    raw = _get_setting(name).lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


def parse_pins(raw: str) -> tuple[int, int, int]:
    try:
        pins = tuple(int(p) for p in raw.replace(" ", "").split(",") if p)
    except ValueError as e:
        raise ConfigError(f"pins must look like 17,22,24, got {raw!r}") from e
    if len(pins) != 3:
        raise ConfigError(f"pins must look like 17,22,24, got {raw!r}")
    return pins


def load_settings() -> Settings:
    """Defaults overlaid with RGB_NODE_* environment variables (PORT is honoured too)."""
    d = Settings()
    pins_raw = _get_setting("PINS")
    port_default = d.port
    if os.environ.get("PORT", "").strip():
        try:
            port_default = int(os.environ["PORT"])
        except ValueError as e:
            raise ConfigError(f"PORT must be an integer, got {os.environ['PORT']!r}") from e
    return Settings(
        host=_get_setting("HOST") or d.host,
        port=_int_setting("PORT", port_default),
        pigpio_host=_get_setting("PIGPIO_HOST") or d.pigpio_host,
        pigpio_port=_int_setting("PIGPIO_PORT", d.pigpio_port),
        pins=parse_pins(pins_raw) if pins_raw else d.pins,
        pwm_range=_int_setting("PWM_RANGE", d.pwm_range),
        pwm_frequency=_int_setting("PWM_FREQUENCY", d.pwm_frequency),
        gamma=_bool_setting("GAMMA", d.gamma),
        breathe_shape=_get_setting("BREATHE_SHAPE") or d.breathe_shape,
        dry_run=_bool_setting("DRY_RUN", d.dry_run),
        log_level=(_get_setting("LOG_LEVEL") or d.log_level).upper(),
    )
