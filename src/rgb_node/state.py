import threading
from dataclasses import dataclass, field, replace

from .colormath import clamp

STROBE_MIN_MS, STROBE_MAX_MS = 50, 2000
BREATHE_MIN_MS, BREATHE_MAX_MS = 1000, 10000
DEFAULT_STROBE_MS = 100
DEFAULT_BREATHE_MS = 3000


@dataclass(frozen=True)
class NoEffect:
    name: str = field(default="none", init=False)

    def params(self) -> dict:
        return {}


@dataclass(frozen=True)
class Strobe:
    interval_ms: int = DEFAULT_STROBE_MS
    name: str = field(default="strobe", init=False)

    def __post_init__(self):
        object.__setattr__(self, "interval_ms", clamp(int(self.interval_ms), STROBE_MIN_MS, STROBE_MAX_MS))

    def params(self) -> dict:
        return {"speed": self.interval_ms}


@dataclass(frozen=True)
class Breathe:
    period_ms: int = DEFAULT_BREATHE_MS
    name: str = field(default="breathe", init=False)

    def __post_init__(self):
        object.__setattr__(self, "period_ms", clamp(int(self.period_ms), BREATHE_MIN_MS, BREATHE_MAX_MS))

    def params(self) -> dict:
        return {"period": self.period_ms}


EffectKind = NoEffect | Strobe | Breathe


@dataclass(frozen=True)
class ColorState:
    r: int = 0
    g: int = 0
    b: int = 0
    brightness: int = 100
    effect: EffectKind = NoEffect()

    def to_dict(self) -> dict:
        return {
            "r": self.r,
            "g": self.g,
            "b": self.b,
            "brightness": self.brightness,
            "effect": self.effect.name,
            **self.effect.params(),
        }


class StateStore:
    """
    Single owner of the current ColorState.
    Snapshots are immutable; every setter clamps its inputs and swaps the
    whole snapshot in one step, then returns it.
    """

    def __init__(self, initial: ColorState | None = None):
        self._lock = threading.Lock()
        self._state = initial or ColorState()
        self._state = self._clamped(self._state)
        self._manual = (self._state.r, self._state.g, self._state.b)

    @staticmethod
    def _clamped(s: ColorState) -> ColorState:
        return replace(
            s,
            r=clamp(int(s.r), 0, 255),
            g=clamp(int(s.g), 0, 255),
            b=clamp(int(s.b), 0, 255),
            brightness=clamp(int(s.brightness), 0, 100),
        )

    def get(self) -> ColorState:
        with self._lock:
            return self._state

    def manual_color(self) -> tuple[int, int, int]:
        with self._lock:
            return self._manual

    def set_color(self, r: int | None = None, g: int | None = None, b: int | None = None) -> ColorState:
        with self._lock:
            pr, pg, pb = self._manual
            self._manual = (
                clamp(int(pr if r is None else r), 0, 255),
                clamp(int(pg if g is None else g), 0, 255),
                clamp(int(pb if b is None else b), 0, 255),
            )
            nr, ng, nb = self._manual
            self._state = replace(self._state, r=nr, g=ng, b=nb)
            return self._state

    def set_displayed(self, r: int, g: int, b: int) -> ColorState:
        with self._lock:
            self._state = self._clamped(replace(self._state, r=r, g=g, b=b))
            return self._state

    def set_brightness(self, pct: int | None) -> ColorState:
        with self._lock:
            if pct is not None:
                self._state = replace(self._state, brightness=clamp(int(pct), 0, 100))
            return self._state

    def set_effect(self, kind: EffectKind) -> ColorState:
        with self._lock:
            self._state = replace(self._state, effect=kind)
            return self._state
