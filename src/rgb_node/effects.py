import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from .colormath import PWM_RANGE, to_duty
from .device import DEFAULT_FREQUENCY, DEFAULT_PINS, HardwareError
from .observers import Observer, ObserverHub
from .state import (
    DEFAULT_BREATHE_MS,
    DEFAULT_STROBE_MS,
    Breathe,
    ColorState,
    EffectKind,
    NoEffect,
    StateStore,
    Strobe,
)

logger = logging.getLogger(__name__)

BREATHE_TICK = 0.040
BREATHE_SHAPES = ("cosine", "linear")


class Sink(Protocol):
    def configure(self, pin: int, pwm_range: int, frequency: int) -> None: ...
    def write(self, pin: int, duty: int) -> None: ...


def parse_effect(name: str | None, speed: int | None = None, period: int | None = None) -> EffectKind:
    """Turn an API effect request into an EffectKind. Unknown names mean no effect."""
    eff = (name or "").lower().strip()
    if eff == "strobe":
        return Strobe(DEFAULT_STROBE_MS if speed is None else speed)
    if eff in ("breathe", "pulse"):
        return Breathe(DEFAULT_BREATHE_MS if period is None else period)
    return NoEffect()


def breathe_level(elapsed_ms: float, period_ms: int, shape: str = "cosine") -> float:
    """
    Brightness envelope in [0, 1], starting and ending each period at 0.
    cosine: (1 - cos(2*pi*t/T)) / 2
    linear: triangle ramp up then down
    """
    phase = (elapsed_ms / period_ms) % 1.0
    if shape == "linear":
        return 1.0 - abs(2.0 * phase - 1.0)
    return (1.0 - math.cos(2.0 * math.pi * phase)) / 2.0


def strobe_frame(base: tuple[int, int, int], tick: int) -> tuple[int, int, int]:
    return base if tick % 2 == 0 else (0, 0, 0)


def breathe_frame(base: tuple[int, int, int], level: float) -> tuple[int, int, int]:
    return tuple(round(c * level) for c in base)


@dataclass
class EffectRun:
    generation: int
    kind: EffectKind
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None


class EffectEngine:
    """
    Owns the active effect and every write to the PWM outputs.

    All mutations (manual commands and effect ticks) run under one asyncio
    lock. Each started effect gets a fresh generation number; a driver tick
    only writes while its generation is still the current one, so a tick that
    was already waiting on the lock when a newer command arrived does nothing.
    """

    def __init__(
        self,
        store: StateStore,
        sink: Sink,
        hub: ObserverHub,
        pins: tuple[int, int, int] = DEFAULT_PINS,
        pwm_range: int = PWM_RANGE,
        frequency: int = DEFAULT_FREQUENCY,
        gamma: bool = False,
        breathe_shape: str = "cosine",
        breathe_tick: float = BREATHE_TICK,
        clock: Callable[[], float] = time.monotonic,
    ):
        if breathe_shape not in BREATHE_SHAPES:
            raise ValueError(f"breathe_shape must be one of {BREATHE_SHAPES}")
        self.store = store
        self.sink = sink
        self.hub = hub
        self.pins = pins
        self.pwm_range = pwm_range
        self.frequency = frequency
        self.gamma = gamma
        self.breathe_shape = breathe_shape
        self.breathe_tick = breathe_tick
        self.clock = clock

        self._lock = asyncio.Lock()
        self._generation = 0
        self._run: EffectRun | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def running(self) -> EffectRun | None:
        return self._run

    # ---- output path (caller holds the lock) ----

    def _output(self, r: int, g: int, b: int, brightness: int) -> None:
        duty = to_duty(r, g, b, brightness, self.gamma, self.pwm_range)
        for pin, value in zip(self.pins, duty):
            self.sink.write(pin, value)

    def _invalidate(self) -> None:
        self._generation += 1
        if self._run is not None:
            self._run.cancelled.set()
            logger.info("effect %s stopped (gen %d)", self._run.kind.name, self._run.generation)
        self._run = None

    def _apply_manual(self) -> ColorState:
        r, g, b = self.store.manual_color()
        state = self.store.set_displayed(r, g, b)
        self._output(r, g, b, state.brightness)
        return state

    def _commit(self) -> ColorState:
        # observers hear about the stored state even when the write fails
        try:
            self._apply_manual()
        finally:
            state = self.store.get()
            self.hub.publish(state)
        return state

    # ---- lifecycle ----

    def configure(self) -> None:
        for pin in self.pins:
            self.sink.configure(pin, self.pwm_range, self.frequency)

    async def apply(self) -> ColorState:
        """Write the current manual colour without touching effects."""
        async with self._lock:
            return self._commit()

    async def subscribe(self) -> Observer:
        # under the lock so no state event lands between the hello snapshot and registration
        async with self._lock:
            return self.hub.subscribe(self.store.get())

    async def close(self) -> None:
        async with self._lock:
            self._invalidate()
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---- commands ----

    async def start(self, kind: EffectKind) -> ColorState:
        if isinstance(kind, NoEffect):
            return await self.stop()

        async with self._lock:
            self._invalidate()
            run = EffectRun(generation=self._generation, kind=kind)
            self._run = run
            state = self.store.set_effect(kind)
            run.task = asyncio.create_task(self._drive(run), name=f"effect-{kind.name}-{run.generation}")
            self._tasks.add(run.task)
            run.task.add_done_callback(self._tasks.discard)
            logger.info("effect %s started (gen %d)", kind.name, run.generation)
            self.hub.publish(state)
            return state

    async def stop(self) -> ColorState:
        async with self._lock:
            self._invalidate()
            self.store.set_effect(NoEffect())
            return self._commit()

    async def set_color(self, r: int | None = None, g: int | None = None, b: int | None = None) -> ColorState:
        async with self._lock:
            self._invalidate()
            self.store.set_effect(NoEffect())
            self.store.set_color(r, g, b)
            return self._commit()

    async def set_brightness(self, pct: int | None) -> ColorState:
        async with self._lock:
            self._invalidate()
            self.store.set_effect(NoEffect())
            self.store.set_brightness(pct)
            return self._commit()

    async def turn_off(self) -> ColorState:
        return await self.set_color(0, 0, 0)

    # ---- drivers ----

    def _frame(self, run: EffectRun, tick: int, started: float) -> tuple[int, int, int]:
        base = self.store.manual_color()
        if isinstance(run.kind, Strobe):
            return strobe_frame(base, tick)
        elapsed_ms = (self.clock() - started) * 1000.0
        return breathe_frame(base, breathe_level(elapsed_ms, run.kind.period_ms, self.breathe_shape))

    def _interval(self, run: EffectRun) -> float:
        if isinstance(run.kind, Strobe):
            return run.kind.interval_ms / 1000.0
        return self.breathe_tick

    async def _tick(self, run: EffectRun, tick: int, started: float) -> bool:
        """One driver step. Returns False once the run is stale or has failed."""
        async with self._lock:
            if run.generation != self._generation:
                return False
            r, g, b = self._frame(run, tick, started)
            state = self.store.get()
            try:
                self._output(r, g, b, state.brightness)
            except HardwareError:
                logger.exception("effect %s: hardware write failed, stopping driver", run.kind.name)
                self._invalidate()
                self.store.set_effect(NoEffect())
                try:
                    self._commit()
                except HardwareError:
                    logger.error("effect %s: could not restore manual colour", run.kind.name)
                return False
            self.hub.publish(self.store.set_displayed(r, g, b))
            return True

    async def _drive(self, run: EffectRun) -> None:
        started = self.clock()
        interval = self._interval(run)
        tick = 0
        while await self._tick(run, tick, started):
            tick += 1
            try:
                await asyncio.wait_for(run.cancelled.wait(), interval)
                return
            except asyncio.TimeoutError:
                pass
