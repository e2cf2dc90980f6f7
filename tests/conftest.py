"""
Shared fixtures: an in-memory sink wired to a fresh store, hub and engine.
"""

import asyncio

import pytest
import pytest_asyncio

from rgb_node.device import MemorySink
from rgb_node.effects import EffectEngine
from rgb_node.observers import ObserverHub
from rgb_node.state import StateStore

PINS = (17, 22, 24)


class StepClock:
    """Virtual monotonic clock: every call advances by `step` seconds."""

    def __init__(self, step: float):
        self.step = step
        self.calls = 0

    def __call__(self) -> float:
        t = self.calls * self.step
        self.calls += 1
        return t


async def wait_until(predicate, timeout: float = 2.0, poll: float = 0.005):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(poll)


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def hub():
    return ObserverHub()


@pytest_asyncio.fixture
async def make_engine(sink, store, hub):
    engines = []

    def _make(**kwargs):
        engine = EffectEngine(store, sink, hub, pins=PINS, **kwargs)
        engine.configure()
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        await engine.close()


@pytest_asyncio.fixture
async def engine(make_engine):
    return make_engine()
