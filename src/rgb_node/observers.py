import asyncio
import itertools
import json
import logging
import threading

from .state import ColorState

logger = logging.getLogger(__name__)

QUEUE_SIZE = 256
KEEPALIVE = ": keepalive\n\n"

_ids = itertools.count(1)


def sse_format(obj: dict) -> str:
    return f"data: {json.dumps(obj, separators=(',', ':'))}\n\n"


class Observer:
    """One live client stream. Iterating yields serialized SSE frames until closed."""

    def __init__(self, maxsize: int = QUEUE_SIZE):
        self.id = next(_ids)
        self.closed = False
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)

    def offer(self, frame: str) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # wake a pending reader; if the queue is full it sees `closed` on its next get
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self, timeout: float | None = None) -> str | None:
        """Next frame, None once closed. Raises TimeoutError if nothing arrives in `timeout`."""
        if self.closed and self._queue.empty():
            return None
        frame = await asyncio.wait_for(self._queue.get(), timeout)
        if frame is None:
            return None
        return frame

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        frame = await self.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class ObserverHub:
    """
    Registry of live observers.

    The subscriber set is copied under a lock before each broadcast, so
    subscribe/unsubscribe can happen from anywhere while a publish is in
    progress. A failed delivery drops only that observer.
    """

    def __init__(self, maxsize: int = QUEUE_SIZE):
        self._maxsize = maxsize
        self._lock = threading.Lock()
        self._observers: dict[int, Observer] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)

    def subscribe(self, snapshot: ColorState | None = None) -> Observer:
        obs = Observer(self._maxsize)
        if snapshot is not None:
            obs.offer(sse_format({"type": "hello", "state": snapshot.to_dict()}))
        else:
            obs.offer(sse_format({"type": "hello"}))
        with self._lock:
            self._observers[obs.id] = obs
        logger.debug("observer %d subscribed", obs.id)
        return obs

    def unsubscribe(self, obs: Observer) -> None:
        with self._lock:
            self._observers.pop(obs.id, None)
        obs.close()
        logger.debug("observer %d unsubscribed", obs.id)

    def publish(self, snapshot: ColorState) -> int:
        """Push a state event to every observer. Returns how many received it."""
        frame = sse_format({"type": "state", "state": snapshot.to_dict()})
        with self._lock:
            targets = list(self._observers.values())

        delivered = 0
        for obs in targets:
            if obs.offer(frame):
                delivered += 1
            else:
                logger.warning("dropping observer %d (stream closed or not keeping up)", obs.id)
                self.unsubscribe(obs)
        return delivered

    def close(self) -> None:
        with self._lock:
            targets = list(self._observers.values())
            self._observers.clear()
        for obs in targets:
            obs.close()
