from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator
from typing import Literal

logger = logging.getLogger(__name__)

SlowSubscriberPolicy = Literal["drop", "block"]
POLICIES: tuple[str, ...] = ("drop", "block")


class Subscription:
    """
    Receives one empty signal per change of the document.

    Signals carry no payload; after one arrives, read the store again.
    """

    def __init__(self, buffer: int = 1) -> None:
        if buffer < 1:
            raise ValueError("subscription buffer must be at least 1")
        self._queue: queue.Queue[None] = queue.Queue(maxsize=buffer)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a change arrives. False if ``timeout`` ran out first."""
        try:
            self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        return True

    def drain(self) -> int:
        """Discard pending signals and return how many there were."""
        n = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return n
            n += 1

    def offer(self, timeout: float | None = None, *, block: bool = True) -> bool:
        try:
            self._queue.put(None, block=block, timeout=timeout if block else None)
        except queue.Full:
            return False
        return True

    def __iter__(self) -> Iterator[None]:
        while True:
            self._queue.get()
            yield None


class NotificationHub:
    """
    Fans a "document changed" signal out to every subscriber, in registration order.

    Slow subscribers:
      - "drop": a subscriber whose buffer is full keeps its pending signal and
        this one is dropped.
      - "block": wait up to ``timeout`` seconds for room (None waits forever),
        then drop with a warning.
    """

    def __init__(
        self,
        lock: threading.Lock,
        *,
        policy: SlowSubscriberPolicy = "drop",
        timeout: float | None = 1.0,
        buffer: int = 1,
    ) -> None:
        if policy not in POLICIES:
            raise ValueError(f"unknown slow-subscriber policy: {policy!r}")
        if buffer < 1:
            raise ValueError("subscription buffer must be at least 1")
        self._lock = lock
        self._policy = policy
        self._timeout = timeout
        self._buffer = buffer
        self._subscribers: list[Subscription] = []

    @property
    def policy(self) -> str:
        return self._policy

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self._buffer)
        self._subscribers.append(sub)
        return sub

    def broadcast(self) -> int:
        """Signal every subscriber; returns how many accepted the signal."""
        delivered = 0
        with self._lock:
            for index, sub in enumerate(list(self._subscribers)):
                if self._policy == "drop":
                    ok = sub.offer(block=False)
                else:
                    ok = sub.offer(self._timeout)
                    if not ok:
                        logger.warning(
                            "subscriber %d did not take the change signal within %ss; dropped",
                            index,
                            self._timeout,
                        )
                if ok:
                    delivered += 1
        return delivered
