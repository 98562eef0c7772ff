from __future__ import annotations

import asyncio
import functools
from collections.abc import AsyncIterator
from typing import Any

from .notify import Subscription
from .storage import Storage


def _give_back(sub: Subscription, waiter: asyncio.Future[bool]) -> None:
    # a signal taken by a waiter whose consumer was cancelled goes back in the queue
    if not waiter.cancelled() and waiter.exception() is None and waiter.result():
        sub.offer(block=False)


class AsyncStorage:
    """
    Async wrapper around a Storage handle.
    Uses asyncio.to_thread to avoid blocking the event loop on file I/O and on
    the store's mutex.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    @classmethod
    async def open(cls, name: str, *args: Any, **kwargs: Any) -> AsyncStorage:
        storage = await asyncio.to_thread(Storage, name, *args, **kwargs)
        return cls(storage)

    @property
    def storage(self) -> Storage:
        return self._storage

    async def store(self, key: str, value: Any, kind: Any = None) -> None:
        await asyncio.to_thread(self._storage.store, key, value, kind)

    async def get(self, key: str, kind: Any = str, **kwargs: Any) -> Any:
        # lookups only touch memory, no thread needed
        return self._storage.get(key, kind, **kwargs)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._storage.delete, key)

    async def reload(self) -> None:
        await asyncio.to_thread(self._storage.reload)

    def subscribe(self) -> Subscription:
        return self._storage.subscribe_to_changes()

    async def wait_for_change(self, subscription: Subscription, timeout: float | None = None) -> bool:
        return await asyncio.to_thread(subscription.wait, timeout)

    async def changes(self, subscription: Subscription | None = None) -> AsyncIterator[None]:
        """
        Yield once per change, forever.

        Cancelling the consumer while it waits keeps any signal that arrives
        afterwards pending on the subscription. Only a signal that lands after
        the event loop has shut down is lost.
        """
        sub = subscription or self.subscribe()
        while True:
            # wake up now and then so cancelling the consumer does not strand a thread for long
            waiter = asyncio.ensure_future(asyncio.to_thread(sub.wait, 1.0))
            try:
                got = await asyncio.shield(waiter)
            except asyncio.CancelledError:
                waiter.add_done_callback(functools.partial(_give_back, sub))
                raise
            if got:
                yield None

    def close(self) -> None:
        self._storage.close()

    async def __aenter__(self) -> AsyncStorage:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
