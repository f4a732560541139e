import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class KeyedSerializer:
    """Run coroutines one at a time per key, in arrival order.

    Each call waits for the previous call with the same key to finish, then
    runs.  Calls for different keys never wait on each other.  This is a
    queue, not a lock: nothing is held while the caller's own coroutine is
    suspended on a network call for another key.
    """

    def __init__(self) -> None:
        self._tails: dict[str, asyncio.Future] = {}

    def pending(self, key: str) -> bool:
        return key in self._tails

    async def run(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        previous = self._tails.get(key)
        done = loop.create_future()
        self._tails[key] = done
        try:
            if previous is not None:
                await asyncio.shield(previous)
            return await func()
        finally:
            if previous is not None and not previous.done():
                # Cancelled while queued: keep the queue order for whoever is next.
                previous.add_done_callback(lambda _f: self._release(key, done))
            else:
                self._release(key, done)

    def _release(self, key: str, done: asyncio.Future) -> None:
        if not done.done():
            done.set_result(None)
        if self._tails.get(key) is done:
            del self._tails[key]
