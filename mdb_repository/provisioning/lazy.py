"""
Asynchronous lazy value.

AsyncLazy runs an async factory at most once, on first demand, and hands the
same result to every caller, including callers that arrive while the factory
is still running. A failed factory leaves the lazy uninitialized so the next
caller starts over. ``invalidate`` drops a computed value so that the next
``get`` recomputes it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LazyState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PENDING = "pending"
    READY = "ready"
    INVALIDATED = "invalidated"


class AsyncLazy(Generic[T]):
    """
    Single-assignment future over an async factory.

    Waiters are shielded from each other: cancelling one caller does not
    cancel the shared computation that others are awaiting.

    Example:
        collection = AsyncLazy(lambda: provision_collection(), name="orders")
        handle = await collection.get()
    """

    def __init__(self, factory: Callable[[], Awaitable[T]], name: str = ""):
        self._factory = factory
        self._name = name or getattr(factory, "__qualname__", "lazy")
        self._state = LazyState.UNINITIALIZED
        self._future: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> LazyState:
        return self._state

    @property
    def name(self) -> str:
        return self._name

    async def get(self) -> T:
        if self._future is None:
            self._start()
        return await asyncio.shield(self._future)

    def _start(self) -> None:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._future = future
        self._state = LazyState.PENDING
        logger.debug(f"Starting lazy initialization of '{self._name}'")
        self._task = loop.create_task(self._run(future))

    async def _run(self, future: asyncio.Future) -> None:
        try:
            value = await self._factory()
        except BaseException as e:
            # Only the attempt that is still current may reset the lazy.
            if self._future is future:
                self._future = None
                self._state = LazyState.UNINITIALIZED
            logger.debug(f"Lazy initialization of '{self._name}' failed: {e!r}")
            if isinstance(e, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(e)
                # Mark retrieved so an unawaited failure does not warn at GC.
                future.exception()
            if not isinstance(e, Exception):
                raise
            return

        if self._future is future:
            self._state = LazyState.READY
        future.set_result(value)

    def invalidate(self) -> None:
        """
        Forget the computed value; the next ``get`` runs the factory again.

        An attempt still in flight is detached: callers already waiting on it
        get its result, but the lazy does not keep it.
        """
        if self._state in (LazyState.READY, LazyState.PENDING):
            self._future = None
            self._state = LazyState.INVALIDATED
            logger.debug(f"Invalidated lazy value '{self._name}'")
