"""Background I/O tasks polled from a synchronous frame loop.

The frame loop never awaits anything. It spawns coroutines on an event loop
that runs in a dedicated thread and, once per frame, asks the returned
PendingTask whether the result is in. Dropping a PendingTask abandons its
result; the coroutine is not cancelled.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Final, Generic, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from concurrent.futures import Future
    from types import TracebackType

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_CLOSE_TIMEOUT_SECONDS = 5.0


class _NotReady(Enum):
    NOT_READY = "not_ready"


NOT_READY: Final = _NotReady.NOT_READY


@dataclass(frozen=True)
class Ready(Generic[T]):
    value: T


class PendingTask(Generic[T]):
    """Handle to a coroutine running on an IoTaskPool."""

    def __init__(self, future: Future[T]) -> None:
        self._future = future
        self._taken = False

    def is_finished(self) -> bool:
        return self._future.done()

    def try_take_result(self) -> Ready[T] | _NotReady:
        """Return NOT_READY while the coroutine runs, then Ready(result) exactly once.

        Never blocks. If the coroutine raised, the exception is re-raised
        here. Taking a result twice raises RuntimeError.
        """
        if self._taken:
            raise RuntimeError("PendingTask result was already taken")
        if not self._future.done():
            return NOT_READY
        self._taken = True
        return Ready(self._future.result())


class IoTaskPool:
    """An asyncio event loop running on a daemon thread."""

    def __init__(self, name: str = "io-task-pool") -> None:
        self._loop = asyncio.new_event_loop()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        finally:
            self._loop.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def spawn(self, coro: Coroutine[Any, Any, T]) -> PendingTask[T]:
        if self._closed:
            coro.close()
            raise RuntimeError("IoTaskPool is closed")
        return PendingTask(asyncio.run_coroutine_threadsafe(coro, self._loop))

    def close(self, timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS) -> None:
        """Stop the loop, cancel whatever is still running, and join the thread."""
        if self._closed:
            return
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("io task pool thread did not stop in time")

    def __enter__(self) -> IoTaskPool:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
