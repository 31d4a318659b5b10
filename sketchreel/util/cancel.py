from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, List, Optional, TypeVar

T = TypeVar("T")


class CanceledError(RuntimeError):
    pass


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[Exception] = None
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def cancel(self, reason: Exception | str | None = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            if reason is None:
                reason = CanceledError("canceled")
            elif isinstance(reason, str):
                reason = CanceledError(reason)
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run callback once on cancel (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def _remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return _remove
        callback()
        return lambda: None

    async def cancelled(self) -> None:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            loop.call_soon_threadsafe(_resolve)

        def _resolve() -> None:
            if not waiter.done():
                waiter.set_result(None)

        remove = self.add_callback(_wake)
        try:
            await waiter
        finally:
            remove()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise self._reason or CanceledError("canceled")

    @property
    def reason(self) -> Optional[Exception]:
        return self._reason


async def race(awaitable: Awaitable[T], signal: CancelToken | None) -> T:
    """Await awaitable, raising CanceledError as soon as signal fires."""
    if signal is None:
        return await awaitable
    if signal.is_cancelled():
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        signal.raise_if_cancelled()
    work = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(signal.cancelled())
    try:
        await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        work.cancel()
        raise
    finally:
        stop.cancel()
    if work.done():
        return work.result()
    work.cancel()
    try:
        await work
    except (asyncio.CancelledError, Exception):
        pass
    raise CanceledError(str(signal.reason or "canceled"))
