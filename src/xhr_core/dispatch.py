"""
Request dispatching for xhr_core.

A Dispatcher runs submitted jobs one at a time, in submission order, on
a worker task of its own. Results travel back to the caller through
EventChannels, which post the subscribed handler onto a CallbackSink
instead of calling it from the worker.
"""

import asyncio
import logging
from collections import deque
from typing import (
    Any,
    Awaitable,
    Callable,
    Deque,
    Generic,
    Optional,
    Tuple,
    TypeVar,
)

from typing_extensions import Protocol, runtime_checkable

from .exceptions import DispatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Job = Callable[[], Awaitable[None]]
CancelHook = Callable[[], None]
Entry = Tuple[Job, Optional[CancelHook]]
Handler = Callable[[T], Any]


@runtime_checkable
class CallbackSink(Protocol):
    """The caller-owned context callbacks are delivered on."""

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback(*args)``; must not call it synchronously."""
        ...


class LoopCallbackSink:
    """
    Sink that schedules callbacks on an asyncio event loop.

    Without an explicit loop, callbacks go to the loop running at the
    time of posting. ``call_soon_threadsafe`` makes posting from another
    thread safe when a loop is given.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon_threadsafe(callback, *args)


class QueueCallbackSink:
    """
    Sink that buffers callbacks until the owner drains them.

    Useful when callbacks must run inside a caller-controlled loop
    (a UI tick, a test) rather than on the event loop.
    """

    def __init__(self) -> None:
        self._pending: Deque[Tuple[Callable[..., Any], Tuple[Any, ...]]] = deque()

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        self._pending.append((callback, args))

    def drain(self) -> int:
        """
        Run every pending callback in posting order.

        Callbacks posted while draining run in the same call.

        Returns:
            Number of callbacks run
        """
        count = 0
        while self._pending:
            callback, args = self._pending.popleft()
            callback(*args)
            count += 1
        return count

    @property
    def pending(self) -> int:
        return len(self._pending)


class EventChannel(Generic[T]):
    """
    Single-subscriber event channel.

    Subscribing replaces the previous handler. Events emitted while no
    handler is subscribed are dropped, not buffered.
    """

    def __init__(self, name: str, sink: CallbackSink) -> None:
        self._name = name
        self._sink = sink
        self._handler: Optional[Handler[T]] = None

    def subscribe(self, handler: Optional[Handler[T]]) -> Optional[Handler[T]]:
        """
        Set the handler, returning the one it replaced.

        Passing None unsubscribes.
        """
        previous = self._handler
        self._handler = handler
        return previous

    def unsubscribe(self) -> Optional[Handler[T]]:
        return self.subscribe(None)

    def emit(self, event: T) -> bool:
        """
        Post ``handler(event)`` to the sink.

        Returns:
            True if the event was posted, False if it was dropped
        """
        handler = self._handler
        if handler is None:
            logger.debug(f"No {self._name} handler subscribed; event dropped")
            return False
        self._sink.post(handler, event)
        return True

    @property
    def name(self) -> str:
        return self._name

    @property
    def handler(self) -> Optional[Handler[T]]:
        return self._handler

    @property
    def has_subscriber(self) -> bool:
        return self._handler is not None


class Dispatcher:
    """
    Serial job runner.

    Jobs run strictly one after another in FIFO order on a single worker
    task, which is started with the first submission on the running
    event loop. Exceptions escaping a job are logged and do not stop the
    worker. A job that is cancelled or discarded by ``aclose`` has its
    ``on_cancel`` hook called instead, so every submitted job ends in
    exactly one of the two ways.
    """

    def __init__(self, max_pending: int = 0) -> None:
        """
        Initialize the dispatcher.

        Args:
            max_pending: Maximum number of queued jobs; 0 means unbounded
        """
        if max_pending < 0:
            raise ValueError("max_pending must be non-negative")
        self._max_pending = max_pending
        self._queue: "asyncio.Queue[Entry]" = asyncio.Queue(maxsize=max_pending)
        self._worker: Optional["asyncio.Task[None]"] = None
        self._closed = False
        self._jobs_run = 0
        self._jobs_cancelled = 0

    def submit(self, job: Job, on_cancel: Optional[CancelHook] = None) -> None:
        """
        Queue a job for execution.

        Must be called from a running event loop.

        Args:
            job: Coroutine function run by the worker
            on_cancel: Called instead of completing the job if the
                dispatcher is closed before the job finishes

        Raises:
            DispatchError: If the dispatcher is closed or its queue is full
        """
        if self._closed:
            raise DispatchError("Dispatcher is closed")

        try:
            self._queue.put_nowait((job, on_cancel))
        except asyncio.QueueFull as e:
            raise DispatchError(
                f"Dispatcher queue is full ({self._max_pending} pending)", cause=e
            ) from e
        self._start()

    async def join(self) -> None:
        """Wait until every submitted job has finished or been cancelled."""
        if self._closed and self._worker is None:
            return
        await self._queue.join()

    async def aclose(self) -> None:
        """
        Stop the worker.

        New submissions are refused. The running job is cancelled and
        queued jobs are discarded; each of them gets its ``on_cancel``
        hook called, running job first, then the queue in FIFO order.
        """
        self._closed = True

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        while True:
            try:
                _job, on_cancel = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._cancel(on_cancel)
            self._queue.task_done()

        logger.debug(
            f"Dispatcher stopped after {self._jobs_run} jobs "
            f"({self._jobs_cancelled} cancelled)"
        )

    def _start(self) -> None:
        if self._worker is not None:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Dispatcher worker started")

    async def _run(self) -> None:
        while True:
            job, on_cancel = await self._queue.get()
            try:
                await job()
                self._jobs_run += 1
            except asyncio.CancelledError:
                self._cancel(on_cancel)
                raise
            except Exception as e:
                self._jobs_run += 1
                logger.exception(f"Dispatched job failed: {e}")
            finally:
                self._queue.task_done()

    def _cancel(self, on_cancel: Optional[CancelHook]) -> None:
        self._jobs_cancelled += 1
        if on_cancel is None:
            return
        try:
            on_cancel()
        except Exception as e:
            logger.exception(f"Cancel hook failed: {e}")

    @property
    def pending(self) -> int:
        """Number of jobs queued but not yet started."""
        return self._queue.qsize()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def jobs_run(self) -> int:
        return self._jobs_run

    @property
    def jobs_cancelled(self) -> int:
        return self._jobs_cancelled
