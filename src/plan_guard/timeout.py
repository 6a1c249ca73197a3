# timeout.py
# Deadline and cancellation guard for awaitables.
#
# asyncio gives no guarantee that work already sent to the outside world can
# be undone, so a timed-out operation is abandoned rather than killed: the
# guard stops waiting and reports failure while the operation may still
# finish in the background. Callers must treat its side effects as unknown.

import asyncio
import inspect
from typing import Any, Awaitable, Callable, TypeVar

from plan_guard import display
from plan_guard.errors import OperationTimeoutError

T = TypeVar("T")


def _close_unstarted(operation: Awaitable[Any]) -> None:
    if inspect.iscoroutine(operation):
        operation.close()


def _discard_outcome(task: asyncio.Future) -> None:
    # Retrieve the outcome of an abandoned operation so asyncio does not
    # report "exception was never retrieved" when it eventually fails.
    if not task.cancelled():
        task.exception()


async def with_timeout(
    operation: Awaitable[T],
    *,
    timeout_ms: int,
    operation_name: str,
    on_timeout: Callable[[], None] | None = None,
    cancel_signal: asyncio.Event | None = None,
) -> T:
    """
    Await `operation`, giving up after `timeout_ms` or when `cancel_signal` is set.

    Raises OperationTimeoutError in both cases; `aborted` tells them apart.
    `on_timeout` fires only for a real deadline expiry. Any exception raised
    by the operation itself propagates unchanged.
    """
    if cancel_signal is not None and cancel_signal.is_set():
        _close_unstarted(operation)
        raise OperationTimeoutError(
            f'Operation "{operation_name}" was aborted before starting',
            operation_name,
            timeout_ms,
            aborted=True,
        )

    task = asyncio.ensure_future(operation)
    waiters: set[asyncio.Future] = {task}
    abort_waiter: asyncio.Future | None = None
    if cancel_signal is not None:
        abort_waiter = asyncio.ensure_future(cancel_signal.wait())
        waiters.add(abort_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout_ms / 1000,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        # The caller itself was cancelled; nobody is left to wait for the result.
        task.cancel()
        raise
    finally:
        if abort_waiter is not None and not abort_waiter.done():
            abort_waiter.cancel()

    if task in done:
        return task.result()

    task.add_done_callback(_discard_outcome)

    if abort_waiter is not None and abort_waiter in done:
        raise OperationTimeoutError(
            f'Operation "{operation_name}" was aborted',
            operation_name,
            timeout_ms,
            aborted=True,
        )

    display.operation_timeout(operation_name, timeout_ms)
    if on_timeout is not None:
        on_timeout()
    raise OperationTimeoutError(
        f'Operation "{operation_name}" timed out after {timeout_ms}ms',
        operation_name,
        timeout_ms,
    )


class TimeoutManager:
    """
    Tracks guarded operations by caller-chosen id so they can be aborted
    from outside the code that awaits them.
    """

    def __init__(self) -> None:
        self._active: dict[str, asyncio.Event] = {}

    async def execute(
        self,
        operation_id: str,
        operation: Awaitable[T],
        *,
        timeout_ms: int,
        operation_name: str,
        on_timeout: Callable[[], None] | None = None,
    ) -> T:
        if operation_id in self._active:
            _close_unstarted(operation)
            raise ValueError(f"Operation id '{operation_id}' is already active")

        signal = asyncio.Event()
        self._active[operation_id] = signal
        try:
            return await with_timeout(
                operation,
                timeout_ms=timeout_ms,
                operation_name=operation_name,
                on_timeout=on_timeout,
                cancel_signal=signal,
            )
        finally:
            if self._active.get(operation_id) is signal:
                del self._active[operation_id]

    def abort(self, operation_id: str) -> bool:
        signal = self._active.pop(operation_id, None)
        if signal is None:
            return False
        signal.set()
        return True

    def abort_all(self) -> None:
        for operation_id in list(self._active):
            self.abort(operation_id)

    def active_operations(self) -> list[str]:
        return list(self._active)

    def is_active(self, operation_id: str) -> bool:
        return operation_id in self._active
