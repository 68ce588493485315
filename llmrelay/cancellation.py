import asyncio
from typing import Awaitable, TypeVar

from .errors import RequestCancelledError

T = TypeVar("T")


class AbortHandle:
    """
    Abort signal for one logical request.

    Anything awaited through :meth:`run` is torn down as soon as :meth:`abort`
    is called, and the awaiting caller gets a :class:`RequestCancelledError`.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self) -> None:
        self._event.set()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise RequestCancelledError("Request was cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless this handle is aborted first.

        Args:
            awaitable: Coroutine or future to race against the abort signal.

        Returns:
            The awaitable's result.

        Raises:
            RequestCancelledError: If the handle was aborted before completion.
        """
        task = asyncio.ensure_future(awaitable)
        if self.aborted:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise RequestCancelledError("Request was cancelled")

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestCancelledError("Request was cancelled")
