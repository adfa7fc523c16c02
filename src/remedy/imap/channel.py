# =============================================================================
# Message Channel
# =============================================================================
# Bounded many-producer / single-consumer channel between the fetch workers
# of one mailbox and its Maildir writer.
#
# Semantics:
#   - send() waits while the buffer is full. This is the backpressure that
#     stops fast workers from piling fetched bodies up in memory.
#   - Every producer calls close_sender() exactly once when it stops, whether
#     it finished or failed. Once all producers have closed and the buffer is
#     drained, recv() returns None.
#   - The consumer calls close_receiver() when it stops early. Pending and
#     future send() calls then raise ChannelClosed instead of blocking forever.
#
# Built on asyncio.Queue; all methods must be called from the event loop
# thread.
# =============================================================================

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")

# Wakes a receiver blocked on an empty buffer once the last sender closes
_ALL_SENDERS_CLOSED = object()


class MessageChannel(Generic[T]):
    """
    Bounded MPSC channel.

    Usage:
        >>> channel = MessageChannel(capacity=2, senders=3)
        >>> await channel.send(message)     # in each producer
        >>> channel.close_sender()          # in each producer, in finally
        >>> while (message := await channel.recv()) is not None:
        ...     store(message)

    Attributes:
        capacity: Maximum number of buffered items.
    """

    def __init__(self, capacity: int, senders: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._open_senders = senders
        self._receiver_closed = asyncio.Event()

    @property
    def receiver_closed(self) -> bool:
        return self._receiver_closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, item: T) -> None:
        """
        Put an item in the buffer, waiting for space if it is full.

        Raises:
            ChannelClosed: The receiver has stopped.
        """
        if self._receiver_closed.is_set():
            raise ChannelClosed("receiver has closed the channel")

        putter = asyncio.ensure_future(self._queue.put(item))
        closed = asyncio.ensure_future(self._receiver_closed.wait())
        try:
            await asyncio.wait({putter, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed.cancel()
            sent = putter.done() and not putter.cancelled()
            if not putter.done():
                putter.cancel()

        if not sent:
            raise ChannelClosed("receiver has closed the channel")

    def close_sender(self) -> None:
        """Release one sender slot. Never blocks."""
        if self._open_senders <= 0:
            raise RuntimeError("close_sender() called more times than there are senders")
        self._open_senders -= 1
        # The receiver may be parked on an empty buffer; give it something
        # to wake up on. A non-empty buffer needs no wake-up.
        if self._open_senders == 0 and self._queue.empty():
            self._queue.put_nowait(_ALL_SENDERS_CLOSED)

    async def recv(self) -> T | None:
        """
        Take the next item, in arrival order.

        Returns:
            The item, or None once every sender has closed and the buffer
            is empty.
        """
        if self._open_senders == 0 and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _ALL_SENDERS_CLOSED:
            return None
        return item

    def close_receiver(self) -> None:
        """Stop receiving. Blocked and future senders get ChannelClosed."""
        self._receiver_closed.set()


class ChannelClosed(Exception):
    """Raised by send() when the receiving side has gone away."""
    pass
