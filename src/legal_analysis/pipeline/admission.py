"""
Concurrency Admission Controller
Bounds how many analyses execute at once and queues the rest in arrival order
"""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Deque, Dict, Optional

from ..errors import AdmissionCancelledError, AdmissionQueueFullError

logger = logging.getLogger(__name__)


class SlotHandle:
    """
    Admission ticket for one analysis run

    release() is one-shot: only the first call returns the slot.
    """

    def __init__(self, controller: "AdmissionController", ticket: int):
        self._controller = controller
        self.ticket = ticket
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Return the slot to the controller; True only on the first call"""
        if self._released:
            return False
        self._released = True
        self._controller._release_slot(self)
        return True

    def __repr__(self):
        state = "released" if self._released else "held"
        return f"<SlotHandle #{self.ticket} {state}>"


class AdmissionController:
    """
    Counting semaphore with a FIFO wait queue

    A released slot is handed directly to the oldest waiter so a newcomer can
    never overtake a queued request.
    """

    def __init__(self, max_concurrent: int = 3, max_queue_size: Optional[int] = 10):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_queue_size is not None and max_queue_size < 0:
            raise ValueError("max_queue_size must not be negative")

        self.max_concurrent = max_concurrent
        self.max_queue_size = max_queue_size
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._closed = False
        self._tickets = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def available(self) -> int:
        return self.max_concurrent - self._active

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> Dict:
        return {
            "active": self._active,
            "max": self.max_concurrent,
            "waiting": self.waiting,
        }

    async def acquire(self) -> SlotHandle:
        """
        Wait for a free slot

        Raises:
            AdmissionCancelledError: the controller is shutting down
            AdmissionQueueFullError: the wait queue is at capacity
        """

        if self._closed:
            raise AdmissionCancelledError("Admission controller is shutting down")

        if self._active < self.max_concurrent and not self.waiting:
            self._active += 1
            handle = self._new_handle()
            logger.info(
                f"Slot acquired. Active: {self._active}/{self.max_concurrent}, waiting: {self.waiting}"
            )
            return handle

        if self.max_queue_size is not None and self.waiting >= self.max_queue_size:
            raise AdmissionQueueFullError(
                f"Analysis queue is full: {self.waiting} analyses waiting. Please try again later."
            )

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.info(
            f"No slots available. Queued at position {self.waiting}"
            + (f"/{self.max_queue_size}" if self.max_queue_size is not None else "")
        )

        try:
            # The slot is already counted in _active when the future resolves
            handle = await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                waiter.result().release()
            else:
                self._discard(waiter)
            raise

        logger.info(
            f"Slot acquired from queue. Active: {self._active}/{self.max_concurrent}, waiting: {self.waiting}"
        )
        return handle

    @asynccontextmanager
    async def slot(self):
        """async with controller.slot(): ... holds a slot for the block"""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            handle.release()

    def shutdown(self):
        """Refuse new acquires and fail every pending one"""

        self._closed = True
        pending = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(AdmissionCancelledError("Admission controller shut down while waiting"))
                pending += 1
        if pending:
            logger.warning(f"Admission controller shut down with {pending} pending requests")

    def _new_handle(self) -> SlotHandle:
        self._tickets += 1
        return SlotHandle(self, self._tickets)

    def _discard(self, waiter: asyncio.Future):
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def _release_slot(self, handle: SlotHandle):
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            waiter.set_result(self._new_handle())
            logger.info(
                f"Slot #{handle.ticket} passed to next in queue. Active: {self._active}/{self.max_concurrent}"
            )
            return

        self._active -= 1
        logger.info(
            f"Slot #{handle.ticket} released. Active: {self._active}/{self.max_concurrent}, waiting: 0"
        )
