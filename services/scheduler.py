"""
Hop scheduler.

Registry of pending hop suspensions keyed by packet id. Each suspension
is an asyncio timer plus the future the orchestrator awaits; cancelling
a packet cancels its timer and fails the future with RunCancelledError.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from models.errors import RunCancelledError

logger = logging.getLogger(__name__)


@dataclass
class _PendingHop:
    future: asyncio.Future
    handle: Optional[asyncio.TimerHandle]


class HopScheduler:
    """Cooperative delays that can be cancelled per packet."""

    def __init__(self):
        self._pending: dict[str, _PendingHop] = {}

    @property
    def pending(self) -> list[str]:
        """Packet ids with a suspension in progress."""
        return list(self._pending)

    def is_pending(self, packet_id: str) -> bool:
        return packet_id in self._pending

    async def sleep(self, packet_id: str, seconds: float):
        """
        Suspend the calling coroutine for a hop.

        A zero delay still yields to the event loop once. Raises
        RunCancelledError if the packet is cancelled meanwhile.
        """
        if packet_id in self._pending:
            raise RuntimeError(f"Packet {packet_id} already has a pending hop")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        delay = max(0.0, seconds)

        def fire():
            if not future.done():
                future.set_result(None)

        handle = loop.call_later(delay, fire)
        self._pending[packet_id] = _PendingHop(future, handle)
        try:
            await future
        finally:
            handle.cancel()
            entry = self._pending.get(packet_id)
            if entry is not None and entry.future is future:
                del self._pending[packet_id]

    def cancel(self, packet_id: str) -> bool:
        """Cancel a packet's pending hop. Returns False if none was pending."""
        entry = self._pending.pop(packet_id, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        if not entry.future.done():
            entry.future.set_exception(RunCancelledError(packet_id))
        logger.debug(f"Cancelled pending hop for {packet_id}")
        return True

    def cancel_all(self) -> int:
        """Cancel every pending hop; returns how many were cancelled."""
        count = 0
        for packet_id in list(self._pending):
            if self.cancel(packet_id):
                count += 1
        return count
