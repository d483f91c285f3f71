"""
Connection handle shared by the channel layer and the broadcast engine.
"""

import asyncio
import uuid
from typing import Any, Dict, Optional

from relay_common.constants import MAX_OUTBOX_FRAMES
from relay_server.utils.logger import logger


class Connection:
    """
    One live channel link.

    The engine only ever calls ``send``, which queues a frame without
    awaiting; the owning transport drains ``outbox`` in its own writer task.
    A ``None`` in the outbox tells that writer to stop. A peer that falls
    more than ``max_pending`` frames behind is cut off.
    """

    def __init__(self, cid: Optional[str] = None, peer: Any = None,
                 max_pending: int = MAX_OUTBOX_FRAMES):
        self.cid = cid or uuid.uuid4().hex[:12]
        self.peer = peer
        # one extra slot so the stop marker always fits
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending + 1)
        self.max_pending = max_pending
        self.closed = False

    def send(self, frame: Dict[str, Any]):
        """Queue an outbound frame for this connection."""
        if self.closed:
            return
        if self.outbox.qsize() >= self.max_pending:
            logger.warning(f"Outbox full for cid={self.cid}, dropping connection")
            self.abort()
            return
        self.outbox.put_nowait(frame)

    def close(self):
        """Stop the writer once the queued frames are sent."""
        if self.closed:
            return
        self.closed = True
        self.outbox.put_nowait(None)

    def abort(self):
        """Stop the writer now, discarding anything still queued."""
        self.closed = True
        while not self.outbox.empty():
            self.outbox.get_nowait()
        self.outbox.put_nowait(None)

    async def next_frame(self) -> Optional[Dict[str, Any]]:
        """Wait for the next queued frame, or None once closed."""
        return await self.outbox.get()

    def __repr__(self):
        return f"Connection(cid={self.cid!r}, peer={self.peer!r})"
