"""
TCP channel module.

Carries the chat protocol over plain TCP as newline-delimited JSON frames.
"""

import asyncio
from typing import Optional

from relay_common.constants import MAX_FRAME_SIZE
from relay_common.protocol_definitions import FrameError, decode_frame, encode_frame
from relay_server.chat.broadcast_engine import BroadcastEngine
from relay_server.chat.connection import Connection
from relay_server.utils.logger import logger


class TcpChannel:
    """Line-delimited JSON transport feeding a broadcast engine."""

    def __init__(self, engine: BroadcastEngine, host: str, port: int,
                 max_frame_size: int = MAX_FRAME_SIZE):
        self.engine = engine
        self.host = host
        self.port = port
        self.max_frame_size = max_frame_size
        self.server: Optional[asyncio.AbstractServer] = None

    async def start(self) -> asyncio.AbstractServer:
        """Bind the listening socket."""
        # readline() needs a limit above the largest accepted frame
        self.server = await asyncio.start_server(
            self.handle_client, self.host, self.port,
            limit=self.max_frame_size + 1
        )
        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info(f"TCP channel listening on {addr}")
        return self.server

    @property
    def bound_port(self) -> Optional[int]:
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def close(self):
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle individual client connection."""
        connection = Connection(peer=writer.get_extra_info('peername'))
        self.engine.connect(connection)
        writer_task = asyncio.create_task(self._pump(connection, writer))

        try:
            while True:
                data = await self._read_line(reader, connection)
                if data is None:
                    break
                if not data.strip():
                    continue

                try:
                    frame = decode_frame(data)
                except FrameError as e:
                    logger.error(f"Bad frame from cid={connection.cid}: {e}")
                    continue

                self.engine.dispatch(connection, frame['type'], frame.get('data'))

        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for cid={connection.cid}")
            raise
        except ConnectionError as e:
            logger.error(f"Socket error for cid={connection.cid}: {e}")
        finally:
            self.engine.disconnect(connection)
            connection.close()
            await writer_task

    async def _read_line(self, reader: asyncio.StreamReader, connection: Connection) -> Optional[bytes]:
        """
        Return the next newline-terminated frame within the size limit.

        An oversized line is dropped whole, including any tail that arrives
        in later reads. Returns None once the stream ends.
        """
        discarding = False
        while True:
            try:
                line = await reader.readuntil(b'\n')
            except asyncio.IncompleteReadError as e:
                # a trailing unterminated frame still counts
                if e.partial and not discarding:
                    return e.partial
                return None
            except asyncio.LimitOverrunError as e:
                if not discarding:
                    logger.warning(f"Frame too large from cid={connection.cid}, skipping it")
                # drop what is buffered, then keep dropping up to the newline
                await reader.read(e.consumed)
                discarding = True
                continue

            if discarding:
                discarding = False
                continue
            return line

    async def _pump(self, connection: Connection, writer: asyncio.StreamWriter):
        """Write queued frames until the connection closes."""
        try:
            while True:
                frame = await connection.next_frame()
                if frame is None:
                    break
                writer.write(encode_frame(frame))
                await writer.drain()
        except ConnectionError as e:
            logger.error(f"Failed to send to cid={connection.cid}: {e}")
            # no further sends; the reader loop notices the dead socket
            connection.closed = True
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
