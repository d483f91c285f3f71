"""
WebSocket channel module.

Carries the chat protocol over WebSockets, one JSON frame per text message,
and answers plain HTTP requests for uploaded images on the same port.
"""

import asyncio
import json
import mimetypes
from http import HTTPStatus
from typing import Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from relay_common.constants import MAX_FRAME_SIZE, UPLOAD_URL_PREFIX
from relay_common.protocol_definitions import FrameError, decode_frame
from relay_server.chat.broadcast_engine import BroadcastEngine
from relay_server.chat.connection import Connection
from relay_server.utils.logger import logger


class WebSocketChannel:
    """WebSocket transport feeding a broadcast engine."""

    def __init__(self, engine: BroadcastEngine, host: str, port: int,
                 max_frame_size: int = MAX_FRAME_SIZE):
        self.engine = engine
        self.host = host
        self.port = port
        self.max_frame_size = max_frame_size
        self.server: Optional[Server] = None

    async def start(self) -> Server:
        self.server = await serve(
            self.handler, self.host, self.port,
            process_request=self.process_request,
            max_size=self.max_frame_size
        )
        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info(f"WebSocket channel listening on {addr}")
        return self.server

    @property
    def bound_port(self) -> Optional[int]:
        if self.server is None:
            return None
        sockets = list(self.server.sockets)
        return sockets[0].getsockname()[1] if sockets else None

    async def close(self):
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()

    async def process_request(self, ws: ServerConnection, request: Request) -> Optional[Response]:
        """Serve GET /uploads/<file>; every other path goes on to the handshake."""
        if not request.path.startswith(UPLOAD_URL_PREFIX):
            return None

        path = self.engine.uploads.resolve(request.path)
        if path is None:
            return ws.respond(HTTPStatus.NOT_FOUND, "Not found\n")

        try:
            body = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}")
            return ws.respond(HTTPStatus.NOT_FOUND, "Not found\n")

        content_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
        headers = Headers([
            ('Content-Type', content_type),
            ('Content-Length', str(len(body))),
        ])
        return Response(HTTPStatus.OK.value, HTTPStatus.OK.phrase, headers, body)

    async def handler(self, ws: ServerConnection):
        connection = Connection(peer=ws.remote_address)
        self.engine.connect(connection)
        pump = asyncio.create_task(self._pump(connection, ws))

        try:
            async for raw in ws:
                try:
                    frame = decode_frame(raw)
                except FrameError as e:
                    logger.error(f"Bad frame from cid={connection.cid}: {e}")
                    continue
                self.engine.dispatch(connection, frame['type'], frame.get('data'))
        except ConnectionClosed as e:
            logger.debug(f"WebSocket closed for cid={connection.cid}: {e}")
        finally:
            self.engine.disconnect(connection)
            connection.close()
            await pump

    async def _pump(self, connection: Connection, ws: ServerConnection):
        """Send queued frames until the connection closes."""
        try:
            while True:
                frame = await connection.next_frame()
                if frame is None:
                    break
                await ws.send(json.dumps(frame))
        except ConnectionClosed as e:
            logger.error(f"Failed to send to cid={connection.cid}: {e}")
            connection.closed = True
        finally:
            # also ends the read loop when the outbox overflowed
            await ws.close()
