#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Wires the session registry, message store and upload handler into one
broadcast engine and exposes it over the TCP and WebSocket channels.
"""

import asyncio
import os
import sys
from typing import List, Optional

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from relay_server.chat.broadcast_engine import BroadcastEngine
from relay_server.chat.message_store import MessageStore
from relay_server.chat.session_registry import SessionRegistry
from relay_server.files.upload_handler import UploadHandler
from relay_server.transport.tcp_channel import TcpChannel
from relay_server.transport.websocket_channel import WebSocketChannel
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger


class RelayServer:
    """Main server class that owns all chat state for the process."""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()

        # Initialize modules
        self.registry = SessionRegistry()
        self.store = MessageStore()
        self.uploads = UploadHandler(self.config.upload_dir, self.config.allowed_extensions)
        self.engine = BroadcastEngine(self.registry, self.store, self.uploads)

        self.tcp_channel = TcpChannel(self.engine, self.config.host, self.config.port,
                                      self.config.max_frame_size)
        self.ws_channel = None
        if self.config.websocket_enabled:
            self.ws_channel = WebSocketChannel(self.engine, self.config.host, self.config.ws_port,
                                               self.config.max_frame_size)
        else:
            logger.info("WebSocket channel disabled")

    @property
    def channels(self) -> List:
        return [c for c in (self.tcp_channel, self.ws_channel) if c is not None]

    async def open(self):
        """Bind every enabled channel."""
        for channel in self.channels:
            await channel.start()

    async def close(self):
        for channel in self.channels:
            await channel.close()
        await self.engine.wait_for_uploads()

    async def start(self):
        """Start the server and run until cancelled."""
        await self.open()
        try:
            await asyncio.Future()  # run forever
        finally:
            await self.close()


def main(argv=None):
    config = ServerConfig.from_args(argv)
    logger.configure(logs_dir=config.logs_dir, log_level=config.get_log_level())

    server = None
    try:
        server = RelayServer(config)
        logger.info(f"Server binding to {config.host}:{config.port}")
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except Exception as e:
        logger.log_error("server", e)
        raise


if __name__ == "__main__":
    main()
