"""
Chat client module.

This module handles client-side chat messaging over the TCP channel.
"""

import asyncio
import base64
import json
import mimetypes
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT, MAX_FRAME_SIZE
from relay_common.protocol_definitions import (
    FrameError, decode_frame, encode_frame,
    create_set_username_message, create_chat_message, create_delete_message,
    create_edit_message, create_mark_seen_message, create_typing_message,
    create_stop_typing_message, create_image_upload_message
)

FrameHandler = Callable[[str, Any], Awaitable[None]]


class ChatClient:
    """Client-side chat functionality."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        self.host = host
        self.port = port
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.message_handler: Optional[FrameHandler] = None
        self.username: Optional[str] = None

    async def connect(self):
        """Open the TCP connection to the relay."""
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port, limit=MAX_FRAME_SIZE + 1
        )

    async def close(self):
        if self.writer is None:
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError:
            pass
        self.writer = None

    def set_message_handler(self, handler: FrameHandler):
        """Set the coroutine called as handler(event, data) for each inbound frame."""
        self.message_handler = handler

    async def send_message(self, message: Dict[str, Any]) -> bool:
        """Send a frame to the server."""
        if not self.writer:
            print("[ERROR] Not connected to server")
            return False

        try:
            self.writer.write(encode_frame(message))
            await self.writer.drain()
            return True
        except ConnectionError as e:
            print(f"[ERROR] Failed to send message: {e}")
            return False

    async def set_username(self, username: str) -> bool:
        self.username = username
        return await self.send_message(create_set_username_message(username))

    async def send_chat(self, text: str, reply_to_id: Any = None,
                        reply_to_text: Optional[str] = None) -> bool:
        """Send a chat message, optionally as a reply."""
        return await self.send_message(create_chat_message(text, reply_to_id, reply_to_text))

    async def delete_message(self, message_id: Any) -> bool:
        return await self.send_message(create_delete_message(message_id))

    async def edit_message(self, message_id: Any, new_text: str) -> bool:
        return await self.send_message(create_edit_message(message_id, new_text))

    async def mark_seen(self, message_id: Any) -> bool:
        return await self.send_message(create_mark_seen_message(message_id))

    async def typing(self) -> bool:
        return await self.send_message(create_typing_message(self.username))

    async def stop_typing(self) -> bool:
        return await self.send_message(create_stop_typing_message(self.username))

    async def upload_image(self, file_path: str) -> bool:
        """Read an image file and send it as a base64 data URI."""
        path = Path(file_path)
        data = await asyncio.to_thread(path.read_bytes)
        mime = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
        data_uri = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
        return await self.send_message(create_image_upload_message(data_uri, path.name))

    async def receive(self) -> Optional[Dict[str, Any]]:
        """Read the next frame; None once the server closes the connection."""
        while True:
            line = await self.reader.readline()
            if not line:
                return None
            try:
                return decode_frame(line)
            except FrameError as e:
                print(f"[ERROR] Bad frame from server: {e}")

    async def listen(self):
        """Feed inbound frames to the message handler until disconnected."""
        while True:
            frame = await self.receive()
            if frame is None:
                break
            if self.message_handler:
                await self.message_handler(frame['type'], frame.get('data'))


def format_message(message: Dict[str, Any]) -> str:
    """Render a wire message as one terminal line."""
    line = f"[{message.get('timestamp', '')}] #{message.get('id')} {message.get('user')}: {message.get('text')}"
    if message.get('replyToId') is not None:
        line += f"  (reply to #{message['replyToId']}: {json.dumps(message.get('replyToText'))})"
    if message.get('seen'):
        line += "  ✓✓"
    return line
