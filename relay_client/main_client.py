#!/usr/bin/env python3
"""
Chat Relay Client - terminal front end.

Reads commands from stdin and prints everything the relay sends.

Commands:
    /name NAME              claim a display name
    /reply ID TEXT          reply to a message
    /edit ID TEXT           edit one of your messages
    /delete ID              delete one of your messages
    /seen ID                mark a message as seen
    /image PATH             upload an image
    /typing                 tell others you are typing
    /idle                   tell others you stopped typing
    /quit                   disconnect
    anything else           send as a chat message
"""

import argparse
import asyncio
import os
import sys
from typing import Any, Dict

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from relay_client.chat.chat_client import ChatClient, format_message
from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT, MessageTypes


class TerminalClient:
    """Line-oriented client around ChatClient."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        self.chat_client = ChatClient(host, port)
        self.chat_client.set_message_handler(self.handle_message)
        self.messages: Dict[Any, Dict[str, Any]] = {}  # id -> last known message

    async def handle_message(self, event: str, data: Any):
        """Print one inbound event."""
        if event == MessageTypes.LOAD_HISTORY:
            self.messages = {m['id']: m for m in data}
            print(f"\n[HISTORY] {len(data)} message(s)")
            print("-" * 50)
            for message in data:
                print(format_message(message))
            print("-" * 50)
        elif event == MessageTypes.CHAT_MESSAGE:
            self.messages[data['id']] = data
            print(format_message(data))
        elif event == MessageTypes.DELETE_MESSAGE:
            self.messages.pop(data, None)
            print(f"[DELETED] #{data}")
        elif event == MessageTypes.EDIT_CONFIRMED:
            if data['id'] in self.messages:
                self.messages[data['id']]['text'] = data['newText']
            print(f"[EDITED] #{data['id']}: {data['newText']}")
        elif event == MessageTypes.MESSAGE_SEEN:
            print(f"[SEEN] #{data}")
        elif event == MessageTypes.TYPING:
            print(f"[...] {data} is typing")
        elif event == MessageTypes.STOP_TYPING:
            print(f"[...] {data} stopped typing")
        elif event == MessageTypes.USER_DISCONNECTED:
            print(f"[LEFT] {data}")

    async def handle_command(self, line: str) -> bool:
        """Act on one input line; False means quit."""
        line = line.strip()
        if not line:
            return True

        command, _, rest = line.partition(' ')
        if command == '/quit':
            return False
        elif command == '/name':
            await self.chat_client.set_username(rest)
        elif command == '/reply':
            message_id, _, text = rest.partition(' ')
            reply_to = int(message_id) if message_id.isdigit() else message_id
            quoted = self.messages.get(reply_to, {}).get('text')
            await self.chat_client.send_chat(text, reply_to, quoted)
        elif command == '/edit':
            message_id, _, text = rest.partition(' ')
            await self.chat_client.edit_message(message_id, text)
        elif command == '/delete':
            await self.chat_client.delete_message(rest)
        elif command == '/seen':
            await self.chat_client.mark_seen(rest)
        elif command == '/image':
            try:
                await self.chat_client.upload_image(rest)
            except OSError as e:
                print(f"[ERROR] Cannot read {rest}: {e}")
        elif command == '/typing':
            await self.chat_client.typing()
        elif command == '/idle':
            await self.chat_client.stop_typing()
        else:
            await self.chat_client.send_chat(line)
        return True

    async def read_input(self):
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line or not await self.handle_command(line):
                break

    async def run(self, username: str = None):
        await self.chat_client.connect()
        print(f"Connected to {self.chat_client.host}:{self.chat_client.port}")
        if username:
            await self.chat_client.set_username(username)

        listener = asyncio.create_task(self.chat_client.listen())
        reader = asyncio.create_task(self.read_input())
        try:
            await asyncio.wait({listener, reader}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            reader.cancel()
            listener.cancel()
            await self.chat_client.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description='Chat Relay Client')
    parser.add_argument('--host', type=str, default=DEFAULT_HOST,
                        help=f'Server host (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Server TCP port (default: {DEFAULT_PORT})')
    parser.add_argument('--username', type=str, default=None,
                        help='Display name to claim on connect')
    args = parser.parse_args(argv)

    try:
        asyncio.run(TerminalClient(args.host, args.port).run(args.username))
    except KeyboardInterrupt:
        print("\nDisconnected.")
    except ConnectionError as e:
        print(f"[ERROR] Connection failed: {e}")


if __name__ == "__main__":
    main()
