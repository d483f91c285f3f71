"""
Protocol definitions for the chat relay.

This module defines the frame structure and the event payloads exchanged
between client and server. Every frame is a JSON object of the form
``{"type": <event name>, "data": <payload>}``.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from relay_common.constants import MessageTypes


@dataclass
class ChatMessage:
    """
    Chat message structure.

    ``user`` and ``reply_to_text`` are snapshots taken at send time. ``text``
    is either literal text or an upload reference URL.
    """
    id: int
    user: str
    text: Any
    timestamp: str
    reply_to_id: Any = None
    reply_to_text: Any = None
    seen: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation; reply fields are left out when unset."""
        data = {
            "id": self.id,
            "user": self.user,
            "text": self.text,
            "timestamp": self.timestamp,
            "seen": self.seen
        }
        if self.reply_to_id is not None:
            data["replyToId"] = self.reply_to_id
        if self.reply_to_text is not None:
            data["replyToText"] = self.reply_to_text
        return data


class FrameError(ValueError):
    """Raised when an inbound frame cannot be decoded."""


def create_frame(event: str, data: Any = None) -> Dict[str, Any]:
    """Create a frame for the given event."""
    return {
        "type": event,
        "data": data
    }


def encode_frame(frame: Dict[str, Any]) -> bytes:
    """Serialize a frame as one newline-terminated JSON line."""
    return json.dumps(frame).encode('utf-8') + b'\n'


def decode_frame(raw) -> Dict[str, Any]:
    """
    Parse a raw frame (bytes or str) into a dict.

    Raises FrameError if the frame is not a JSON object with a non-empty
    string ``type``.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FrameError(f"Frame is not UTF-8: {e}") from e

    try:
        frame = json.loads(raw.strip())
    except json.JSONDecodeError as e:
        raise FrameError(f"Malformed JSON: {e}") from e

    if not isinstance(frame, dict):
        raise FrameError("Frame is not a JSON object")

    event = frame.get('type')
    if not isinstance(event, str) or len(event) == 0:
        raise FrameError("Frame has no valid type")

    return frame


# Client to server

def create_set_username_message(username: str) -> Dict[str, Any]:
    """Create a set username message."""
    return create_frame(MessageTypes.SET_USERNAME, username)


def create_chat_message(text: str, reply_to_id: Optional[Any] = None,
                        reply_to_text: Optional[str] = None) -> Dict[str, Any]:
    """Create a chat message, optionally replying to another message."""
    data = {"text": text}
    if reply_to_id is not None:
        data["replyToId"] = reply_to_id
        data["replyToText"] = reply_to_text
    return create_frame(MessageTypes.CHAT_MESSAGE, data)


def create_delete_message(message_id: Any) -> Dict[str, Any]:
    """Create a delete message request."""
    return create_frame(MessageTypes.DELETE_MESSAGE, message_id)


def create_edit_message(message_id: Any, new_text: str) -> Dict[str, Any]:
    """Create an edit message request."""
    return create_frame(MessageTypes.EDIT_MESSAGE, {
        "id": message_id,
        "newText": new_text
    })


def create_mark_seen_message(message_id: Any) -> Dict[str, Any]:
    """Create a mark seen request."""
    return create_frame(MessageTypes.MARK_SEEN, message_id)


def create_typing_message(username: str) -> Dict[str, Any]:
    return create_frame(MessageTypes.TYPING, username)


def create_stop_typing_message(username: str) -> Dict[str, Any]:
    return create_frame(MessageTypes.STOP_TYPING, username)


def create_image_upload_message(file_data: str, file_name: str) -> Dict[str, Any]:
    """Create an image upload message carrying a base64 data URI."""
    return create_frame(MessageTypes.IMAGE_UPLOAD, {
        "fileData": file_data,
        "fileName": file_name
    })


# Server to client

def create_history_message(messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Create a history snapshot message."""
    return create_frame(MessageTypes.LOAD_HISTORY, messages)


def create_chat_broadcast_message(message: Dict[str, Any]) -> Dict[str, Any]:
    return create_frame(MessageTypes.CHAT_MESSAGE, message)


def create_deleted_message(message_id: int) -> Dict[str, Any]:
    return create_frame(MessageTypes.DELETE_MESSAGE, message_id)


def create_edit_confirmed_message(message_id: int, new_text: str) -> Dict[str, Any]:
    """Create an edit confirmation broadcast."""
    return create_frame(MessageTypes.EDIT_CONFIRMED, {
        "id": message_id,
        "newText": new_text
    })


def create_message_seen_message(message_id: int) -> Dict[str, Any]:
    return create_frame(MessageTypes.MESSAGE_SEEN, message_id)


def create_user_disconnected_message(username: str) -> Dict[str, Any]:
    """Create a user disconnected broadcast."""
    return create_frame(MessageTypes.USER_DISCONNECTED, username)
