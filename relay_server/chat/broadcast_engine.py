"""
Broadcast engine module.

Routes connection events to the session registry and message store and fans
the results out to connected clients.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

from relay_common.constants import MessageTypes
from relay_common.protocol_definitions import (
    ChatMessage, create_chat_broadcast_message, create_deleted_message,
    create_edit_confirmed_message, create_history_message,
    create_message_seen_message, create_stop_typing_message,
    create_typing_message, create_user_disconnected_message
)
from relay_server.chat.connection import Connection
from relay_server.chat.message_store import MessageStore
from relay_server.chat.outcomes import Outcome
from relay_server.chat.session_registry import SessionRegistry
from relay_server.files.upload_handler import (
    PendingUpload, UnsupportedImageType, UploadError, UploadHandler
)
from relay_server.utils.logger import logger

# Outcomes worth a warning; the rest are routine drops
_WARN_OUTCOMES = {
    Outcome.NOT_AUTHOR, Outcome.UNSUPPORTED_TYPE, Outcome.WRITE_FAILED,
    Outcome.MALFORMED, Outcome.UNKNOWN_EVENT
}


class BroadcastEngine:
    """
    Event dispatcher for the chat relay.

    Every handler except image upload runs to completion without awaiting:
    outbound frames are queued on each connection's outbox, so one event's
    mutation and emissions finish before the next event is looked at.
    """

    def __init__(self, registry: SessionRegistry, store: MessageStore,
                 uploads: UploadHandler):
        self.registry = registry
        self.store = store
        self.uploads = uploads
        self.connections: Dict[str, Connection] = {}  # cid -> connection
        self.pending_uploads: Set[asyncio.Task] = set()

        self.handlers: Dict[str, Callable[[Connection, Any], Outcome]] = {
            MessageTypes.SET_USERNAME: self.handle_set_username,
            MessageTypes.CHAT_MESSAGE: self.handle_chat_message,
            MessageTypes.DELETE_MESSAGE: self.handle_delete_message,
            MessageTypes.EDIT_MESSAGE: self.handle_edit_message,
            MessageTypes.MARK_SEEN: self.handle_mark_seen,
            MessageTypes.TYPING: self.handle_typing,
            MessageTypes.STOP_TYPING: self.handle_stop_typing,
            MessageTypes.IMAGE_UPLOAD: self.handle_image_upload,
        }

    # Connection lifecycle

    def connect(self, connection: Connection):
        """Start delivering broadcasts to a new connection."""
        self.connections[connection.cid] = connection
        logger.log_connection(connection.peer, connection.cid)

    def disconnect(self, connection: Connection) -> Optional[str]:
        """Drop a connection and announce its name if it had one."""
        if self.connections.pop(connection.cid, None) is None:
            return None

        username = self.registry.release(connection.cid)
        logger.log_disconnect(username, connection.cid)
        if username is not None:
            self.broadcast(create_user_disconnected_message(username))
        return username

    # Delivery

    def broadcast(self, frame: Dict[str, Any], exclude: Optional[str] = None) -> int:
        """Queue a frame for every connection except ``exclude``."""
        count = 0
        for cid, connection in list(self.connections.items()):
            if exclude is not None and cid == exclude:
                continue
            connection.send(frame)
            count += 1
        logger.debug(f"[BROADCAST] {frame['type']} to {count} connections, exclude={exclude}")
        return count

    def send_to(self, cid: str, frame: Dict[str, Any]) -> bool:
        """Queue a frame for a single connection."""
        connection = self.connections.get(cid)
        if connection is None:
            return False
        connection.send(frame)
        return True

    # Dispatch

    def dispatch(self, connection: Connection, event: str, data: Any = None) -> Outcome:
        """Handle one inbound event and report what happened."""
        handler = self.handlers.get(event)
        if handler is None:
            outcome = Outcome.UNKNOWN_EVENT
        else:
            outcome = handler(connection, data)

        if outcome in _WARN_OUTCOMES:
            logger.log_rejected(event, connection.cid, outcome.value)
        elif not outcome.ok:
            logger.debug(f"Dropped '{event}' from cid={connection.cid}: {outcome.value}")
        return outcome

    def handle_set_username(self, connection: Connection, name: Any) -> Outcome:
        if not isinstance(name, str):
            return Outcome.MALFORMED
        if not self.registry.claim(connection.cid, name):
            return Outcome.UNCHANGED

        logger.log_claim(name, connection.cid)
        history = [message.to_dict() for message in self.store.history()]
        self.send_to(connection.cid, create_history_message(history))
        return Outcome.OK

    def handle_chat_message(self, connection: Connection, data: Any) -> Outcome:
        author = self.registry.bound_name(connection.cid)
        if author is None:
            return Outcome.UNBOUND
        if not isinstance(data, dict):
            return Outcome.MALFORMED

        message = self.store.append(author, data.get('text'),
                                    data.get('replyToId'), data.get('replyToText'))
        logger.log_chat(author, message.id, message.text)
        self._broadcast_message(message)
        return Outcome.OK

    def handle_delete_message(self, connection: Connection, message_id: Any) -> Outcome:
        requester = self.registry.bound_name(connection.cid)
        if requester is None:
            return Outcome.UNBOUND

        message = self.store.find(message_id)
        outcome = self.store.delete(message_id, requester)
        if outcome:
            logger.log_delete(requester, message.id)
            self.broadcast(create_deleted_message(message.id))
        return outcome

    def handle_edit_message(self, connection: Connection, data: Any) -> Outcome:
        requester = self.registry.bound_name(connection.cid)
        if requester is None:
            return Outcome.UNBOUND
        if not isinstance(data, dict):
            return Outcome.MALFORMED

        new_text = data.get('newText')
        message = self.store.find(data.get('id'))
        outcome = self.store.edit(data.get('id'), requester, new_text)
        if outcome:
            logger.log_edit(requester, message.id, new_text)
            self.broadcast(create_edit_confirmed_message(message.id, new_text))
        return outcome

    def handle_mark_seen(self, connection: Connection, message_id: Any) -> Outcome:
        # unbound readers are allowed; they can never be the author
        reader = self.registry.bound_name(connection.cid)
        message = self.store.find(message_id)
        outcome = self.store.mark_seen(message_id, reader)
        if outcome:
            self.broadcast(create_message_seen_message(message.id))
        return outcome

    # typing indicators carry whatever name the client sent; no state kept

    def handle_typing(self, connection: Connection, name: Any) -> Outcome:
        self.broadcast(create_typing_message(name), exclude=connection.cid)
        return Outcome.OK

    def handle_stop_typing(self, connection: Connection, name: Any) -> Outcome:
        self.broadcast(create_stop_typing_message(name), exclude=connection.cid)
        return Outcome.OK

    def handle_image_upload(self, connection: Connection, data: Any) -> Outcome:
        """
        Validate an upload and start writing it.

        The message is only created once the write finishes, in
        ``finish_upload``; the returned PENDING means the write was started.
        """
        author = self.registry.bound_name(connection.cid)
        if author is None:
            return Outcome.UNBOUND
        if not isinstance(data, dict):
            return Outcome.MALFORMED

        try:
            pending = self.uploads.prepare(data.get('fileData'), data.get('fileName'))
        except UnsupportedImageType:
            return Outcome.UNSUPPORTED_TYPE
        except UploadError:
            return Outcome.MALFORMED

        task = asyncio.ensure_future(self.finish_upload(connection.cid, author, pending))
        self.pending_uploads.add(task)
        task.add_done_callback(self.pending_uploads.discard)
        return Outcome.PENDING

    async def finish_upload(self, cid: str, author: str, pending: PendingUpload) -> Outcome:
        """
        Write the upload, then append and broadcast its message.

        The message is credited to the name the uploader holds when the write
        completes; ``author`` is only used if the uploader has left by then.
        """
        try:
            url = await self.uploads.save(pending)
        except UploadError as e:
            logger.log_error("image upload", e)
            return Outcome.WRITE_FAILED

        current = self.registry.bound_name(cid)
        if current is not None:
            author = current
        message = self.store.append(author, url)
        logger.log_upload(author, message.id, url)
        self._broadcast_message(message)
        return Outcome.OK

    async def wait_for_uploads(self) -> List[Outcome]:
        """Wait for every upload write currently in flight."""
        if not self.pending_uploads:
            return []
        return list(await asyncio.gather(*self.pending_uploads))

    def _broadcast_message(self, message: ChatMessage):
        self.broadcast(create_chat_broadcast_message(message.to_dict()))
