"""
Message store module.

Holds every message sent during the process lifetime, in creation order.
"""

from datetime import datetime
from typing import Any, Callable, List, Optional

from relay_common.constants import TIMESTAMP_FORMAT
from relay_common.protocol_definitions import ChatMessage
from relay_server.chat.outcomes import Outcome


def coerce_id(value: Any) -> Optional[float]:
    """
    Turn a client supplied message id into a number.

    Accepts ints, floats and numeric strings; anything else yields None,
    which matches no message.
    """
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


class MessageStore:
    """In-memory, ordered message log."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.messages: List[ChatMessage] = []
        self.next_id = 0
        self.clock = clock

    def append(self, author: str, body: Any, reply_to_id: Any = None,
               reply_to_text: Any = None) -> ChatMessage:
        """Create a message with the next id and add it to the log."""
        message = ChatMessage(
            id=self._get_next_id(),
            user=author,
            text=body,
            timestamp=self.clock().strftime(TIMESTAMP_FORMAT),
            reply_to_id=reply_to_id,
            reply_to_text=reply_to_text
        )
        self.messages.append(message)
        return message

    def find(self, message_id: Any) -> Optional[ChatMessage]:
        """Look a message up by id; None if absent or not numeric."""
        target = coerce_id(message_id)
        if target is None:
            return None
        for message in self.messages:
            if message.id == target:
                return message
        return None

    def delete(self, message_id: Any, requester: Optional[str]) -> Outcome:
        """Remove a message; only its author may do so."""
        message = self.find(message_id)
        if message is None:
            return Outcome.NOT_FOUND
        if message.user != requester:
            return Outcome.NOT_AUTHOR
        self.messages.remove(message)
        return Outcome.OK

    def edit(self, message_id: Any, requester: Optional[str], new_text: Any) -> Outcome:
        """Replace a message's text; only its author may do so."""
        message = self.find(message_id)
        if message is None:
            return Outcome.NOT_FOUND
        if message.user != requester:
            return Outcome.NOT_AUTHOR
        message.text = new_text
        return Outcome.OK

    def mark_seen(self, message_id: Any, reader: Optional[str]) -> Outcome:
        """Flag a message as seen by someone other than its author."""
        message = self.find(message_id)
        if message is None:
            return Outcome.NOT_FOUND
        if message.seen:
            return Outcome.ALREADY_SEEN
        if message.user == reader:
            return Outcome.OWN_MESSAGE
        message.seen = True
        return Outcome.OK

    def history(self) -> List[ChatMessage]:
        """Snapshot of the current log in creation order."""
        return list(self.messages)

    def _get_next_id(self) -> int:
        message_id = self.next_id
        self.next_id += 1
        return message_id

    def __len__(self):
        return len(self.messages)
