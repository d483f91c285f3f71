"""
Result kinds reported by the message store and the broadcast engine.

None of these are ever sent to a client; they let callers and tests see why
a request had no observable effect.
"""

from enum import Enum


class Outcome(Enum):
    OK = 'ok'
    PENDING = 'pending'            # upload accepted, write still in flight
    UNCHANGED = 'unchanged'        # name already bound to this connection
    UNBOUND = 'unbound'            # event needs a display name first
    NOT_FOUND = 'not_found'
    NOT_AUTHOR = 'not_author'
    ALREADY_SEEN = 'already_seen'
    OWN_MESSAGE = 'own_message'
    UNSUPPORTED_TYPE = 'unsupported_type'
    WRITE_FAILED = 'write_failed'
    MALFORMED = 'malformed'
    UNKNOWN_EVENT = 'unknown_event'

    @property
    def ok(self) -> bool:
        return self in (Outcome.OK, Outcome.PENDING)

    def __bool__(self):
        return self.ok
