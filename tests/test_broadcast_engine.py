#!/usr/bin/env python3
"""
Unit tests for the broadcast engine.

Drives the engine with in-memory connections and checks both the outbound
frames and the internal outcome of every request, including the requests
that must have no visible effect.
"""

import asyncio
import base64
import tempfile
import unittest
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay_common.constants import MessageTypes
from relay_server.chat.broadcast_engine import BroadcastEngine
from relay_server.chat.connection import Connection
from relay_server.chat.message_store import MessageStore
from relay_server.chat.outcomes import Outcome
from relay_server.chat.session_registry import SessionRegistry
from relay_server.files.upload_handler import UploadError, UploadHandler

PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(b'\x89PNG\r\n\x1a\n').decode('ascii')


def drain(connection):
    """Collect every frame queued for a connection as (event, data) pairs."""
    frames = []
    while not connection.outbox.empty():
        frame = connection.outbox.get_nowait()
        if frame is not None:
            frames.append((frame["type"], frame["data"]))
    return frames


async def settle(rounds: int = 5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class EngineTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared fixture: an engine with alice and bob connected and named."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.registry = SessionRegistry()
        self.store = MessageStore()
        self.uploads = UploadHandler(self.tmp.name)
        self.engine = BroadcastEngine(self.registry, self.store, self.uploads)

        self.a = self.connect("conn-a")
        self.b = self.connect("conn-b")

    def tearDown(self):
        self.tmp.cleanup()

    def connect(self, cid):
        connection = Connection(cid)
        self.engine.connect(connection)
        return connection

    def join(self, connection, name):
        outcome = self.engine.dispatch(connection, MessageTypes.SET_USERNAME, name)
        drain(connection)
        return outcome

    def drain_all(self):
        return drain(self.a), drain(self.b)


class TestSetUsername(EngineTestCase):

    def test_history_sent_to_sender_only(self):
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "first"})
        self.drain_all()

        outcome = self.engine.dispatch(self.b, MessageTypes.SET_USERNAME, "bob")
        self.assertIs(outcome, Outcome.OK)

        frames_a, frames_b = self.drain_all()
        self.assertEqual(frames_a, [])
        self.assertEqual(len(frames_b), 1)
        event, history = frames_b[0]
        self.assertEqual(event, MessageTypes.LOAD_HISTORY)
        self.assertEqual([m["text"] for m in history], ["first"])

    def test_same_name_twice_is_silent(self):
        self.join(self.a, "alice")
        outcome = self.engine.dispatch(self.a, MessageTypes.SET_USERNAME, "alice")
        self.assertIs(outcome, Outcome.UNCHANGED)
        self.assertEqual(drain(self.a), [])

    def test_non_string_name_is_dropped(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.SET_USERNAME, None)
        self.assertIs(outcome, Outcome.MALFORMED)
        self.assertIsNone(self.registry.bound_name("conn-a"))

    def test_rebind_moves_registry_entry(self):
        self.join(self.a, "alice")
        self.join(self.a, "alicia")
        self.assertIsNone(self.registry.owner_of("alice"))
        self.assertEqual(self.registry.owner_of("alicia"), "conn-a")

    def test_displaced_connection_is_not_notified(self):
        self.join(self.a, "alice")
        outcome = self.join(self.b, "alice")

        self.assertIs(outcome, Outcome.OK)
        self.assertEqual(drain(self.a), [])
        self.assertEqual(self.registry.owner_of("alice"), "conn-b")


class TestChatMessage(EngineTestCase):

    def test_scenario_hi_reaches_everyone(self):
        self.join(self.a, "alice")
        self.join(self.b, "bob")

        outcome = self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.assertIs(outcome, Outcome.OK)

        for frames in self.drain_all():
            self.assertEqual(len(frames), 1)
            event, message = frames[0]
            self.assertEqual(event, MessageTypes.CHAT_MESSAGE)
            self.assertEqual(message["id"], 0)
            self.assertEqual(message["user"], "alice")
            self.assertEqual(message["text"], "hi")
            self.assertFalse(message["seen"])

    def test_unnamed_connection_reaches_everyone(self):
        """Connections that never set a name still receive broadcasts."""
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.assertEqual(len(drain(self.b)), 1)

    def test_reply_fields_are_kept(self):
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE,
                             {"text": "yes", "replyToId": 4, "replyToText": "really?"})
        (_, message), = drain(self.b)
        self.assertEqual(message["replyToId"], 4)
        self.assertEqual(message["replyToText"], "really?")

    def test_malformed_payload(self):
        self.join(self.a, "alice")
        self.assertIs(self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, "hi"),
                      Outcome.MALFORMED)
        self.assertEqual(len(self.store), 0)

    def test_renamed_author_keeps_old_messages(self):
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.join(self.a, "alicia")
        self.assertEqual(self.store.find(0).user, "alice")


class TestUnboundConnection(EngineTestCase):
    """An unnamed connection must not change any state."""

    async def test_no_mutation_without_name(self):
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.drain_all()

        requests = [
            (MessageTypes.CHAT_MESSAGE, {"text": "sneaky"}),
            (MessageTypes.DELETE_MESSAGE, 0),
            (MessageTypes.EDIT_MESSAGE, {"id": 0, "newText": "x"}),
            (MessageTypes.IMAGE_UPLOAD, {"fileData": PNG_DATA_URI, "fileName": "a.png"}),
        ]
        for event, data in requests:
            self.assertIs(self.engine.dispatch(self.b, event, data), Outcome.UNBOUND)

        await self.engine.wait_for_uploads()
        self.assertEqual([(m.id, m.text) for m in self.store.history()], [(0, "hi")])
        self.assertEqual(self.drain_all(), ([], []))
        self.assertEqual(list(Path(self.tmp.name).iterdir()), [])


class TestDeleteMessage(EngineTestCase):

    def setUp(self):
        super().setUp()
        self.join(self.a, "alice")
        self.join(self.b, "bob")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.drain_all()

    def test_scenario_delete_then_repeat(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.DELETE_MESSAGE, 0)
        self.assertIs(outcome, Outcome.OK)
        for frames in self.drain_all():
            self.assertEqual(frames, [(MessageTypes.DELETE_MESSAGE, 0)])

        outcome = self.engine.dispatch(self.b, MessageTypes.DELETE_MESSAGE, 0)
        self.assertIs(outcome, Outcome.NOT_FOUND)
        self.assertEqual(self.drain_all(), ([], []))

    def test_string_id_is_accepted(self):
        self.assertIs(self.engine.dispatch(self.a, MessageTypes.DELETE_MESSAGE, "0"), Outcome.OK)
        self.assertEqual(drain(self.b), [(MessageTypes.DELETE_MESSAGE, 0)])

    def test_non_author_is_silent(self):
        outcome = self.engine.dispatch(self.b, MessageTypes.DELETE_MESSAGE, 0)
        self.assertIs(outcome, Outcome.NOT_AUTHOR)
        self.assertEqual(self.drain_all(), ([], []))
        self.assertIsNotNone(self.store.find(0))


class TestEditMessage(EngineTestCase):

    def setUp(self):
        super().setUp()
        self.join(self.a, "alice")
        self.join(self.b, "bob")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.drain_all()

    def test_author_edit_is_confirmed_to_all(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.EDIT_MESSAGE, {"id": "0", "newText": "hello"})
        self.assertIs(outcome, Outcome.OK)
        for frames in self.drain_all():
            self.assertEqual(frames, [(MessageTypes.EDIT_CONFIRMED, {"id": 0, "newText": "hello"})])
        self.assertEqual(self.store.find(0).text, "hello")

    def test_non_author_edit_is_silent(self):
        outcome = self.engine.dispatch(self.b, MessageTypes.EDIT_MESSAGE, {"id": 0, "newText": "x"})
        self.assertIs(outcome, Outcome.NOT_AUTHOR)
        self.assertEqual(self.drain_all(), ([], []))
        self.assertEqual(self.store.find(0).text, "hi")

    def test_missing_message(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.EDIT_MESSAGE, {"id": 5, "newText": "x"})
        self.assertIs(outcome, Outcome.NOT_FOUND)
        self.assertEqual(self.drain_all(), ([], []))


class TestMarkSeen(EngineTestCase):

    def test_scenario_seen_flow(self):
        self.join(self.a, "alice")
        self.join(self.b, "bob")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "gone"})
        self.engine.dispatch(self.a, MessageTypes.DELETE_MESSAGE, 0)
        self.drain_all()

        self.assertIs(self.engine.dispatch(self.b, MessageTypes.MARK_SEEN, 0), Outcome.NOT_FOUND)
        self.assertEqual(self.drain_all(), ([], []))

        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.drain_all()

        self.assertIs(self.engine.dispatch(self.b, MessageTypes.MARK_SEEN, 1), Outcome.OK)
        for frames in self.drain_all():
            self.assertEqual(frames, [(MessageTypes.MESSAGE_SEEN, 1)])

        self.assertIs(self.engine.dispatch(self.b, MessageTypes.MARK_SEEN, 1), Outcome.ALREADY_SEEN)
        self.assertEqual(self.drain_all(), ([], []))

    def test_author_cannot_mark_own_message(self):
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.drain_all()

        self.assertIs(self.engine.dispatch(self.a, MessageTypes.MARK_SEEN, 0), Outcome.OWN_MESSAGE)
        self.assertEqual(self.drain_all(), ([], []))
        self.assertFalse(self.store.find(0).seen)

    def test_unnamed_reader_may_mark_seen(self):
        self.join(self.a, "alice")
        self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": "hi"})
        self.drain_all()

        self.assertIs(self.engine.dispatch(self.b, MessageTypes.MARK_SEEN, "0"), Outcome.OK)
        self.assertTrue(self.store.find(0).seen)


class TestTyping(EngineTestCase):

    def test_typing_skips_sender(self):
        third = self.connect("conn-c")
        self.engine.dispatch(self.a, MessageTypes.TYPING, "alice")

        self.assertEqual(drain(self.a), [])
        self.assertEqual(drain(self.b), [(MessageTypes.TYPING, "alice")])
        self.assertEqual(drain(third), [(MessageTypes.TYPING, "alice")])

    def test_stop_typing_relays_payload_verbatim(self):
        self.engine.dispatch(self.b, MessageTypes.STOP_TYPING, "whoever")
        self.assertEqual(drain(self.a), [(MessageTypes.STOP_TYPING, "whoever")])
        self.assertEqual(drain(self.b), [])


class TestImageUpload(EngineTestCase):

    def setUp(self):
        super().setUp()
        self.join(self.a, "alice")
        self.join(self.b, "bob")

    async def test_upload_is_broadcast_after_write(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD,
                                       {"fileData": PNG_DATA_URI, "fileName": "cat.PNG"})
        self.assertIs(outcome, Outcome.PENDING)
        self.assertEqual(len(self.store), 0)

        self.assertEqual(await self.engine.wait_for_uploads(), [Outcome.OK])

        for frames in self.drain_all():
            self.assertEqual(len(frames), 1)
            event, message = frames[0]
            self.assertEqual(event, MessageTypes.CHAT_MESSAGE)
            self.assertEqual(message["user"], "alice")
            self.assertTrue(message["text"].startswith("/uploads/"))
            self.assertTrue(message["text"].endswith(".png"))
            self.assertNotIn("replyToId", message)

        stored = self.uploads.resolve(self.store.find(0).text)
        self.assertIsNotNone(stored)

    async def test_scenario_exe_is_rejected(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD,
                                       {"fileData": PNG_DATA_URI, "fileName": "photo.EXE"})
        self.assertIs(outcome, Outcome.UNSUPPORTED_TYPE)
        self.assertEqual(await self.engine.wait_for_uploads(), [])
        self.assertEqual(len(self.store), 0)
        self.assertEqual(self.drain_all(), ([], []))

    async def test_write_failure_creates_nothing(self):
        with patch.object(self.uploads, 'save', side_effect=UploadError("disk full")):
            outcome = self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD,
                                           {"fileData": PNG_DATA_URI, "fileName": "a.png"})
            self.assertIs(outcome, Outcome.PENDING)
            self.assertEqual(await self.engine.wait_for_uploads(), [Outcome.WRITE_FAILED])

        self.assertEqual(len(self.store), 0)
        self.assertEqual(self.drain_all(), ([], []))

    async def test_missing_fields_are_malformed(self):
        outcome = self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD, {"fileName": "a.png"})
        self.assertIs(outcome, Outcome.MALFORMED)
        self.assertEqual(self.drain_all(), ([], []))

    async def test_uploads_finish_in_completion_order(self):
        """A later upload that finishes first is appended first."""
        gates = [asyncio.Event(), asyncio.Event()]
        started = []

        async def slow_save(pending):
            gate = gates[len(started)]
            started.append(pending.filename)
            await gate.wait()
            return "/uploads/" + pending.filename

        with patch.object(self.uploads, 'save', side_effect=slow_save):
            for name in ("first.png", "second.png"):
                self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD,
                                     {"fileData": PNG_DATA_URI, "fileName": name})
            await settle()
            self.assertEqual(len(started), 2)
            self.assertEqual(len(self.store), 0)

            gates[1].set()
            await settle()
            self.assertEqual([m.text for m in self.store.history()], ["/uploads/" + started[1]])

            gates[0].set()
            await self.engine.wait_for_uploads()

        self.assertEqual([(m.id, m.text) for m in self.store.history()],
                         [(0, "/uploads/" + started[1]), (1, "/uploads/" + started[0])])

    async def test_upload_completes_after_sender_leaves(self):
        self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD,
                             {"fileData": PNG_DATA_URI, "fileName": "a.gif"})
        self.engine.disconnect(self.a)
        await self.engine.wait_for_uploads()

        self.assertEqual(self.store.find(0).user, "alice")
        frames = drain(self.b)
        self.assertEqual([event for event, _ in frames],
                         [MessageTypes.USER_DISCONNECTED, MessageTypes.CHAT_MESSAGE])

    async def test_rename_during_upload_credits_new_name(self):
        """The upload is credited to the name held when the write finishes."""
        gate = asyncio.Event()

        async def slow_save(pending):
            await gate.wait()
            return "/uploads/" + pending.filename

        with patch.object(self.uploads, 'save', side_effect=slow_save):
            self.engine.dispatch(self.a, MessageTypes.IMAGE_UPLOAD,
                                 {"fileData": PNG_DATA_URI, "fileName": "a.png"})
            await settle()
            self.join(self.a, "alicia")
            gate.set()
            await self.engine.wait_for_uploads()

        self.assertEqual(self.store.find(0).user, "alicia")
        event, message = drain(self.b)[-1]
        self.assertEqual(event, MessageTypes.CHAT_MESSAGE)
        self.assertEqual(message["user"], "alicia")


class TestSlowConsumer(EngineTestCase):

    def test_full_outbox_drops_only_that_connection(self):
        slow = Connection("conn-slow", max_pending=3)
        self.engine.connect(slow)
        self.join(self.a, "alice")

        for i in range(5):
            self.engine.dispatch(self.a, MessageTypes.CHAT_MESSAGE, {"text": f"m{i}"})

        self.assertTrue(slow.closed)
        self.assertEqual(slow.outbox.qsize(), 1)
        self.assertIsNone(slow.outbox.get_nowait())

        self.assertEqual(len(drain(self.a)), 5)
        self.assertEqual(len(drain(self.b)), 5)

    def test_send_after_close_is_ignored(self):
        self.a.close()
        self.a.send({"type": MessageTypes.TYPING, "data": "bob"})
        self.assertEqual(self.a.outbox.qsize(), 1)
        self.assertIsNone(self.a.outbox.get_nowait())


class TestDisconnect(EngineTestCase):

    def test_named_disconnect_is_announced(self):
        self.join(self.a, "alice")
        self.assertEqual(self.engine.disconnect(self.a), "alice")
        self.assertEqual(drain(self.b), [(MessageTypes.USER_DISCONNECTED, "alice")])
        self.assertIsNone(self.registry.owner_of("alice"))

    def test_unnamed_disconnect_is_silent(self):
        self.assertIsNone(self.engine.disconnect(self.a))
        self.assertEqual(drain(self.b), [])

    def test_displaced_holder_disconnect_keeps_new_owner(self):
        self.join(self.a, "alice")
        self.join(self.b, "alice")

        self.engine.disconnect(self.a)
        self.assertEqual(self.registry.owner_of("alice"), "conn-b")
        self.assertEqual(drain(self.b), [(MessageTypes.USER_DISCONNECTED, "alice")])

    def test_disconnect_twice(self):
        self.join(self.a, "alice")
        self.engine.disconnect(self.a)
        drain(self.b)
        self.assertIsNone(self.engine.disconnect(self.a))
        self.assertEqual(drain(self.b), [])


class TestUnknownEvent(EngineTestCase):

    def test_unknown_event_is_dropped(self):
        self.assertIs(self.engine.dispatch(self.a, "launch rockets", {}), Outcome.UNKNOWN_EVENT)
        self.assertEqual(self.drain_all(), ([], []))


if __name__ == '__main__':
    unittest.main()
