import unittest

from streamchat.client.models import DRAFT, ChatKey, ConversationKey, MessageRole, MessageStatus
from streamchat.client.session_store import SessionStore
from streamchat.errors import PlaceholderConflictError, StatusRegressionError


class SessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._store = SessionStore()
        self._store.selected_user_id = "u1"
        self._store.reset()

    def test_reset_starts_composing_new(self) -> None:
        self.assertTrue(self._store.composing_new)
        self.assertIsNone(self._store.selected_key)
        self.assertEqual(DRAFT, self._store.active_key())
        self.assertTrue(self._store.has(DRAFT))

    def test_active_key_prefers_selection(self) -> None:
        self._store.select(ChatKey("c1"))
        self.assertEqual(ChatKey("c1"), self._store.active_key())
        self.assertFalse(self._store.composing_new)

    def test_no_active_key_without_selection_or_draft(self) -> None:
        self._store.composing_new = False
        self.assertIsNone(self._store.active_key())

    def test_get_history_returns_copy(self) -> None:
        self._store.append_message(DRAFT, MessageRole.USER, "hi")
        history = self._store.get_history(DRAFT)
        history.clear()
        self.assertEqual(1, len(self._store.get_history(DRAFT)))

    def test_only_one_placeholder_per_conversation(self) -> None:
        self._store.add_placeholder(DRAFT)
        with self.assertRaises(PlaceholderConflictError):
            self._store.add_placeholder(DRAFT)
        in_flight = [m for m in self._store.get_history(DRAFT) if m.status.in_flight]
        self.assertEqual(1, len(in_flight))

    def test_placeholder_starts_pending_and_empty(self) -> None:
        placeholder = self._store.add_placeholder(DRAFT)
        self.assertEqual(MessageStatus.PENDING, placeholder.status)
        self.assertEqual("", placeholder.content)
        self.assertEqual(MessageRole.ASSISTANT, placeholder.role)
        self.assertEqual(placeholder.id, self._store.pending_placeholder_id(DRAFT))

    def test_empty_delta_keeps_pending(self) -> None:
        self._store.add_placeholder(DRAFT)
        self._store.apply_delta(DRAFT, "")
        self.assertEqual(MessageStatus.PENDING, self._store.get_history(DRAFT)[-1].status)

    def test_apply_delta_appends_and_starts_streaming(self) -> None:
        self._store.add_placeholder(DRAFT)
        self._store.apply_delta(DRAFT, "Hel")
        self._store.apply_delta(DRAFT, "lo")
        entry = self._store.get_history(DRAFT)[-1]
        self.assertEqual("Hello", entry.content)
        self.assertEqual(MessageStatus.STREAMING, entry.status)

    def test_apply_delta_without_placeholder_is_noop(self) -> None:
        self._store.append_message(DRAFT, MessageRole.USER, "hi")
        self._store.apply_delta(DRAFT, "x")
        self.assertEqual(["hi"], [m.content for m in self._store.get_history(DRAFT)])

    def test_resolve_placeholder_completes_entry(self) -> None:
        self._store.add_placeholder(DRAFT)
        self._store.apply_delta(DRAFT, "Hel")
        self.assertTrue(self._store.resolve_placeholder(DRAFT, "Hello!"))
        entry = self._store.get_history(DRAFT)[-1]
        self.assertEqual("Hello!", entry.content)
        self.assertEqual(MessageStatus.COMPLETE, entry.status)
        self.assertIsNotNone(entry.timestamp)
        self.assertIsNone(self._store.pending_placeholder_id(DRAFT))

    def test_second_resolve_changes_nothing(self) -> None:
        self._store.add_placeholder(DRAFT)
        self.assertTrue(self._store.resolve_placeholder(DRAFT, "first"))
        before = self._store.get_history(DRAFT)
        self.assertFalse(self._store.resolve_placeholder(DRAFT, "second"))
        self.assertEqual(before, self._store.get_history(DRAFT))

    def test_resolve_without_placeholder_returns_false(self) -> None:
        self.assertFalse(self._store.resolve_placeholder(DRAFT, "x"))

    def test_resolve_when_placeholder_vanished(self) -> None:
        self._store.add_placeholder(DRAFT)
        self._store.get_conversation(DRAFT).history.clear()
        self.assertFalse(self._store.resolve_placeholder(DRAFT, "x"))
        self.assertIsNone(self._store.pending_placeholder_id(DRAFT))

    def test_clear_placeholder_is_idempotent(self) -> None:
        self._store.append_message(DRAFT, MessageRole.USER, "q")
        self._store.add_placeholder(DRAFT)
        self._store.clear_placeholder(DRAFT)
        self._store.clear_placeholder(DRAFT)
        self.assertEqual(["q"], [m.content for m in self._store.get_history(DRAFT)])
        self.assertIsNone(self._store.pending_placeholder_id(DRAFT))

    def test_completed_entry_stays_complete(self) -> None:
        self._store.add_placeholder(DRAFT)
        self._store.resolve_placeholder(DRAFT, "done")
        conversation = self._store.get_conversation(DRAFT)
        conversation.pending_placeholder_id = conversation.history[-1].id
        self._store.apply_delta(DRAFT, "more")
        self.assertEqual(MessageStatus.COMPLETE, conversation.history[-1].status)

    def test_status_regression_is_rejected(self) -> None:
        from streamchat.client.session_store import _advance

        entry = self._store.append_message(DRAFT, MessageRole.ASSISTANT, "x", status=MessageStatus.STREAMING)
        with self.assertRaises(StatusRegressionError):
            _advance(entry, MessageStatus.PENDING)

    def test_migrate_moves_history_placeholder_and_flag(self) -> None:
        self._store.append_message(DRAFT, MessageRole.USER, "q")
        placeholder = self._store.add_placeholder(DRAFT)
        self._store.set_sending(DRAFT, True)

        new_key = self._store.migrate(DRAFT, ChatKey("c1"))

        self.assertEqual(ChatKey("c1"), new_key)
        self.assertFalse(self._store.has(DRAFT))
        self.assertEqual(["q", ""], [m.content for m in self._store.get_history(new_key)])
        self.assertEqual(placeholder.id, self._store.pending_placeholder_id(new_key))
        self.assertTrue(self._store.is_sending(new_key))
        self.assertFalse(self._store.is_sending(DRAFT))
        self.assertEqual(new_key, self._store.selected_key)
        self.assertFalse(self._store.composing_new)

    def test_migrate_keeps_existing_selection(self) -> None:
        self._store.select(ChatKey("other"))
        self._store.append_message(DRAFT, MessageRole.USER, "q")
        self._store.migrate(DRAFT, ChatKey("c1"))
        self.assertEqual(ChatKey("other"), self._store.selected_key)

    def test_migrate_same_key_is_noop(self) -> None:
        key = ChatKey("c1")
        self._store.append_message(key, MessageRole.USER, "q")
        self.assertEqual(key, self._store.migrate(key, ChatKey("c1")))
        self.assertEqual(1, len(self._store.get_history(key)))

    def test_migrate_to_none_returns_old_key(self) -> None:
        self.assertEqual(DRAFT, self._store.migrate(DRAFT, None))
        self.assertTrue(self._store.has(DRAFT))

    def test_set_history_replaces_and_drops_placeholder(self) -> None:
        key = ChatKey("c1")
        self._store.add_placeholder(key)
        self._store.set_history(key, [])
        self.assertEqual([], self._store.get_history(key))
        self.assertIsNone(self._store.pending_placeholder_id(key))

    def test_reset_clears_everything(self) -> None:
        key = ChatKey("c1")
        self._store.append_message(key, MessageRole.USER, "q")
        self._store.set_sending(key, True)
        self._store.select(key)
        self._store.reset()
        self.assertFalse(self._store.has(key))
        self.assertFalse(self._store.is_sending(key))
        self.assertEqual(DRAFT, self._store.active_key())

    def test_chat_key_rejects_empty_id(self) -> None:
        with self.assertRaises(ValueError):
            ChatKey("")

    def test_draft_key_is_singleton(self) -> None:
        from streamchat.client.models import DraftKey

        self.assertIs(DRAFT, DraftKey())
        self.assertIsNone(DRAFT.chat_id)
        self.assertTrue(DRAFT.is_draft)

    def test_conversation_key_covers_both_variants(self) -> None:
        self.assertIsInstance(DRAFT, ConversationKey)
        self.assertIsInstance(ChatKey("c1"), ConversationKey)
        self.assertNotIsInstance("c1", ConversationKey)


if __name__ == "__main__":
    unittest.main()
