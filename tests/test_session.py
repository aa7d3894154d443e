"""Tests for the session controller."""

import asyncio
from unittest.mock import patch

import pytest

from inkbot.core import ConnectionState, Message
from inkbot.errors import StorageError, ValidationError
from inkbot.session import create_controller
from inkbot.store import ConversationStore

BACKEND_URL = "http://backend.test"


def contents(controller):
    return [(m.role, m.content) for m in controller.messages]


@pytest.fixture
def saved_controller(stored_conversations, storage_path, backend_transport):
    """A controller whose store already holds two conversations."""
    return create_controller(storage_path, base_url=BACKEND_URL, transport=backend_transport)


class TestSubmitTurn:
    @pytest.mark.asyncio
    async def test_successful_turn(self, controller):
        reply = await controller.submit_turn("Hi")
        assert reply == Message("assistant", "Hello")
        assert contents(controller) == [("user", "Hi"), ("assistant", "Hello")]
        assert controller.connection.state is ConnectionState.CONNECTED
        assert controller.state.phase == "active-unsaved"

    @pytest.mark.asyncio
    async def test_history_excludes_new_message(self, controller, backend):
        await controller.submit_turn("Hi")
        await controller.submit_turn("Again")
        assert backend.requests[0]["history"] == []
        assert backend.requests[1]["history"] == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self, controller, backend):
        with pytest.raises(ValidationError):
            await controller.submit_turn("  \n ")
        assert controller.messages == []
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_http_500_appends_diagnostic(self, controller, backend):
        backend.chat_status = 500
        reply = await controller.submit_turn("Hi")
        assert controller.connection.state is ConnectionState.ERROR
        assert len(controller.messages) == 2
        assert controller.messages[0] == Message("user", "Hi")
        assert reply.role == "assistant"
        assert BACKEND_URL in reply.content
        assert "status: 500" in reply.content
        assert f"{BACKEND_URL}/api/health" in reply.content

    @pytest.mark.asyncio
    async def test_backend_error_appends_diagnostic(self, controller, backend):
        backend.reply = {"status": "error", "error": "Quota exceeded"}
        reply = await controller.submit_turn("Hi")
        assert "Quota exceeded" in reply.content
        assert contents(controller)[0] == ("user", "Hi")

    @pytest.mark.asyncio
    async def test_unreachable_backend_keeps_user_message(self, storage_path, unreachable_transport):
        controller = create_controller(storage_path, base_url="http://down.test", transport=unreachable_transport)
        reply = await controller.submit_turn("Hi")
        assert [m.role for m in controller.messages] == ["user", "assistant"]
        assert "http://down.test" in reply.content
        assert controller.connection.state is ConnectionState.ERROR
        assert not controller.busy

    @pytest.mark.asyncio
    async def test_unusable_url_appends_diagnostic(self, storage_path):
        controller = create_controller(storage_path, base_url="http://localhost:99999")
        reply = await controller.submit_turn("Hi")
        assert [m.role for m in controller.messages] == ["user", "assistant"]
        assert reply.content.startswith("❌ Connection Error:")
        assert "http://localhost:99999" in reply.content
        assert controller.connection.state is ConnectionState.ERROR
        assert not controller.busy

    @pytest.mark.asyncio
    async def test_second_turn_rejected_while_first_pending(self, controller, backend):
        backend.gate = asyncio.Event()
        first = asyncio.create_task(controller.submit_turn("first"))
        while not backend.requests:
            await asyncio.sleep(0)

        assert controller.busy
        assert await controller.submit_turn("second") is None
        assert contents(controller) == [("user", "first")]

        backend.gate.set()
        await first
        assert not controller.busy
        assert contents(controller) == [("user", "first"), ("assistant", "Hello")]
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_turns_continue_after_save(self, controller):
        await controller.submit_turn("Hi")
        record = controller.save()
        await controller.submit_turn("More")
        assert controller.active_id == record.id
        assert len(controller.messages) == 4


class TestSave:
    @pytest.mark.asyncio
    async def test_first_save_creates_record(self, controller, storage_path):
        await controller.submit_turn("Hi")
        record = controller.save()
        assert controller.active_id == record.id
        assert controller.state.phase == "active-saved"
        assert record.title == "Hi..."
        assert record.messages == controller.messages
        assert ConversationStore(storage_path).get(record.id) == record

    @pytest.mark.asyncio
    async def test_second_save_updates_not_duplicates(self, controller):
        await controller.submit_turn("Hi")
        first = controller.save()
        second = controller.save()
        assert first.id == second.id
        assert len(controller.saved_conversations()) == 1

    @pytest.mark.asyncio
    async def test_resave_keeps_title_and_refreshes_messages(self, controller, backend):
        await controller.submit_turn("Original question")
        first = controller.save()
        backend.reply = {"status": "ok", "response": "Second answer"}
        await controller.submit_turn("Follow up")
        with patch("inkbot.session.derive_title", return_value="should not be used"):
            second = controller.save()
        assert second.title == first.title == "Original question..."
        assert len(second.messages) == 4
        assert controller.store.get(first.id).messages[-1].content == "Second answer"

    def test_title_truncated_to_fifty(self, controller):
        long_text = "x" * 30 + "y" * 50
        controller.state.messages.append(Message("user", long_text))
        record = controller.save()
        assert record.title == long_text[:50] + "..."

    def test_empty_transcript_cannot_be_saved(self, controller):
        with pytest.raises(ValidationError):
            controller.save()
        assert controller.saved_conversations() == []

    def test_new_records_are_prepended(self, controller):
        controller.state.messages.append(Message("user", "first"))
        first = controller.save()
        controller.start_new()
        controller.state.messages.append(Message("user", "second"))
        second = controller.save()
        assert [r.id for r in controller.saved_conversations()] == [second.id, first.id]

    def test_minted_ids_do_not_collide(self, controller):
        with patch("inkbot.session.time.time", return_value=1737000000.0):
            controller.state.messages.append(Message("user", "one"))
            one = controller.save()
            controller.start_new()
            controller.state.messages.append(Message("user", "two"))
            two = controller.save()
        assert one.id == "1737000000000"
        assert two.id == "1737000000001"

    def test_storage_failure_leaves_session_unsaved(self, controller):
        controller.state.messages.append(Message("user", "Hi"))
        with patch("inkbot.store.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(StorageError):
                controller.save()
        assert controller.active_id is None
        assert controller.saved_conversations() == []


class TestLoadAndDelete:
    @pytest.mark.asyncio
    async def test_save_then_load_round_trip(self, controller):
        await controller.submit_turn("Hi")
        await controller.submit_turn("Tell me more")
        record = controller.save()
        expected = controller.messages

        controller.start_new()
        assert controller.state.phase == "empty"
        controller.load(controller.store.get(record.id))

        assert controller.messages == expected
        assert controller.active_id == record.id

    def test_load_discards_unsaved_changes(self, saved_controller):
        controller = saved_controller
        controller.state.messages.append(Message("user", "draft"))
        record = controller.load_by_id("1736900000000")
        assert controller.active_id == record.id
        assert len(controller.messages) == 4

    def test_load_unknown_id(self, controller):
        with pytest.raises(KeyError):
            controller.load_by_id("missing")

    def test_loaded_transcript_is_independent_of_record(self, saved_controller):
        controller = saved_controller
        record = controller.load_by_id("1737000000000")
        controller.state.messages.append(Message("user", "extra"))
        assert len(record.messages) == 2

    def test_delete_active_resets_session(self, saved_controller):
        controller = saved_controller
        controller.load_by_id("1737000000000")
        controller.delete("1737000000000")
        assert controller.active_id is None
        assert controller.messages == []
        assert [r.id for r in controller.saved_conversations()] == ["1736900000000"]

    def test_delete_other_keeps_session(self, saved_controller):
        controller = saved_controller
        controller.load_by_id("1737000000000")
        controller.delete("1736900000000")
        assert controller.active_id == "1737000000000"
        assert len(controller.messages) == 2

    def test_delete_twice_is_noop(self, saved_controller):
        controller = saved_controller
        controller.delete("1736900000000")
        controller.delete("1736900000000")
        assert len(controller.saved_conversations()) == 1

    def test_start_new(self, controller):
        controller.state.messages.append(Message("user", "Hi"))
        controller.start_new()
        assert controller.state.phase == "empty"


class TestConnectionAndExport:
    @pytest.mark.asyncio
    async def test_check_connection_uses_current_base_url(self, controller, backend):
        assert await controller.check_connection() is ConnectionState.CONNECTED
        backend.health_status = 500
        assert await controller.check_connection() is ConnectionState.ERROR

    def test_base_url_is_normalized(self, controller):
        controller.base_url = " http://other.test/ "
        assert controller.base_url == "http://other.test"

    @pytest.mark.asyncio
    async def test_export_text(self, controller):
        await controller.submit_turn("Hi")
        assert controller.export_text() == "USER: Hi\n\nASSISTANT: Hello"

    def test_export_empty_rejected(self, controller):
        with pytest.raises(ValidationError):
            controller.export_text()
