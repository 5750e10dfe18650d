"""
Tests for the conversation orchestrator.
"""

import pytest

from study_chat.client import ChatClient, ChatReply
from study_chat.conversation import ROLE_ASSISTANT, ROLE_USER, Source
from study_chat.errors import ConfirmationRequiredError, SessionBusyError, TransportError
from study_chat.orchestrator import ERROR_REPLY, ConversationOrchestrator, TurnState
from tests.helpers import FIXED_NOW


@pytest.fixture
def mock_client(mocker):
    client = mocker.Mock(spec=ChatClient)
    client.ask.return_value = ChatReply(
        response="Your next exam is the **Algorithms Midterm**.",
        model="models/gemini-1.5-flash",
        sources=[Source("lec-001", "Graphs", "00:15:30", "BFS")],
    )
    return client


@pytest.fixture
def orchestrator(store, mock_client):
    return ConversationOrchestrator(store, mock_client, clock=lambda: FIXED_NOW)


@pytest.mark.unit
class TestSend:
    """One turn from question to persisted reply."""

    def test_blank_message_is_ignored(self, orchestrator, mock_client, sample_snapshot, store):
        assert orchestrator.send("   \n", sample_snapshot) is None

        mock_client.ask.assert_not_called()
        assert len(store) == 0

    def test_first_message_creates_session(self, orchestrator, sample_snapshot, store):
        result = orchestrator.send("When is my next exam?", sample_snapshot)

        assert result.state == TurnState.SUCCESS
        assert len(store) == 1
        session = store.active_session
        assert session.id == result.session_id
        assert session.title == "When is my next exam?"
        assert [m.role for m in session.messages] == [ROLE_USER, ROLE_ASSISTANT]

    def test_reply_carries_sources_and_model(self, orchestrator, sample_snapshot, store):
        result = orchestrator.send("Explain BFS", sample_snapshot)

        assert result.model == "models/gemini-1.5-flash"
        assert result.reply.sources[0].lecture_id == "lec-001"
        assert store.active_session.model_used == "models/gemini-1.5-flash"

    def test_each_send_appends_exactly_two_messages(self, orchestrator, sample_snapshot, store):
        orchestrator.send("first", sample_snapshot)
        orchestrator.send("second", sample_snapshot)

        session = store.active_session
        assert len(store) == 1
        assert [m.content for m in session.messages][::2] == ["first", "second"]
        assert len(session.messages) == 4

    def test_prompt_contains_context_and_question(self, orchestrator, mock_client, sample_snapshot):
        orchestrator.send("What is due?", sample_snapshot)

        prompt = mock_client.ask.call_args[0][0]
        assert prompt.startswith("Context Data:\nCurrent Date: Sat Jan 10 2026")
        assert "User: Alex Chen" in prompt
        assert prompt.endswith("\n\nUser Question: What is due?")

    def test_question_persisted_before_request(self, orchestrator, mock_client, sample_snapshot, store):
        seen = {}

        def ask(prompt):
            reloaded = type(store)(store.path)
            reloaded.load()
            seen["messages"] = [m.content for m in reloaded.sessions[0].messages]
            seen["busy"] = orchestrator.is_busy()
            seen["state"] = orchestrator.state
            return ChatReply(response="ok")

        mock_client.ask.side_effect = ask

        orchestrator.send("Persist me", sample_snapshot)

        assert seen["messages"] == ["Persist me"]
        assert seen["busy"] is True
        assert seen["state"] == TurnState.SENDING
        assert orchestrator.state == TurnState.IDLE
        assert orchestrator.is_busy() is False

    def test_transport_failure_writes_error_reply(self, orchestrator, mock_client, sample_snapshot, store):
        mock_client.ask.side_effect = TransportError("HTTP 500: Failed to connect to AI service.", 500)

        result = orchestrator.send("Hello?", sample_snapshot)

        assert result.state == TurnState.FAILED
        assert result.reply.content == ERROR_REPLY
        assert "500" in result.error
        assert orchestrator.last_state == TurnState.FAILED
        session = store.active_session
        assert [m.content for m in session.messages] == ["Hello?", ERROR_REPLY]
        assert session.model_used is None

    def test_failure_keeps_previous_model_tag(self, orchestrator, mock_client, sample_snapshot, store):
        orchestrator.send("first", sample_snapshot)
        mock_client.ask.side_effect = TransportError("boom")

        orchestrator.send("second", sample_snapshot)

        assert store.active_session.model_used == "models/gemini-1.5-flash"

    def test_reply_without_model_keeps_tag(self, orchestrator, mock_client, sample_snapshot, store):
        orchestrator.send("first", sample_snapshot)
        mock_client.ask.return_value = ChatReply(response="second answer")

        orchestrator.send("second", sample_snapshot)

        assert store.active_session.model_used == "models/gemini-1.5-flash"

    def test_concurrent_send_to_same_session_rejected(self, orchestrator, mock_client, sample_snapshot, store):
        errors = []

        def ask(prompt):
            try:
                orchestrator.send("second while busy", sample_snapshot)
            except SessionBusyError as e:
                errors.append(e)
            return ChatReply(response="ok")

        mock_client.ask.side_effect = ask

        orchestrator.send("first", sample_snapshot)

        assert len(errors) == 1
        assert [m.content for m in store.active_session.messages] == ["first", "ok"]

    def test_session_deleted_mid_turn(self, orchestrator, mock_client, sample_snapshot, store):
        def ask(prompt):
            store.delete_session(store.active_session_id)
            return ChatReply(response="too late")

        mock_client.ask.side_effect = ask

        result = orchestrator.send("q", sample_snapshot)

        assert result.state == TurnState.SUCCESS
        assert len(store) == 0

    def test_overlapping_turns_track_state_per_session(self, orchestrator, mock_client, sample_snapshot, store):
        seen = {}

        def ask(prompt):
            if "first chat" in prompt:
                first_id = store.active_session_id
                orchestrator.new_chat()
                orchestrator.send("second chat", sample_snapshot)
                seen["first"] = orchestrator.state_of(first_id)
                seen["second"] = orchestrator.state_of(store.active_session_id)
                seen["overall"] = orchestrator.state
            return ChatReply(response="ok")

        mock_client.ask.side_effect = ask

        orchestrator.send("first chat", sample_snapshot)

        assert seen == {
            "first": TurnState.SENDING,
            "second": TurnState.IDLE,
            "overall": TurnState.SENDING,
        }
        assert orchestrator.state == TurnState.IDLE
        assert all(len(s.messages) == 2 for s in store.sessions)

    def test_unexpected_error_releases_session(self, orchestrator, mock_client, sample_snapshot):
        mock_client.ask.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            orchestrator.send("q", sample_snapshot)

        assert orchestrator.is_busy() is False
        assert orchestrator.state == TurnState.IDLE


@pytest.mark.unit
class TestNavigation:
    """New chat, open, delete and clear."""

    def test_new_chat_starts_fresh_session(self, orchestrator, sample_snapshot, store):
        orchestrator.send("first chat", sample_snapshot)

        orchestrator.new_chat()
        assert orchestrator.messages == []

        orchestrator.send("second chat", sample_snapshot)
        assert len(store) == 2
        assert store.sessions[0].title == "second chat"

    def test_open_session_continues_it(self, orchestrator, sample_snapshot, store):
        orchestrator.send("first chat", sample_snapshot)
        first_id = store.active_session_id
        orchestrator.new_chat()
        orchestrator.send("second chat", sample_snapshot)

        orchestrator.open_session(first_id)
        orchestrator.send("follow up", sample_snapshot)

        assert len(store.get(first_id).messages) == 4
        assert [s.id for s in store.sessions][1] == first_id

    def test_delete_active_session_resets_view(self, orchestrator, sample_snapshot, store):
        orchestrator.send("q", sample_snapshot)

        orchestrator.delete_session(store.active_session_id)

        assert orchestrator.active_session is None
        assert orchestrator.messages == []

    def test_delete_other_session_keeps_view(self, orchestrator, sample_snapshot, store):
        orchestrator.send("old", sample_snapshot)
        old_id = store.active_session_id
        orchestrator.new_chat()
        orchestrator.send("current", sample_snapshot)
        current_id = store.active_session_id

        orchestrator.delete_session(old_id)

        assert orchestrator.active_session.id == current_id

    def test_clear_history_requires_confirmation(self, orchestrator, sample_snapshot, store):
        orchestrator.send("q", sample_snapshot)

        with pytest.raises(ConfirmationRequiredError):
            orchestrator.clear_history(confirmed=False)

        assert orchestrator.clear_history(confirmed=True) == 1
        assert orchestrator.messages == []
