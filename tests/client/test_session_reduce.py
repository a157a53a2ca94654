import pytest

from duet_service.client.session import (
    Message,
    SessionState,
    begin_exchange,
    discard_pending,
    reduce,
)
from duet_service.core.types import Role
from duet_service.protocol.frames import (
    Complete,
    Failure,
    ResponseDelta,
    ThinkingDelta,
    ThinkingFinal,
)


@pytest.fixture
def streaming():
    return begin_exchange(SessionState(), "question")


class TestBeginExchange:
    def test_appends_user_and_opens_pending(self, streaming):
        assert [m.role for m in streaming.messages] == [Role.USER]
        assert streaming.messages[0].content == "question"
        assert streaming.messages[0].id.startswith("user-")
        pending = streaming.pending
        assert pending.role is Role.ASSISTANT
        assert pending.content == ""
        assert pending.thinking_content == ""
        assert pending.is_streaming
        assert streaming.is_streaming

    def test_clears_previous_error(self):
        state = begin_exchange(SessionState(error="old"), "q")
        assert state.error is None

    def test_refuses_second_pending(self, streaming):
        with pytest.raises(RuntimeError):
            begin_exchange(streaming, "again")


class TestReduce:
    def test_response_deltas_append(self, streaming):
        state = reduce(streaming, ResponseDelta("Hel"))
        state = reduce(state, ResponseDelta("lo"))
        assert state.pending.content == "Hello"

    def test_thinking_frames_replace(self, streaming):
        state = reduce(streaming, ThinkingDelta("a"))
        state = reduce(state, ThinkingDelta("ab"))
        assert state.pending.thinking_content == "ab"
        state = reduce(state, ThinkingFinal("final"))
        assert state.pending.thinking_content == "final"

    def test_reduce_does_not_mutate_input(self, streaming):
        reduce(streaming, ResponseDelta("x"))
        assert streaming.pending.content == ""

    def test_complete_is_authoritative(self, streaming):
        state = reduce(streaming, ResponseDelta("partial"))
        state = reduce(state, ThinkingDelta("local"))
        state = reduce(
            state, Complete(model="m", full_content="the whole answer", thinking_content="why", timestamp="t9")
        )
        assert state.pending is None
        assert not state.is_streaming
        final = state.messages[-1]
        assert final == Message(
            id=final.id,
            role=Role.ASSISTANT,
            content="the whole answer",
            timestamp="t9",
            thinking_content="why",
            is_streaming=False,
        )
        assert final.id.startswith("msg-")

    def test_complete_without_thinking_stores_none(self, streaming):
        state = reduce(streaming, Complete(model="m", full_content="a", thinking_content=""))
        assert state.messages[-1].thinking_content is None

    def test_failure_synthesizes_error_message(self, streaming):
        state = reduce(streaming, ResponseDelta("half"))
        state = reduce(state, Failure("connection refused", suggestion="start the server"))
        assert state.pending is None
        assert state.error == "connection refused"
        shown = state.messages[-1]
        assert shown.role is Role.ASSISTANT
        assert shown.content == "Error: connection refused\nstart the server"
        assert shown.id.startswith("error-")
        assert not shown.is_streaming
        assert [m.role for m in state.messages] == [Role.USER, Role.ASSISTANT]

    def test_frames_after_terminal_are_ignored(self, streaming):
        state = reduce(streaming, Complete(model="m", full_content="done", thinking_content=""))
        after = reduce(state, ResponseDelta("late"))
        after = reduce(after, Failure("late error"))
        assert after is state

    def test_idle_state_ignores_frames(self):
        idle = SessionState()
        assert reduce(idle, ResponseDelta("x")) is idle

    def test_rejects_non_frames(self, streaming):
        with pytest.raises(TypeError):
            reduce(streaming, {"type": "response"})


def test_discard_pending_keeps_history(streaming):
    state = discard_pending(streaming)
    assert state.pending is None
    assert state.messages == streaming.messages


def test_history_item():
    msg = Message(id="x", role=Role.ASSISTANT, content="hi", timestamp="t")
    assert msg.to_history_item() == {"role": "assistant", "content": "hi"}
