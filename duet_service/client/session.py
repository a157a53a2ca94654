"""
Client-side chat session.

``reduce`` is the pure transition function: it folds one decoded frame into
a ``SessionState``. ``ChatSession`` owns the single active stream
consumption, applies ``reduce`` to every frame it receives, and tears the
transport down whenever a new message is sent or the chat is cleared.

Thinking frames replace the pending thinking text wholesale, response frames
append to the pending content. The terminal ``Complete`` frame is
authoritative and overrides whatever was accumulated locally.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from duet_service.core.errors import CancelledByUser, TransportFailure, ValidationError
from duet_service.core.interfaces import Transport
from duet_service.core.logging import logger
from duet_service.core.types import Role
from duet_service.client.decoder import decode_stream
from duet_service.client.transport import CancelToken
from duet_service.protocol.diagnostics import failure_from_exception, render_failure
from duet_service.protocol.frames import (
    Complete,
    Failure,
    Frame,
    ResponseDelta,
    ThinkingDelta,
    ThinkingFinal,
    is_terminal,
    utc_timestamp,
)

STREAM_ENDED_EARLY = "Connection closed before the response completed"


def new_message_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Message:
    id: str
    role: Role
    content: str
    timestamp: str
    thinking_content: Optional[str] = None
    is_streaming: bool = False

    def to_history_item(self) -> Dict[str, str]:
        return {"role": str(self.role), "content": self.content}


@dataclass(frozen=True)
class SessionState:
    messages: Tuple[Message, ...] = ()
    pending: Optional[Message] = None
    error: Optional[str] = None

    @property
    def is_streaming(self) -> bool:
        return self.pending is not None


def begin_exchange(state: SessionState, text: str) -> SessionState:
    """Append the user message and open a fresh pending assistant message."""
    if state.pending is not None:
        raise RuntimeError("a pending message is already active; cancel it first")
    user = Message(id=new_message_id("user"), role=Role.USER, content=text, timestamp=utc_timestamp())
    pending = Message(
        id=new_message_id("streaming"),
        role=Role.ASSISTANT,
        content="",
        timestamp=utc_timestamp(),
        thinking_content="",
        is_streaming=True,
    )
    return SessionState(messages=state.messages + (user,), pending=pending, error=None)


def discard_pending(state: SessionState) -> SessionState:
    return replace(state, pending=None)


def reduce(state: SessionState, frame: Frame) -> SessionState:
    """Fold one frame into the session. Frames with no pending message are ignored."""
    pending = state.pending
    if pending is None:
        return state

    if isinstance(frame, (ThinkingDelta, ThinkingFinal)):
        return replace(state, pending=replace(pending, thinking_content=frame.content))

    if isinstance(frame, ResponseDelta):
        return replace(state, pending=replace(pending, content=pending.content + frame.content))

    if isinstance(frame, Complete):
        final = Message(
            id=new_message_id("msg"),
            role=Role.ASSISTANT,
            content=frame.full_content,
            timestamp=frame.timestamp or utc_timestamp(),
            thinking_content=frame.thinking_content or None,
            is_streaming=False,
        )
        return replace(state, messages=state.messages + (final,), pending=None)

    if isinstance(frame, Failure):
        shown = Message(
            id=new_message_id("error"),
            role=Role.ASSISTANT,
            content=render_failure(frame.error, frame.suggestion),
            timestamp=frame.timestamp or utc_timestamp(),
            is_streaming=False,
        )
        return SessionState(messages=state.messages + (shown,), pending=None, error=frame.error)

    raise TypeError(f"not a frame: {frame!r}")


class ChatSession:
    """One conversation with at most one active stream consumption."""

    def __init__(
        self,
        transport: Transport,
        model: Optional[str] = None,
        on_change: Optional[Callable[[SessionState], None]] = None,
    ):
        self.transport = transport
        self.model = model
        self.state = SessionState()
        self._on_change = on_change
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancelToken] = None
        # serialises cancel-and-start so only one consumption is ever live
        self._lock = asyncio.Lock()

    # --- Observable state ---

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.state.messages

    @property
    def pending(self) -> Optional[Message]:
        return self.state.pending

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    @property
    def is_loading(self) -> bool:
        return self.state.is_streaming

    @property
    def is_ready(self) -> bool:
        return bool(self.model) and not self.is_loading

    def all_messages(self) -> List[Message]:
        """History plus the in-flight message, in display order."""
        out = list(self.state.messages)
        if self.state.pending is not None:
            out.append(self.state.pending)
        return out

    def select_model(self, model: Optional[str]) -> None:
        self.model = model or None

    def set_error(self, error: Optional[str]) -> None:
        self._set_state(replace(self.state, error=error))

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        if self._on_change is not None:
            self._on_change(state)

    # --- Actions ---

    def _validate(self, text: str) -> None:
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")
        if not self.model:
            raise ValidationError("No model selected")

    async def send_message(self, text: str) -> asyncio.Task:
        """Start a new exchange, cancelling any stream still in flight.

        Returns the consumption task; ``wait()`` awaits it without being
        able to cancel it.
        """
        self._validate(text)
        async with self._lock:
            if self._task is not None or self.state.pending is not None:
                logger.info("Session: new message while streaming, cancelling the active stream")
                await self._cancel_active()

            history = [m.to_history_item() for m in self.state.messages]
            self._set_state(begin_exchange(self.state, text))
            payload: Dict[str, Any] = {"message": text, "model": self.model, "chatHistory": history}

            token = CancelToken()
            self._token = token
            self._task = asyncio.create_task(self._consume(payload, token))
            logger.info(f"Session: message sent, model={self.model}, history_len={len(history)}")
            return self._task

    async def _consume(self, payload: Dict[str, Any], token: CancelToken) -> None:
        terminal_seen = False
        try:
            async for frame in decode_stream(self.transport.open(payload, token)):
                token.raise_if_cancelled()
                logger.debug(f"Session: frame {frame.type}")
                terminal_seen = is_terminal(frame)
                self._set_state(reduce(self.state, frame))
            token.raise_if_cancelled()
            if not terminal_seen:
                logger.warning("Session: stream ended without a terminal frame")
                self._set_state(reduce(self.state, failure_from_exception(TransportFailure(STREAM_ENDED_EARLY))))
        except CancelledByUser:
            logger.info("Session: stream consumption cancelled, late frames discarded")
        except TransportFailure as e:
            if not token.cancelled:
                logger.error(f"Session: transport failure: {e}")
                self._set_state(reduce(self.state, failure_from_exception(e)))
        except Exception as e:
            if not token.cancelled:
                logger.exception(f"Session: error while reading stream: {e}")
                self._set_state(reduce(self.state, failure_from_exception(e)))
        finally:
            if self._token is token:
                self._task = None
                self._token = None

    async def cancel(self) -> None:
        """Tear down the active stream and drop the pending message without an error."""
        async with self._lock:
            await self._cancel_active()

    async def _cancel_active(self) -> None:
        task, token = self._task, self._token
        self._task = None
        self._token = None
        if token is not None:
            token.cancel()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        if self.state.pending is not None:
            logger.info("Session: pending message discarded")
            self._set_state(discard_pending(self.state))

    async def clear_chat(self) -> None:
        """Cancel any active stream and reset history, pending message and error."""
        logger.info("Session: clearing chat")
        async with self._lock:
            await self._cancel_active()
            self._set_state(SessionState())

    async def wait(self) -> SessionState:
        """Wait for the active stream, if any, to reach a terminal state."""
        task = self._task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self.state

    async def aclose(self) -> None:
        await self.cancel()
        await self.transport.aclose()
