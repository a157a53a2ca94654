"""
Typed protocol frames exchanged between the chat endpoint and its clients.

Thinking frames carry the cumulative thinking text seen so far, response
frames carry an incremental chunk. ``Complete`` and ``Failure`` are terminal:
a stream ends with exactly one of them.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from duet_service.core.errors import MalformedRecord
from duet_service.core.types import FrameType


def utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass(frozen=True)
class ThinkingDelta:
    content: str
    timestamp: str = field(default_factory=utc_timestamp)
    type = FrameType.THINKING_PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {"type": str(self.type), "content": self.content, "timestamp": self.timestamp}


@dataclass(frozen=True)
class ThinkingFinal:
    content: str
    timestamp: str = field(default_factory=utc_timestamp)
    type = FrameType.THINKING

    def to_dict(self) -> Dict[str, Any]:
        return {"type": str(self.type), "content": self.content, "timestamp": self.timestamp}


@dataclass(frozen=True)
class ResponseDelta:
    content: str
    timestamp: str = field(default_factory=utc_timestamp)
    type = FrameType.RESPONSE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": str(self.type), "content": self.content, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Complete:
    model: str
    full_content: str
    thinking_content: str
    timestamp: str = field(default_factory=utc_timestamp)
    type = FrameType.COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": str(self.type),
            "model": self.model,
            "fullContent": self.full_content,
            "thinkingContent": self.thinking_content,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Failure:
    error: str
    suggestion: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)
    type = FrameType.ERROR

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": str(self.type), "error": self.error}
        if self.suggestion is not None:
            out["suggestion"] = self.suggestion
        out["timestamp"] = self.timestamp
        return out


Frame = Union[ThinkingDelta, ThinkingFinal, ResponseDelta, Complete, Failure]


def is_terminal(frame: Frame) -> bool:
    return isinstance(frame, (Complete, Failure))


def _text(data: Dict[str, Any], key: str, default: Optional[str] = None) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise MalformedRecord(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def frame_from_dict(data: Any) -> Frame:
    """Build a frame from a decoded wire payload, raising MalformedRecord on bad shape."""
    if not isinstance(data, dict):
        raise MalformedRecord(f"record must be a JSON object, got {type(data).__name__}")
    try:
        kind = FrameType(data.get("type"))
    except ValueError:
        raise MalformedRecord(f"unknown frame type: {data.get('type')!r}") from None

    timestamp = _text(data, "timestamp", "")

    if kind is FrameType.THINKING_PARTIAL:
        return ThinkingDelta(content=_text(data, "content", ""), timestamp=timestamp)
    if kind is FrameType.THINKING:
        return ThinkingFinal(content=_text(data, "content", ""), timestamp=timestamp)
    if kind is FrameType.RESPONSE:
        return ResponseDelta(content=_text(data, "content", ""), timestamp=timestamp)
    if kind is FrameType.COMPLETE:
        return Complete(
            model=_text(data, "model", ""),
            full_content=_text(data, "fullContent", ""),
            thinking_content=_text(data, "thinkingContent", ""),
            timestamp=timestamp,
        )
    suggestion = data.get("suggestion")
    if suggestion is not None and not isinstance(suggestion, str):
        raise MalformedRecord("field 'suggestion' must be a string")
    return Failure(error=_text(data, "error"), suggestion=suggestion, timestamp=timestamp)
