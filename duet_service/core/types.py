from enum import StrEnum


class FrameType(StrEnum):
    THINKING_PARTIAL = "thinking_partial"
    THINKING = "thinking"
    RESPONSE = "response"
    COMPLETE = "complete"
    ERROR = "error"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
