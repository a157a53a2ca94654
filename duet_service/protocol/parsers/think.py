from dataclasses import dataclass
from enum import StrEnum
from typing import AsyncIterable, AsyncIterator, List, Tuple

from duet_service.core.logging import logger
from duet_service.protocol.diagnostics import describe_generation_error
from duet_service.protocol.frames import (
    Complete,
    Failure,
    Frame,
    ResponseDelta,
    ThinkingDelta,
    ThinkingFinal,
)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


class ScanMode(StrEnum):
    OUTSIDE = "outside-thinking"
    INSIDE = "inside-thinking"


@dataclass
class ClassifierState:
    mode: ScanMode = ScanMode.OUTSIDE
    buffer: str = ""
    response: str = ""
    thinking: str = ""


class ThinkClassifier:
    """
    Splits raw model fragments into thinking and response frames.

    - Delimiters are matched within a single fragment; a delimiter split
      across two fragments is not recognised and stays in the text.
    - Each fragment carries at most one phase transition.
    - Thinking frames carry the whole open span so far, response frames
      carry only the new text.
    """

    def __init__(self, think_open: str = THINK_OPEN, think_close: str = THINK_CLOSE):
        if not think_open or not think_close:
            raise ValueError("thinking delimiters must be non-empty")
        self.think_open = think_open
        self.think_close = think_close
        self.state = ClassifierState()

    def reset(self) -> None:
        self.state = ClassifierState()

    def feed(self, fragment: str) -> List[Frame]:
        frames: List[Frame] = []
        if not fragment:
            return frames
        st = self.state

        if st.mode is ScanMode.OUTSIDE:
            idx = fragment.find(self.think_open)
            if idx != -1:
                before = fragment[:idx]
                if before:
                    st.response += before
                    frames.append(ResponseDelta(before))
                st.buffer += fragment[idx + len(self.think_open):]
                st.mode = ScanMode.INSIDE
                logger.debug("Classifier: entering thinking span")
                if st.buffer:
                    frames.append(ThinkingDelta(st.buffer))
            else:
                st.response += fragment
                frames.append(ResponseDelta(fragment))
            return frames

        idx = fragment.find(self.think_close)
        if idx != -1:
            st.buffer += fragment[:idx]
            st.thinking = st.buffer
            st.buffer = ""
            st.mode = ScanMode.OUTSIDE
            logger.debug(f"Classifier: thinking span closed, length={len(st.thinking)}")
            frames.append(ThinkingFinal(st.thinking))
            after = fragment[idx + len(self.think_close):]
            if after:
                st.response += after
                frames.append(ResponseDelta(after))
        else:
            st.buffer += fragment
            frames.append(ThinkingDelta(st.buffer))
        return frames

    def finalize(self, model: str) -> Complete:
        """Build the terminal frame and reset scanning state for the next request."""
        st = self.state
        if st.mode is ScanMode.INSIDE:
            logger.warning(f"Classifier: stream ended inside an open thinking span, dropped {len(st.buffer)} chars")
        frame = Complete(model=model, full_content=st.response, thinking_content=st.thinking)
        self.reset()
        return frame

    async def classify(self, fragments: AsyncIterable[str], model: str) -> AsyncIterator[Frame]:
        """Classify a whole fragment stream, ending with exactly one terminal frame."""
        self.reset()
        try:
            async for fragment in fragments:
                for frame in self.feed(fragment):
                    yield frame
        except Exception as e:
            logger.exception(f"Generation source failed: model={model}, error={e}")
            self.reset()
            error, suggestion = describe_generation_error(e)
            yield Failure(error=error, suggestion=suggestion)
            return
        yield self.finalize(model)


def classify(
    fragments: AsyncIterable[str],
    model: str,
    think_open: str = THINK_OPEN,
    think_close: str = THINK_CLOSE,
) -> AsyncIterator[Frame]:
    """Classify fragments with a fresh per-request classifier."""
    return ThinkClassifier(think_open, think_close).classify(fragments, model)


def extract_thinking_content(
    text: str, think_open: str = THINK_OPEN, think_close: str = THINK_CLOSE
) -> Tuple[str, str]:
    """Split a complete text into (thinking, response) stripped parts."""
    start = text.find(think_open)
    end = text.find(think_close)
    if start == -1 or end == -1 or start > end:
        return "", text
    thinking = text[start + len(think_open):end]
    response = text[:start] + text[end + len(think_close):]
    return thinking.strip(), response.strip()
