"""
Incremental decoder for the chat event stream.

Byte chunks may split records, lines, JSON payloads and even multi-byte
characters anywhere; only complete lines are decoded. Lines without the
``data: `` prefix are skipped, as are records that fail to parse. Decoding
stops for good once a terminal frame has been produced.
"""
from __future__ import annotations

import codecs
import json
from contextlib import aclosing, nullcontext
from dataclasses import dataclass, replace
from typing import AsyncIterable, AsyncIterator, List, Optional, Tuple

from duet_service.core.errors import MalformedRecord
from duet_service.core.logging import logger
from duet_service.protocol.frames import Frame, frame_from_dict, is_terminal
from duet_service.protocol.orchestration.emitter import RECORD_PREFIX


@dataclass(frozen=True)
class DecoderState:
    buffer: str = ""
    pending_bytes: bytes = b""
    done: bool = False


def parse_line(line: str) -> Optional[Frame]:
    """Decode one complete line; None for lines that are not records."""
    if not line.startswith(RECORD_PREFIX):
        return None
    data = json.loads(line[len(RECORD_PREFIX):])
    return frame_from_dict(data)


def _utf8(data: bytes) -> Tuple[str, bytes]:
    dec = codecs.getincrementaldecoder("utf-8")(errors="replace")
    text = dec.decode(data, final=False)
    leftover, _ = dec.getstate()
    return text, leftover


def decode(chunk: bytes, state: DecoderState) -> Tuple[List[Frame], DecoderState]:
    """Feed one byte chunk; return the frames it completes and the new state."""
    if state.done:
        return [], state

    text, pending = _utf8(state.pending_bytes + chunk)
    lines = (state.buffer + text).split("\n")
    tail = lines.pop()

    frames: List[Frame] = []
    for line in lines:
        line = line.rstrip("\r")
        try:
            frame = parse_line(line)
        except (ValueError, RecursionError, MalformedRecord) as e:
            logger.warning(f"Decoder: skipping malformed record: {e}; line={line[:100]!r}")
            continue
        if frame is None:
            continue
        frames.append(frame)
        if is_terminal(frame):
            return frames, DecoderState(done=True)

    return frames, replace(state, buffer=tail, pending_bytes=pending)


class FrameDecoder:
    """Stateful wrapper around ``decode`` for callers that own one stream."""

    def __init__(self):
        self.state = DecoderState()

    @property
    def done(self) -> bool:
        return self.state.done

    @property
    def leftover(self) -> str:
        return self.state.buffer

    def feed(self, chunk: bytes) -> List[Frame]:
        frames, self.state = decode(chunk, self.state)
        return frames


async def decode_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[Frame]:
    """Yield frames from a chunk stream, releasing the source after the terminal frame."""
    decoder = FrameDecoder()
    if hasattr(chunks, "aclose"):
        source = aclosing(chunks)
    else:
        source = nullcontext(chunks)
    async with source as it:
        async for chunk in it:
            for frame in decoder.feed(chunk):
                yield frame
            if decoder.done:
                logger.debug("Decoder: terminal frame received, releasing transport")
                break

