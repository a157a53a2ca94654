"""
Decoder tests: arbitrary chunk boundaries, malformed records, and the
hard stop after a terminal frame.
"""
import pytest

from duet_service.client.decoder import DecoderState, FrameDecoder, decode, decode_stream, parse_line
from duet_service.protocol.frames import (
    Complete,
    Failure,
    ResponseDelta,
    ThinkingDelta,
    ThinkingFinal,
)
from duet_service.protocol.orchestration.emitter import encode

FRAMES = [
    ResponseDelta("Hello ", timestamp="t1"),
    ThinkingDelta("reasoning ✓", timestamp="t2"),
    ThinkingDelta("reasoning ✓ more", timestamp="t3"),
    ThinkingFinal("reasoning ✓ more", timestamp="t4"),
    ResponseDelta("multi\nline {json: \"ish\"}", timestamp="t5"),
    Complete(model="m", full_content="Hello multi", thinking_content="reasoning", timestamp="t6"),
]
WIRE = b"".join(encode(f) for f in FRAMES)


def _chunks(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestDecode:
    @pytest.mark.parametrize("size", [1, 2, 3, 7, 16, 64, len(WIRE)])
    def test_any_chunking_yields_same_frames(self, size):
        decoder = FrameDecoder()
        out = []
        for chunk in _chunks(WIRE, size):
            out.extend(decoder.feed(chunk))
        assert out == FRAMES
        assert decoder.done

    def test_pure_decode_threads_state(self):
        first, state = decode(WIRE[:10], DecoderState())
        assert first == []
        assert state.buffer == WIRE[:10].decode("utf-8")
        rest, state = decode(WIRE[10:], state)
        assert rest == FRAMES
        assert state.done

    def test_multibyte_character_split_across_chunks(self):
        record = encode(ResponseDelta("é", timestamp="t"))
        cut = record.index("é".encode("utf-8")) + 1
        decoder = FrameDecoder()
        assert decoder.feed(record[:cut]) == []
        assert decoder.feed(record[cut:]) == [ResponseDelta("é", timestamp="t")]

    def test_incomplete_tail_is_kept(self):
        decoder = FrameDecoder()
        decoder.feed(b'data: {"type":"response","content":"x","timestamp":"t"}\n\ndata: {"type":')
        assert decoder.leftover == 'data: {"type":'

    def test_malformed_record_does_not_stop_stream(self):
        wire = (
            encode(ResponseDelta("a", timestamp="t"))
            + b"data: {not json\n\n"
            + b'data: {"type":"mystery","timestamp":"t"}\n\n'
            + encode(ResponseDelta("b", timestamp="t"))
        )
        frames = FrameDecoder().feed(wire)
        assert frames == [ResponseDelta("a", timestamp="t"), ResponseDelta("b", timestamp="t")]

    def test_deeply_nested_record_is_skipped(self):
        wire = (
            b"data: " + b"[" * 200_000 + b"\n\n"
            + encode(Complete(model="m", full_content="ok", thinking_content="", timestamp="t"))
        )
        frames = FrameDecoder().feed(wire)
        assert [f.type for f in frames] == ["complete"]

    def test_foreign_lines_are_skipped(self):
        wire = b": keep-alive\nevent: ping\n\n" + encode(ResponseDelta("a", timestamp="t"))
        assert FrameDecoder().feed(wire) == [ResponseDelta("a", timestamp="t")]

    def test_crlf_line_endings(self):
        wire = b'data: {"type":"response","content":"a","timestamp":"t"}\r\n\r\n'
        assert FrameDecoder().feed(wire) == [ResponseDelta("a", timestamp="t")]

    def test_nothing_after_terminal_frame(self):
        wire = encode(Failure("stop", timestamp="t")) + encode(ResponseDelta("late", timestamp="t"))
        decoder = FrameDecoder()
        assert decoder.feed(wire) == [Failure("stop", timestamp="t")]
        assert decoder.feed(encode(ResponseDelta("later", timestamp="t"))) == []

    def test_parse_line(self):
        assert parse_line("") is None
        assert parse_line("id: 4") is None
        assert parse_line('data: {"type":"thinking","content":"x","timestamp":"t"}') == ThinkingFinal(
            "x", timestamp="t"
        )


class _Source:
    """Async chunk source that records whether it was released."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.served = 0
        self.closed = False

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        try:
            for chunk in self.chunks:
                self.served += 1
                yield chunk
        finally:
            self.closed = True


@pytest.mark.anyio
async def test_decode_stream_releases_source_after_terminal():
    source = _Source([encode(ResponseDelta("a", timestamp="t")), encode(Failure("x", timestamp="t")), b"never"])
    agen = source._gen()
    frames = [f async for f in decode_stream(agen)]
    assert frames == [ResponseDelta("a", timestamp="t"), Failure("x", timestamp="t")]
    assert source.served == 2
    assert source.closed


@pytest.mark.anyio
async def test_decode_stream_accepts_plain_async_iterables():
    frames = [f async for f in decode_stream(_Source(_chunks(WIRE, 5)))]
    assert frames == FRAMES
