import json

from duet_service.protocol.frames import Frame

RECORD_PREFIX = "data: "
RECORD_TERMINATOR = "\n\n"


class SseEmitter:
    """Emitter producing one text/event-stream record per frame"""

    def emit(self, frame: Frame) -> bytes:
        payload = json.dumps(frame.to_dict(), ensure_ascii=False, separators=(",", ":"))
        # lone surrogates cannot be encoded; replace rather than drop the frame
        return f"{RECORD_PREFIX}{payload}{RECORD_TERMINATOR}".encode("utf-8", errors="replace")


_default_emitter = SseEmitter()


def encode(frame: Frame) -> bytes:
    return _default_emitter.emit(frame)
