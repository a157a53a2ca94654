from duet_service.client.decoder import DecoderState, FrameDecoder, decode, decode_stream
from duet_service.client.session import ChatSession, Message, SessionState, reduce
from duet_service.client.transport import CancelToken, HttpTransport

__all__ = [
    "CancelToken",
    "ChatSession",
    "DecoderState",
    "FrameDecoder",
    "HttpTransport",
    "Message",
    "SessionState",
    "decode",
    "decode_stream",
    "reduce",
]
