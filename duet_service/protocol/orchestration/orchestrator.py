from typing import Any, AsyncGenerator, Dict, List

from duet_service.core.interfaces import ModelProvider
from duet_service.core.logging import logger
from duet_service.protocol.diagnostics import describe_generation_error
from duet_service.protocol.frames import Failure
from duet_service.protocol.orchestration.emitter import SseEmitter
from duet_service.protocol.parsers.think import ThinkClassifier


def build_messages(history: List[Dict[str, Any]], message: str) -> List[Dict[str, Any]]:
    """Replay prior chat turns and append the new user message."""
    messages = [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in history or []]
    messages.append({"role": "user", "content": message})
    return messages


async def orchestrate(
    message: str,
    model_name: str,
    history: List[Dict[str, Any]],
    provider: ModelProvider,
    classifier: ThinkClassifier,
) -> AsyncGenerator[bytes, None]:
    """
    Core pipeline: history -> provider fragments -> classifier frames -> SSE records.
    Always ends with exactly one terminal record.
    """
    emitter = SseEmitter()
    messages = build_messages(history, message)
    logger.info(f"Orchestration started: model_name={model_name}, history_len={len(history or [])}")

    try:
        fragments = provider.stream(model_name=model_name, messages=messages)
    except Exception as e:
        # provider refused to start a stream at all
        logger.exception(f"Provider stream could not start: model_name={model_name}, error={e}")
        error, suggestion = describe_generation_error(e)
        yield emitter.emit(Failure(error=error, suggestion=suggestion))
        return

    frames_out = 0
    outcome = None
    async for frame in classifier.classify(fragments, model_name):
        logger.debug(f"Classifier frame: {frame.type}")
        frames_out += 1
        outcome = frame.type
        yield emitter.emit(frame)

    logger.info(f"Orchestration complete: model_name={model_name}, frames={frames_out}, outcome={outcome}")
