import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

from duet_service.core.errors import GenerationFailure
from duet_service.core.interfaces import ModelProvider

DEFAULT_SCRIPT = ["<think>", "The user said hello.", " A short greeting fits.", "</think>", "Hello", " there!"]


class DummyProvider(ModelProvider):
    def __init__(
        self,
        fragments: Optional[List[str]] = None,
        delay: float = 0.0,
        fail_after: Optional[int] = None,
        fail_message: str = "dummy generation failed",
        models: Optional[List[str]] = None,
    ):
        """Replays a fixed fragment script, optionally failing part way"""
        self.fragments = list(fragments) if fragments is not None else list(DEFAULT_SCRIPT)
        self.delay = delay
        self.fail_after = fail_after
        self.fail_message = fail_message
        self.models = models or ["dummy-model-1", "dummy-model-2"]
        self.calls: List[Dict[str, Any]] = []

    async def _stream(self, model_name: str, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i >= self.fail_after:
                raise GenerationFailure(self.fail_message)
            if self.delay:
                await asyncio.sleep(self.delay)
            yield fragment
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            raise GenerationFailure(self.fail_message)

    def stream(self, model_name: str, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        self.calls.append({"model_name": model_name, "messages": messages})
        return self._stream(model_name, messages)

    async def list_models(self) -> Dict[str, List[str]]:
        """First model reports as loaded, the rest as available."""
        return {"loaded": self.models[:1], "available": list(self.models)}
