from typing import Any, AsyncGenerator, Dict, List, Optional

from duet_service.core.interfaces import ModelProvider
from duet_service.protocol.parsers.think import THINK_CLOSE, THINK_OPEN, ThinkClassifier


class GenerationService:
    def __init__(
        self,
        provider: ModelProvider,
        think_open: str = THINK_OPEN,
        think_close: str = THINK_CLOSE,
    ):
        """Initialize with a model provider and the thinking delimiters"""
        self.provider = provider
        self.think_open = think_open
        self.think_close = think_close

    async def stream(
        self, message: str, model_name: str, history: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncGenerator[bytes, None]:
        """Drive the orchestration to stream SSE record bytes"""
        from duet_service.protocol.orchestration.orchestrator import orchestrate

        # classifier state is per request
        classifier = ThinkClassifier(self.think_open, self.think_close)
        async for chunk in orchestrate(
            message=message,
            model_name=model_name,
            history=history or [],
            provider=self.provider,
            classifier=classifier,
        ):
            yield chunk

    # --- Model Management ---

    async def list_models(self) -> Dict[str, List[str]]:
        """Lists loaded and available models from the provider."""
        return await self.provider.list_models()
