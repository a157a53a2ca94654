from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Any


class ModelProvider(ABC):
    @abstractmethod
    def stream(
        self,
        model_name: str,
        messages: List[Dict[str, Any]],
    ) -> AsyncIterator[str]:
        """Stream raw text fragments for a given model and chat history"""
        ...

    @abstractmethod
    async def list_models(self) -> Dict[str, List[str]]:
        """Return {"loaded": [...], "available": [...]} model identifiers."""
        ...


class Transport(ABC):
    @abstractmethod
    def open(self, payload: Dict[str, Any], token: Any) -> AsyncIterator[bytes]:
        """Send a chat request and stream the raw response body in chunks.

        Implementations stop delivering chunks once ``token`` is cancelled.
        """
        ...

    async def aclose(self) -> None:
        """Release any pooled connections."""
        return None
