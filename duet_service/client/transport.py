import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from duet_service.core.config import load_settings
from duet_service.core.errors import CancelledByUser, TransportFailure
from duet_service.core.interfaces import Transport
from duet_service.core.logging import logger

CHAT_PATH = "/api/v1/chat"


class CancelToken:
    """Cooperative cancellation flag checked at every chunk boundary."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledByUser("stream consumption cancelled")


def _failure_from_response(status_code: int, raw: bytes) -> TransportFailure:
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return TransportFailure(str(data["error"]), suggestion=data.get("suggestion") or None)
    return TransportFailure(f"Chat request failed with HTTP {status_code}")


class HttpTransport(Transport):
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:3000",
        connect_timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = base_url.rstrip("/") + CHAT_PATH
        # streams have no read timeout; they end on a terminal frame or cancellation
        self.timeout = httpx.Timeout(connect=connect_timeout, read=None, write=10.0, pool=5.0)
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls,
        cfg: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "HttpTransport":
        """Build a transport from the `client` block of the settings."""
        if cfg is None:
            cfg = load_settings()
        client_cfg = cfg.get("client", {}) or {}
        return cls(
            base_url=client_cfg.get("base_url", "http://127.0.0.1:3000"),
            connect_timeout=float(client_cfg.get("connect_timeout", 5.0)),
            client=client,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def open(self, payload: Dict[str, Any], token: CancelToken) -> AsyncIterator[bytes]:
        client = self._get_client()
        try:
            async with client.stream("POST", self.url, json=payload) as resp:
                if resp.status_code >= 400:
                    raw = await resp.aread()
                    logger.error(f"Transport: chat endpoint returned HTTP {resp.status_code}")
                    raise _failure_from_response(resp.status_code, raw)
                async for chunk in resp.aiter_bytes():
                    if token.cancelled:
                        logger.info("Transport: cancellation requested, closing response")
                        return
                    yield chunk
        except httpx.HTTPError as e:
            raise TransportFailure(str(e) or type(e).__name__) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
