"""LM Studio provider: streams chat completions from its OpenAI-compatible server."""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from duet_service.core.errors import GenerationFailure
from duet_service.core.interfaces import ModelProvider
from duet_service.core.logging import logger


def _root_url(base_url: str) -> str:
    """Normalise http://host:1234/v1 and http://host:1234/ to http://host:1234."""
    u = (base_url or "").rstrip("/")
    if u.endswith("/v1"):
        u = u[:-3]
    return u.rstrip("/") or "http://localhost:1234"


def _error_text(resp: httpx.Response, body: bytes) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace") or f"HTTP {resp.status_code}"
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        return err.get("message") or f"HTTP {resp.status_code}"
    return str(err or f"HTTP {resp.status_code}")


class LMStudioProvider(ModelProvider):
    def __init__(
        self,
        base_url: str = "http://localhost:1234",
        api_key: str = "",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        connect_timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.root = _root_url(base_url)
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        # no read timeout: a generation runs until it finishes
        self.timeout = httpx.Timeout(connect=connect_timeout, read=None, write=10.0, pool=5.0)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client_or_new(self) -> tuple[httpx.AsyncClient, bool]:
        if self._client is not None:
            return self._client, False
        return httpx.AsyncClient(timeout=self.timeout), True

    async def _stream(self, model_name: str, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        body: Dict[str, Any] = {"model": model_name, "messages": messages, "stream": True}
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens

        client, owned = self._client_or_new()
        try:
            async with client.stream(
                "POST", f"{self.root}/v1/chat/completions", json=body, headers=self._headers()
            ) as resp:
                if resp.status_code >= 400:
                    raw = await resp.aread()
                    raise GenerationFailure(_error_text(resp, raw))
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning(f"LM Studio: skipping undecodable chunk: {data[:80]!r}")
                        continue
                    if chunk.get("error"):
                        raise GenerationFailure(_error_text(resp, data.encode("utf-8")))
                    choices = chunk.get("choices") or []
                    delta = (choices[0].get("delta") or {}) if choices else {}
                    content = delta.get("content")
                    if content:
                        yield content
        except httpx.ConnectError as e:
            raise GenerationFailure(f"connection refused: {e}") from e
        finally:
            if owned:
                await client.aclose()

    def stream(self, model_name: str, messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
        return self._stream(model_name, messages)

    async def list_models(self) -> Dict[str, List[str]]:
        """Query LM Studio's native model listing, which reports load state."""
        client, owned = self._client_or_new()
        try:
            resp = await client.get(f"{self.root}/api/v0/models", headers=self._headers())
            resp.raise_for_status()
            data = resp.json().get("data", [])
        finally:
            if owned:
                await client.aclose()
        available = [m.get("id") for m in data if m.get("type", "llm") in ("llm", "vlm") and m.get("id")]
        loaded = [m.get("id") for m in data if m.get("state") == "loaded" and m.get("id") in available]
        return {"loaded": loaded, "available": available}
