"""OpenRouter provider: streams chat completions through the OpenRouter API."""

import asyncio
import httpx
import json
import logging
from typing import List, Dict, Any, Optional, Callable

from .base import CompletionClient, CompletionError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(CompletionClient):
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        connection_timeout: float = 30.0,
        max_tokens: int = 4000,
        max_retries: int = 0,
        retry_backoff_factor: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        # Read timeout is unbounded: callers bound each task as a whole.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=connection_timeout, read=None, write=60.0, pool=60.0),
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": "LLM Council",
        }

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        on_chunk: Optional[Callable[[str], None]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if not self.api_key:
            raise CompletionError(model, "OPENROUTER_API_KEY is not set")

        emitted = False

        def forward(delta: str) -> None:
            nonlocal emitted
            emitted = True
            if on_chunk:
                on_chunk(delta)

        attempt = 0
        while True:
            try:
                return await self._stream(model, messages, forward, temperature)
            except CompletionError as e:
                # A partially streamed answer cannot be retried without duplicating text.
                if emitted or attempt >= self.max_retries:
                    raise
                wait_time = self.retry_backoff_factor * (2 ** attempt)
                logger.warning("Retry %d for %s in %.1fs: %s", attempt + 1, model, wait_time, e)
                attempt += 1
                await asyncio.sleep(wait_time)

    async def _stream(
        self,
        model: str,
        messages: List[Dict[str, str]],
        forward: Callable[[str], None],
        temperature: Optional[float],
    ) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
            "max_tokens": self.max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        content_buffer = ""
        try:
            async with self._client.stream(
                "POST", f"{self.base_url}/chat/completions",
                headers=self._headers(), json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise CompletionError(
                        model, f"OpenRouter API error {response.status_code}: {body[:500]}"
                    )
                async for line in response.aiter_lines():
                    if not line or not line.startswith("data: "):
                        continue
                    data_str = line[6:].strip()
                    if data_str == "[DONE]":
                        break
                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(data, dict):
                        continue
                    if data.get("error"):
                        error = data["error"]
                        message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                        raise CompletionError(model, f"upstream error: {message}")
                    choices = data.get("choices") or [{}]
                    choice = choices[0] if isinstance(choices, list) else None
                    delta = (choice.get("delta") or {}) if isinstance(choice, dict) else None
                    if not isinstance(delta, dict):
                        raise CompletionError(model, "malformed stream chunk")
                    content_delta = delta.get("content") or ""
                    if not isinstance(content_delta, str):
                        raise CompletionError(model, "malformed stream chunk")
                    if content_delta:
                        content_buffer += content_delta
                        forward(content_delta)
        except httpx.HTTPError as e:
            raise CompletionError(model, f"transport error: {e}") from e

        return content_buffer

    async def aclose(self) -> None:
        await self._client.aclose()
