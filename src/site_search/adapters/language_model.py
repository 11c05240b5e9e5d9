"""Language model port and its OpenAI-compatible chat-completions adapter.

Every enrichment stage (understanding, ranking, overview, suggestions) talks
to the model through :class:`AbstractLanguageModel`, so tests can swap in a
scripted fake and deployments can point at any compatible endpoint.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
import logging
from typing import Any

import httpx

from site_search.domain.errors import LanguageModelError
from site_search.observability.metrics import EXTERNAL_CALL_LATENCY, track_latency


logger = logging.getLogger(__name__)

Message = dict[str, str]


class AbstractLanguageModel(ABC):
    """Abstract chat-style language model."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.4,
        max_tokens: int | None = None,
        json_mode: bool = False,
        operation: str = "completion",
    ) -> str:
        """Return the assistant text for ``messages``.

        Raises:
            LanguageModelError: On timeout, transport error, non-2xx status or
                a response without assistant content.
        """
        raise NotImplementedError

    async def complete_json(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.3,
        max_tokens: int | None = None,
        operation: str = "completion",
    ) -> dict[str, Any]:
        """Return the assistant reply parsed as a JSON object."""
        text = await self.complete(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
            operation=operation,
        )
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise LanguageModelError(f"malformed JSON from language model: {exc}") from exc
        if not isinstance(payload, dict):
            raise LanguageModelError(f"expected a JSON object, got {type(payload).__name__}")
        return payload

    async def close(self) -> None:
        """Optional hook for releasing network resources."""

        return


class ChatCompletionsClient(AbstractLanguageModel):
    """Client for an OpenAI-compatible ``/chat/completions`` endpoint (Groq by default)."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        timeout_seconds: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._api_key = api_key.strip()
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0))
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.4,
        max_tokens: int | None = None,
        json_mode: bool = False,
        operation: str = "completion",
    ) -> str:
        if not self._api_key:
            raise LanguageModelError("language model API key is not configured")

        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            with track_latency(EXTERNAL_CALL_LATENCY, service="language_model", operation=operation):
                response = await self._get_client().post(
                    f"{self.base_url}/chat/completions",
                    json=body,
                    headers=headers,
                    timeout=self._timeout,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as exc:
            raise LanguageModelError(f"{operation} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise LanguageModelError(f"{operation} failed with HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise LanguageModelError(f"{operation} transport error: {exc.__class__.__name__}") from exc
        except ValueError as exc:
            raise LanguageModelError(f"{operation} returned a non-JSON body") from exc

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LanguageModelError(f"{operation} response had no assistant message") from exc
        if not isinstance(content, str):
            raise LanguageModelError(f"{operation} response content was not text")
        return content
