"""OpenAI-compatible chat completions client."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from novelpilot.core.contracts.exceptions import ModelError
from novelpilot.core.contracts.stream import ChatMessage
from novelpilot.core.providers._sse import iter_sse
from novelpilot.core.providers.base import HttpModelService

_LOG = logging.getLogger(__name__)

_DONE_SENTINEL = "[DONE]"


class OpenAIModelService(HttpModelService):
    """Streams ``/chat/completions``; works with any server speaking the OpenAI wire format."""

    name = "openai"
    default_base_url = "https://api.openai.com/v1"
    default_api_key_env = "OPENAI_API_KEY"

    def _endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def _payload(self, messages: list[ChatMessage], *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": [{"role": "system", "content": self._system_prompt()}]
            + [{"role": message.role.value, "content": message.content} for message in messages],
            "max_tokens": self._config.max_tokens,
            "stream": stream,
        }
        if self._config.temperature is not None:
            payload["temperature"] = self._config.temperature
        return payload

    async def _decode_stream(self, response: httpx.Response) -> AsyncIterator[str]:
        async for event in iter_sse(response):
            if event.data.strip() == _DONE_SENTINEL:
                return
            try:
                chunk = json.loads(event.data)
            except json.JSONDecodeError:
                _LOG.debug("skipping non-JSON SSE chunk")
                continue
            if not isinstance(chunk, dict):
                continue
            error = chunk.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise ModelError(message or "provider reported an error", stage="provider", provider=self.name)
            for choice in chunk.get("choices") or []:
                delta = choice.get("delta") or {}
                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield content

    def _extract_text(self, body: Any) -> str:
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ModelError("unexpected completion response shape", stage="provider", provider=self.name) from exc
        return content if isinstance(content, str) else ""
