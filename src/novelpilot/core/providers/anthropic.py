"""Anthropic messages API client."""

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

API_VERSION = "2023-06-01"


class AnthropicModelService(HttpModelService):
    name = "anthropic"
    default_base_url = "https://api.anthropic.com"
    default_api_key_env = "ANTHROPIC_API_KEY"

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1/messages"

    def _headers(self, api_key: str) -> dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": API_VERSION}

    def _payload(self, messages: list[ChatMessage], *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "system": self._system_prompt(),
            "messages": [{"role": message.role.value, "content": message.content} for message in messages],
            "max_tokens": self._config.max_tokens,
            "stream": stream,
        }
        if self._config.temperature is not None:
            payload["temperature"] = self._config.temperature
        return payload

    async def _decode_stream(self, response: httpx.Response) -> AsyncIterator[str]:
        async for event in iter_sse(response):
            try:
                data = json.loads(event.data)
            except json.JSONDecodeError:
                _LOG.debug("skipping non-JSON SSE event %s", event.event)
                continue
            if not isinstance(data, dict):
                continue
            kind = data.get("type", event.event)
            if kind == "error":
                error = data.get("error") or {}
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise ModelError(message or "provider reported an error", stage="provider", provider=self.name)
            if kind == "message_stop":
                return
            if kind == "content_block_delta":
                delta = data.get("delta") or {}
                if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str):
                    yield delta["text"]

    def _extract_text(self, body: Any) -> str:
        if not isinstance(body, dict) or not isinstance(body.get("content"), list):
            raise ModelError("unexpected messages response shape", stage="provider", provider=self.name)
        return "".join(
            block.get("text", "")
            for block in body["content"]
            if isinstance(block, dict) and block.get("type") == "text"
        )
