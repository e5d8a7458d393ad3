"""Shared plumbing for HTTP streaming model services."""

from __future__ import annotations

import asyncio
import logging
import os
from abc import abstractmethod
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Any

import httpx

from novelpilot.core.contracts.config import ModelConfig
from novelpilot.core.contracts.exceptions import ModelError
from novelpilot.core.contracts.model import EventSink, ModelService
from novelpilot.core.contracts.stream import ChatMessage
from novelpilot.core.providers._retrying_transport import RetryingTransport

_LOG = logging.getLogger(__name__)

FALLBACK_CHUNK_CHARS = 48
ERROR_BODY_CHARS = 300

EDIT_FORMAT_INSTRUCTIONS = """\
You are a long-form fiction co-writer working inside a project workspace.
When you change a project file, describe the change with file edit blocks:

<file_edit path="stories/chapter-0001.md">
<replace lines="3-5">replacement text</replace>
<insert at="10">new lines inserted before line 10</insert>
<delete lines="12-13" />
</file_edit>

Line numbers are 1-based and refer to the file before your edit. To fill an
empty file use <insert at="1">. Text outside the blocks is shown to the writer."""


def chunk_text(text: str, size: int = FALLBACK_CHUNK_CHARS) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


class HttpModelService(ModelService):
    """Base for services that stream completions over HTTP.

    Subclasses build the request and decode the event stream; this class owns
    the client lifecycle, credential lookup, cancellation and the mapping of
    failures onto error events.
    """

    default_base_url: str = ""
    default_api_key_env: str = ""

    def __init__(self, config: ModelConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._active: dict[str, asyncio.Task[Any]] = {}
        self._cancelled: set[str] = set()

    async def __aenter__(self) -> HttpModelService:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=RetryingTransport(transport=self._transport, max_retries=self._config.max_retries),
                timeout=httpx.Timeout(self._config.timeout),
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        for task in list(self._active.values()):
            task.cancel()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _endpoint(self) -> str: ...  # pragma: no cover

    @abstractmethod
    def _headers(self, api_key: str) -> dict[str, str]: ...  # pragma: no cover

    @abstractmethod
    def _payload(self, messages: list[ChatMessage], *, stream: bool) -> dict[str, Any]: ...  # pragma: no cover

    @abstractmethod
    def _decode_stream(self, response: httpx.Response) -> AsyncIterator[str]:
        """Yield text deltas from a streaming response; raise ``ModelError`` on in-band errors."""
        ...  # pragma: no cover

    @abstractmethod
    def _extract_text(self, body: Any) -> str: ...  # pragma: no cover

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def base_url(self) -> str:
        return (self._config.base_url or self.default_base_url).rstrip("/")

    def _api_key(self) -> str:
        env_name = self._config.api_key_env or self.default_api_key_env
        key = os.environ.get(env_name, "").strip() if env_name else ""
        if not key:
            raise ModelError(
                f"API key is not set (expected environment variable {env_name})", stage="settings", provider=self.name
            )
        if not self._config.model.strip():
            raise ModelError("model name is not configured", stage="settings", provider=self.name)
        return key

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise ModelError(
                "model service is not initialized. Use 'async with'.", stage="settings", provider=self.name
            )
        return self._client

    def _system_prompt(self) -> str:
        return EDIT_FORMAT_INSTRUCTIONS

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        body = (await response.aread()).decode("utf-8", errors="replace")
        message = f"HTTP {response.status_code}: {body[:ERROR_BODY_CHARS]}"
        raise ModelError(message, stage="provider", provider=self.name)

    def _emit_error(self, emit: EventSink, stream_id: str, message: str, stage: str) -> None:
        emit({"type": "error", "streamId": stream_id, "message": message, "stage": stage, "provider": self.name})

    # ------------------------------------------------------------------
    # ModelService
    # ------------------------------------------------------------------

    async def stream_chat(
        self,
        stream_id: str,
        messages: list[ChatMessage],
        emit: EventSink,
        *,
        agent_id: str | None = None,
    ) -> None:
        emit({"type": "start", "streamId": stream_id})
        current = asyncio.current_task()
        if current is not None:
            self._active[stream_id] = current
        emitted = False
        try:
            api_key = self._api_key()
            client = self._require_client()
            emit({"type": "status", "streamId": stream_id, "phase": "thinking"})
            request = client.build_request(
                "POST", self._endpoint(), headers=self._headers(api_key), json=self._payload(messages, stream=True)
            )
            response = await client.send(request, stream=True)
            try:
                await self._raise_for_status(response)
                if response.headers.get("content-type", "").startswith("application/json"):
                    # Backend ignored the stream flag; deliver the whole reply in chunks.
                    text = self._extract_text(await self._read_json(response))
                    for chunk in chunk_text(text):
                        emit({"type": "token", "streamId": stream_id, "token": chunk})
                else:
                    async for delta in self._decode_stream(response):
                        if stream_id in self._cancelled:
                            break
                        if delta:
                            emitted = True
                            emit({"type": "token", "streamId": stream_id, "token": delta})
            finally:
                await response.aclose()
        except ModelError as exc:
            _LOG.debug("%s stream %s failed at %s: %s", self.name, stream_id, exc.stage, exc)
            self._emit_error(emit, stream_id, str(exc), exc.stage)
            return
        except httpx.HTTPError as exc:
            _LOG.debug("%s stream %s transport failure: %s", self.name, stream_id, exc)
            message = str(exc) or type(exc).__name__
            self._emit_error(emit, stream_id, message, "provider")
            return
        except asyncio.CancelledError:
            if stream_id not in self._cancelled:
                raise
            if current is not None:
                current.uncancel()
        finally:
            self._active.pop(stream_id, None)

        cancelled = stream_id in self._cancelled
        self._cancelled.discard(stream_id)
        _LOG.debug("%s stream %s finished (tokens=%s cancelled=%s)", self.name, stream_id, emitted, cancelled)
        emit({"type": "done", "streamId": stream_id, "cancelled": cancelled})

    async def cancel(self, stream_id: str) -> None:
        task = self._active.get(stream_id)
        if task is None:
            return
        self._cancelled.add(stream_id)
        task.cancel()

    async def complete(self, prompt: str) -> str:
        api_key = self._api_key()
        client = self._require_client()
        messages = [ChatMessage(role="user", content=prompt)]
        try:
            response = await client.post(
                self._endpoint(), headers=self._headers(api_key), json=self._payload(messages, stream=False)
            )
        except httpx.HTTPError as exc:
            raise ModelError(str(exc) or type(exc).__name__, stage="provider", provider=self.name) from exc
        await self._raise_for_status(response)
        return self._extract_text(await self._read_json(response))

    async def _read_json(self, response: httpx.Response) -> Any:
        try:
            await response.aread()
            return response.json()
        except ValueError as exc:
            raise ModelError(f"invalid JSON response: {exc}", stage="provider", provider=self.name) from exc
