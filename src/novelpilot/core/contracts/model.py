"""Model service adapter contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from types import TracebackType
from typing import Any

from novelpilot.core.contracts.stream import ChatMessage

EventSink = Callable[[Any], None]
"""Side channel receiving loosely-typed event payloads keyed by ``streamId``."""


class ModelService(ABC):
    """Opaque generation backend.

    ``stream_chat`` reports progress only through *emit*: a start event, status
    events, token events, and exactly one terminal done or error event. It must
    not raise for backend failures; those become error events.
    """

    name: str = "model"

    @abstractmethod
    async def __aenter__(self) -> ModelService: ...  # pragma: no cover

    @abstractmethod
    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...  # pragma: no cover

    @abstractmethod
    async def stream_chat(
        self,
        stream_id: str,
        messages: list[ChatMessage],
        emit: EventSink,
        *,
        agent_id: str | None = None,
    ) -> None: ...  # pragma: no cover

    @abstractmethod
    async def cancel(self, stream_id: str) -> None: ...  # pragma: no cover

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Single non-streaming completion; raises ``ModelError`` on failure."""
        ...  # pragma: no cover
