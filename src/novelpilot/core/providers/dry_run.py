"""In-memory dry-run model service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import TracebackType

from novelpilot.core.contracts.model import EventSink, ModelService
from novelpilot.core.contracts.stream import ChatMessage
from novelpilot.core.providers.base import chunk_text

DEFAULT_REPLY = "(dry-run) no reply configured."


@dataclass(frozen=True)
class DryRunOperation:
    """Deterministic dry-run operation log entry."""

    sequence: int
    name: str
    stream_id: str | None
    payload: dict[str, str]


class DryRunModelService(ModelService):
    """Model service that replays scripted replies without network calls.

    Streamed replies cycle through *replies*; ``complete`` returns an empty
    string so plan generation falls back to the built-in plan.
    """

    name = "dry-run"

    def __init__(self, replies: list[str] | None = None) -> None:
        self._replies = list(replies or [])
        self._reply_index = 0
        self._cancelled: set[str] = set()
        self._operation_counter = 0
        self._operations: list[DryRunOperation] = []

    @property
    def operations(self) -> tuple[DryRunOperation, ...]:
        return tuple(self._operations)

    def _record_operation(self, name: str, stream_id: str | None, payload: dict[str, str] | None = None) -> None:
        self._operation_counter += 1
        self._operations.append(
            DryRunOperation(
                sequence=self._operation_counter,
                name=name,
                stream_id=stream_id,
                payload=payload or {},
            )
        )

    def _next_reply(self) -> str:
        if not self._replies:
            return DEFAULT_REPLY
        reply = self._replies[self._reply_index % len(self._replies)]
        self._reply_index += 1
        return reply

    async def __aenter__(self) -> DryRunModelService:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

    async def stream_chat(
        self,
        stream_id: str,
        messages: list[ChatMessage],
        emit: EventSink,
        *,
        agent_id: str | None = None,
    ) -> None:
        self._record_operation("stream_chat", stream_id, {"messages": str(len(messages)), "agent_id": agent_id or ""})
        emit({"type": "start", "streamId": stream_id})
        emit({"type": "status", "streamId": stream_id, "phase": "thinking"})
        for chunk in chunk_text(self._next_reply()):
            await asyncio.sleep(0)
            if stream_id in self._cancelled:
                break
            emit({"type": "token", "streamId": stream_id, "token": chunk})
        cancelled = stream_id in self._cancelled
        self._cancelled.discard(stream_id)
        emit({"type": "done", "streamId": stream_id, "cancelled": cancelled})

    async def cancel(self, stream_id: str) -> None:
        self._record_operation("cancel", stream_id)
        self._cancelled.add(stream_id)

    async def complete(self, prompt: str) -> str:
        self._record_operation("complete", None, {"prompt_chars": str(len(prompt))})
        return ""
