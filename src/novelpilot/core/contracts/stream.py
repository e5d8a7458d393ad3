"""Stream event and conversation contracts."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


class StreamPhase(StrEnum):
    INITIALIZING = "initializing"
    THINKING = "thinking"
    RESPONDING = "responding"
    RETRYING = "retrying"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Role/content pair sent to the model service."""

    role: Role
    content: str


class _StreamEventBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    stream_id: str = Field(validation_alias=AliasChoices("stream_id", "streamId"), min_length=1)


class StreamStart(_StreamEventBase):
    type: Literal["start"] = "start"


class StreamToken(_StreamEventBase):
    type: Literal["token"] = "token"
    token: str


class StreamStatus(_StreamEventBase):
    type: Literal["status"] = "status"
    phase: StreamPhase


class StreamDone(_StreamEventBase):
    type: Literal["done"] = "done"
    cancelled: bool = False


class StreamFailure(_StreamEventBase):
    type: Literal["error"] = "error"
    message: str
    stage: str | None = None
    provider: str | None = None


class StreamChangeSet(_StreamEventBase):
    type: Literal["change_set"] = "change_set"
    change_set: Any = Field(validation_alias=AliasChoices("change_set", "changeSet"))


StreamEvent = Annotated[
    StreamStart | StreamToken | StreamStatus | StreamDone | StreamFailure | StreamChangeSet,
    Field(discriminator="type"),
]

STREAM_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


class AssistantVersion(BaseModel):
    content: str
    change_set_ids: list[str] = Field(default_factory=list)
    cancelled: bool = False
    timestamp: float


class ChatItem(BaseModel):
    """One transcript entry."""

    id: str
    role: Role
    content: str = ""
    streaming: bool = False
    stream_id: str | None = None
    version_group_id: str | None = None
    version_index: int = 0
    version_count: int = 0
    change_set_ids: list[str] = Field(default_factory=list)
    cancelled: bool = False
    phase: StreamPhase | None = None


class RollbackTurn(BaseModel):
    user_message_id: str
    assistant_message_id: str
    stream_id: str
    change_set_ids: list[str] = Field(default_factory=list)


class SendTurnOptions(BaseModel):
    skip_mode_wrap: bool = False
    use_existing_last_user: bool = False
    hide_user_echo: bool = False
    version_group_id: str | None = None
    source_messages: list[ChatItem] | None = None
    agent_id: str | None = None
