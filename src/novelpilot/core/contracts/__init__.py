"""Core contracts-domain exports."""

from novelpilot.core.contracts.changes import (
    ChangeSet,
    ChangeSetCounts,
    ChangeSetStats,
    ChangeSetStatus,
    DiffChange,
    DiffResult,
    DiffStats,
    Modification,
    ModificationStatus,
    ModificationType,
)
from novelpilot.core.contracts.config import (
    ApplyMode,
    ModelConfig,
    NovelPilotConfig,
    PlannerSettings,
    StreamSettings,
    WritingSettings,
)
from novelpilot.core.contracts.exceptions import (
    ChangeSetError,
    ConfigError,
    ModelError,
    NovelPilotError,
    ParentDirectoryMissingError,
    PlannerError,
    StreamCancelledError,
    StreamError,
    StreamTimeoutError,
    WorkspaceError,
)
from novelpilot.core.contracts.model import EventSink, ModelService
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.quality import QualityValidator, QualityVerdict
from novelpilot.core.contracts.stream import (
    AssistantVersion,
    ChatItem,
    ChatMessage,
    Role,
    RollbackTurn,
    SendTurnOptions,
    StreamEvent,
    StreamPhase,
)
from novelpilot.core.contracts.task import (
    ContextPack,
    RunQueue,
    SessionState,
    Task,
    TaskPriority,
    TaskStatus,
    WriterMode,
)
from novelpilot.core.contracts.workspace import EditorCursor, FileStore

__all__ = [
    "ApplyMode",
    "AssistantVersion",
    "ChangeSet",
    "ChangeSetCounts",
    "ChangeSetError",
    "ChangeSetStats",
    "ChangeSetStatus",
    "ChatItem",
    "ChatMessage",
    "ConfigError",
    "ContextPack",
    "DiffChange",
    "DiffResult",
    "DiffStats",
    "EditorCursor",
    "EventSink",
    "FileStore",
    "ModelConfig",
    "ModelError",
    "ModelService",
    "Modification",
    "ModificationStatus",
    "ModificationType",
    "NovelPilotConfig",
    "NovelPilotError",
    "NullWriterObserver",
    "ParentDirectoryMissingError",
    "PlannerError",
    "PlannerSettings",
    "QualityValidator",
    "QualityVerdict",
    "Role",
    "RollbackTurn",
    "RunQueue",
    "SendTurnOptions",
    "SessionState",
    "StreamCancelledError",
    "StreamError",
    "StreamEvent",
    "StreamPhase",
    "StreamSettings",
    "StreamTimeoutError",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "WorkspaceError",
    "WriterMode",
    "WriterObserver",
    "WritingSettings",
]
