"""Public API surface for NovelPilot."""

__version__ = "0.1.0"

from novelpilot.core.autowrite import AutoWriter, AutoWriteReport
from novelpilot.core.changes import ChangeSetManager, compute_diff, diff_to_modifications
from novelpilot.core.config import load_config
from novelpilot.core.contracts.changes import ChangeSet, ChangeSetStatus, Modification, ModificationStatus
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
from novelpilot.core.contracts.model import ModelService
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.quality import QualityValidator, QualityVerdict
from novelpilot.core.contracts.task import RunQueue, SessionState, Task, TaskStatus, WriterMode
from novelpilot.core.contracts.workspace import EditorCursor, FileStore
from novelpilot.core.planner import HeuristicQualityValidator, PlannerService, QueueRunner, QueueRunReport
from novelpilot.core.providers import create_model_service
from novelpilot.core.streams import StreamSessionManager
from novelpilot.core.workspace import LocalFileStore
from novelpilot.sdk import ChatResult, NovelPilot, WorkspaceStatus

__all__ = [
    "ApplyMode",
    "AutoWriteReport",
    "AutoWriter",
    "ChangeSet",
    "ChangeSetError",
    "ChangeSetManager",
    "ChangeSetStatus",
    "ChatResult",
    "ConfigError",
    "EditorCursor",
    "FileStore",
    "HeuristicQualityValidator",
    "LocalFileStore",
    "ModelConfig",
    "ModelError",
    "ModelService",
    "Modification",
    "ModificationStatus",
    "NovelPilot",
    "NovelPilotConfig",
    "NovelPilotError",
    "NullWriterObserver",
    "ParentDirectoryMissingError",
    "PlannerError",
    "PlannerService",
    "PlannerSettings",
    "QualityValidator",
    "QualityVerdict",
    "QueueRunReport",
    "QueueRunner",
    "RunQueue",
    "SessionState",
    "StreamCancelledError",
    "StreamError",
    "StreamSessionManager",
    "StreamSettings",
    "StreamTimeoutError",
    "Task",
    "TaskStatus",
    "WorkspaceError",
    "WorkspaceStatus",
    "WriterMode",
    "WriterObserver",
    "WritingSettings",
    "compute_diff",
    "create_model_service",
    "diff_to_modifications",
    "load_config",
]
