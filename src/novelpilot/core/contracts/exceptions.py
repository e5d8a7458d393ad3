"""Exception hierarchy for NovelPilot."""

from __future__ import annotations


class NovelPilotError(Exception):
    """Base exception for all NovelPilot errors."""


class ConfigError(NovelPilotError):
    """Configuration loading or validation failure."""


class WorkspaceError(NovelPilotError):
    """Workspace file store operation failure."""


class ParentDirectoryMissingError(WorkspaceError):
    """A file could not be created because its parent directory does not exist."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path


class ChangeSetError(NovelPilotError):
    """Change-set lookup, review or apply failure."""


class StreamError(NovelPilotError):
    """A generation stream failed or could not be awaited."""


class StreamTimeoutError(StreamError):
    """A stream did not settle within the allowed time."""


class StreamCancelledError(StreamError):
    """A stream was cancelled before it could produce a result."""


class ModelError(NovelPilotError):
    """Model service failure.

    *stage* is one of ``settings``, ``provider`` or ``agent`` and mirrors the
    stage reported on the stream error event.
    """

    def __init__(self, message: str, *, stage: str = "agent", provider: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.provider = provider


class PlannerError(NovelPilotError):
    """Planner queue or artifact failure."""
