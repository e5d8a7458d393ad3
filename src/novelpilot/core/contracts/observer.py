"""Observer interface for pipeline snapshots.

This is instrumentation, not a collaborator contract. The stream manager,
change-set manager and planner publish snapshots here; consumers (e.g. the
CLI's Rich view) implement ``WriterObserver`` to render feedback.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from novelpilot.core.contracts.changes import ChangeSet
from novelpilot.core.contracts.stream import StreamEvent
from novelpilot.core.contracts.task import Task, WriterMode


class WriterObserver(ABC):
    @abstractmethod
    def stream_event(self, event: StreamEvent) -> None:
        """A validated stream event was applied."""
        ...  # pragma: no cover

    @abstractmethod
    def queue_changed(self, mode: WriterMode, tasks: list[Task]) -> None:
        """The run queue was persisted with *tasks* in stored order."""
        ...  # pragma: no cover

    @abstractmethod
    def change_set_changed(self, change_set: ChangeSet) -> None:
        """A change set was created, reviewed or rolled back."""
        ...  # pragma: no cover

    @abstractmethod
    def status_changed(self, message: str) -> None:
        """A loop reported a human-readable status line."""
        ...  # pragma: no cover


class NullWriterObserver(WriterObserver):
    """No-op implementation used when nobody is watching."""

    def stream_event(self, event: StreamEvent) -> None:
        pass

    def queue_changed(self, mode: WriterMode, tasks: list[Task]) -> None:
        pass

    def change_set_changed(self, change_set: ChangeSet) -> None:
        pass

    def status_changed(self, message: str) -> None:
        pass
