"""Tests for RichWriterObserver and NullWriterObserver."""

from __future__ import annotations

import io

from rich.console import Console

from novelpilot.cli.progress.rich import RichWriterObserver
from novelpilot.core.contracts.changes import ChangeSet, ChangeSetStats, ChangeSetStatus
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.stream import (
    StreamDone,
    StreamFailure,
    StreamPhase,
    StreamStart,
    StreamStatus,
    StreamToken,
)
from novelpilot.core.contracts.task import Task, TaskStatus, WriterMode


def _observer() -> tuple[RichWriterObserver, io.StringIO]:
    buffer = io.StringIO()
    return RichWriterObserver(Console(file=buffer, force_terminal=False, width=120)), buffer


def _tasks(done: int, total: int) -> list[Task]:
    return [
        Task(id=f"task-{i:04d}", title=f"第{i}章", status=TaskStatus.DONE if i <= done else TaskStatus.TODO)
        for i in range(1, total + 1)
    ]


class TestNullWriterObserver:
    """NullWriterObserver is a no-op implementation."""

    def test_implements_interface(self) -> None:
        assert issubclass(NullWriterObserver, WriterObserver)

    def test_callbacks_are_noop(self) -> None:
        observer = NullWriterObserver()
        observer.stream_event(StreamStart(stream_id="s1"))
        observer.queue_changed(WriterMode.PLAN, [])
        observer.change_set_changed(ChangeSet(id="cs-1", timestamp=0, file_path="stories/chapter-0001.md"))
        observer.status_changed("Auto stopped.")


class TestRichWriterObserver:
    """RichWriterObserver drives Rich progress rows."""

    def test_implements_interface(self) -> None:
        assert issubclass(RichWriterObserver, WriterObserver)

    def test_context_manager(self) -> None:
        observer, _ = _observer()
        with observer as entered:
            assert entered is observer

    def test_stream_lifecycle(self) -> None:
        observer, _ = _observer()
        with observer:
            observer.stream_event(StreamStart(stream_id="s1"))
            observer.stream_event(StreamStatus(stream_id="s1", phase=StreamPhase.THINKING))
            observer.stream_event(StreamToken(stream_id="s1", token="雨"))
            observer.stream_event(StreamDone(stream_id="s1"))
            observer.stream_event(StreamStart(stream_id="s2"))

    def test_events_before_start_are_ignored(self) -> None:
        observer, buffer = _observer()
        with observer:
            observer.stream_event(StreamToken(stream_id="s1", token="x"))
            observer.stream_event(StreamFailure(stream_id="s1", message="boom"))

        assert "boom" not in buffer.getvalue()

    def test_failure_is_printed(self) -> None:
        observer, buffer = _observer()
        with observer:
            observer.stream_event(StreamStart(stream_id="s1"))
            observer.stream_event(StreamFailure(stream_id="s1", message="provider unreachable"))

        assert "stream error: provider unreachable" in buffer.getvalue()

    def test_queue_progress_is_updated_in_place(self) -> None:
        observer, _ = _observer()
        with observer:
            observer.queue_changed(WriterMode.SPEC, _tasks(0, 3))
            observer.queue_changed(WriterMode.SPEC, _tasks(2, 3))

    def test_change_sets_and_statuses_are_printed(self) -> None:
        observer, buffer = _observer()
        change_set = ChangeSet(
            id="cs-1",
            timestamp=0,
            file_path="stories/chapter-0001.md",
            status=ChangeSetStatus.ACCEPTED,
            stats=ChangeSetStats(additions=4, deletions=1),
        )
        with observer:
            observer.change_set_changed(change_set)
            observer.status_changed("Auto advanced to stories/chapter-0002.md (chapter 2)")

        out = buffer.getvalue()
        assert "stories/chapter-0001.md: accepted (+4 -1)" in out
        assert "Auto advanced to stories/chapter-0002.md (chapter 2)" in out
