"""Rich-based writing progress display."""

from __future__ import annotations

import time
from types import TracebackType
from typing import ClassVar

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.progress import TaskID as RichTaskID

from novelpilot.core.contracts.changes import ChangeSet
from novelpilot.core.contracts.observer import WriterObserver
from novelpilot.core.contracts.stream import (
    StreamDone,
    StreamEvent,
    StreamFailure,
    StreamStart,
    StreamStatus,
    StreamToken,
)
from novelpilot.core.contracts.task import Task, TaskStatus, WriterMode
from novelpilot.core.streams import format_elapsed_label


class RichWriterObserver(WriterObserver):
    """Live terminal view of the run queue and the current stream.

    Use as a context manager so the live display is properly started/stopped::

        with RichWriterObserver() as observer:
            pilot = await NovelPilot.from_config(config, observer=observer)
    """

    _PHASE_LABELS: ClassVar[dict[str, str]] = {
        "initializing": "[cyan]Starting[/]",
        "thinking": "[blue]Thinking[/]",
        "responding": "[green]Writing[/]",
        "retrying": "[yellow]Retrying[/]",
    }

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)
        self._progress = Progress(
            SpinnerColumn(finished_text="[green]✓[/green]"),
            TextColumn("{task.description:>14}"),
            BarColumn(bar_width=30),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self._console,
            transient=False,
        )
        self._queue_task: RichTaskID | None = None
        self._stream_task: RichTaskID | None = None
        self._stream_started: float | None = None

    def __enter__(self) -> RichWriterObserver:
        self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._progress.stop()

    def _stream_label(self, phase: str) -> str:
        label = self._PHASE_LABELS.get(phase, phase)
        if self._stream_started is None:
            return label
        return f"{label} {format_elapsed_label(time.monotonic() - self._stream_started)}"

    def stream_event(self, event: StreamEvent) -> None:
        if isinstance(event, StreamStart):
            self._stream_started = time.monotonic()
            if self._stream_task is None:
                self._stream_task = self._progress.add_task(self._stream_label("initializing"), total=None)
            else:
                self._progress.reset(self._stream_task, description=self._stream_label("initializing"), total=None)
            return
        if self._stream_task is None:
            return
        if isinstance(event, StreamStatus):
            self._progress.update(self._stream_task, description=self._stream_label(event.phase.value))
        elif isinstance(event, StreamToken):
            self._progress.update(self._stream_task, description=self._stream_label("responding"))
        elif isinstance(event, StreamDone):
            self._progress.update(self._stream_task, total=1, completed=1)
        elif isinstance(event, StreamFailure):
            self._progress.update(self._stream_task, description="[red]✗[/red]     Stream")
            self._console.print(f"[red]stream error:[/red] {event.message}")

    def queue_changed(self, mode: WriterMode, tasks: list[Task]) -> None:
        done = sum(1 for task in tasks if task.status is TaskStatus.DONE)
        label = f"[magenta]{mode.value.capitalize()} queue[/]"
        if self._queue_task is None:
            self._queue_task = self._progress.add_task(label, total=len(tasks), completed=done)
        else:
            self._progress.update(self._queue_task, description=label, total=len(tasks), completed=done)

    def change_set_changed(self, change_set: ChangeSet) -> None:
        self._console.print(
            f"[dim]{change_set.file_path}: {change_set.status.value} "
            f"(+{change_set.stats.additions} -{change_set.stats.deletions})[/dim]"
        )

    def status_changed(self, message: str) -> None:
        self._console.print(f"[bold]{message}[/bold]")


__all__ = ["RichWriterObserver"]
