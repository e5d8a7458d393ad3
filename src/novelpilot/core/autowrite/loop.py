"""Auto-write control loop.

Each round measures the active chapter, then either asks the model for the
next chunk of prose or, once the chapter reaches its target, settles the
chapter (task completion check in plan/spec mode, chapter advance in normal
mode). The loop ends on a final status line rather than an exception unless
something outside the quality gate fails.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from novelpilot.core.autowrite.prompts import completion_check_prompt, write_round_prompt
from novelpilot.core.contracts.config import WritingSettings
from novelpilot.core.contracts.exceptions import PlannerError, StreamCancelledError, WorkspaceError
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.quality import QualityValidator
from novelpilot.core.contracts.stream import SendTurnOptions
from novelpilot.core.contracts.task import Task, TaskStatus, WriterMode
from novelpilot.core.contracts.workspace import EditorCursor, FileStore
from novelpilot.core.planner.quality import count_chars
from novelpilot.core.planner.runner import mark_done, mark_failed, mark_running
from novelpilot.core.planner.service import PlannerService
from novelpilot.core.planner.tasks import extract_task_summary, select_next_task
from novelpilot.core.streams.manager import StreamSessionManager
from novelpilot.core.workspace.stories import ensure_next_chapter, ensure_story_file

_LOG = logging.getLogger(__name__)

DEFAULT_CHUNK_CHARS = 1200
STALL_GROWTH_CHARS = 20
MAX_STALLED_ROUNDS = 3

STATUS_RUNNING = "Auto running..."
STATUS_CHAPTER_DONE = "Auto completed: chapter target reached."
STATUS_QUEUE_DONE = "Auto completed: planner queue reached target."
STATUS_STOPPED = "Auto stopped."
STATUS_FILE_CHANGED = "Auto stopped: active file changed."
STATUS_ADVANCE_LIMIT = "Auto paused: chapter auto-advance limit reached."
STATUS_STALLED = "Auto paused: no measurable file growth."
STATUS_FAILED = "Auto failed."


@dataclass
class AutoWriteReport:
    status: str
    rounds: int = 0
    chapter_advances: int = 0
    final_path: str | None = None


class _Finished(Exception):
    """Internal signal ending the loop with a final status."""

    def __init__(self, status: str) -> None:
        super().__init__(status)
        self.status = status


class AutoWriter:
    def __init__(
        self,
        planner: PlannerService,
        streams: StreamSessionManager,
        validator: QualityValidator,
        store: FileStore,
        *,
        session_id: str = "default",
        writing: WritingSettings | None = None,
        cursor: EditorCursor | None = None,
        observer: WriterObserver | None = None,
    ) -> None:
        self._planner = planner
        self._streams = streams
        self._validator = validator
        self._store = store
        self._session_id = session_id
        self._writing = writing or WritingSettings()
        self._cursor = cursor or EditorCursor()
        self._observer = observer or NullWriterObserver()
        self._running = False
        self._stop_requested = False
        self._status_line = ""

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        self._stop_requested = True

    def _status(self, message: str) -> None:
        self._status_line = message
        _LOG.info("%s", message)
        self._observer.status_changed(message)

    async def _char_count(self, path: str) -> int:
        try:
            return count_chars(await self._store.read(path))
        except WorkspaceError:
            return 0

    async def run(self, mode: WriterMode, path: str | None = None) -> AutoWriteReport:
        """Write into *path* (default: the cursor's file) until a final status is reached."""
        target_path = path or self._cursor.active_path
        if not target_path:
            raise PlannerError("auto-write needs an active chapter file")
        if self._running or self._streams.is_streaming:
            return AutoWriteReport(status="auto-write is busy", final_path=target_path)

        self._cursor.active_path = target_path
        self._running = True
        self._stop_requested = False
        report = AutoWriteReport(status=STATUS_RUNNING, final_path=target_path)
        self._status(STATUS_RUNNING)
        try:
            if mode is not WriterMode.NORMAL:
                await self._planner.ensure_artifacts(mode, chapter_word_target=self._writing.chapter_word_target)
            await self._rounds(mode, report)
            if self._stop_requested:
                self._status(STATUS_STOPPED)
        except _Finished as finished:
            self._status(finished.status)
        except Exception:
            self._status(STATUS_FAILED)
            raise
        finally:
            self._running = False
            self._stop_requested = False
            report.status = self._status_line
            report.final_path = self._cursor.active_path
        return report

    async def _rounds(self, mode: WriterMode, report: AutoWriteReport) -> None:
        stalled = 0
        target_path = self._cursor.active_path or ""
        for round_no in range(1, self._writing.auto_max_rounds + 1):
            if self._stop_requested:
                return
            if self._cursor.active_path != target_path:
                raise _Finished(STATUS_FILE_CHANGED)
            report.rounds = round_no

            task: Task | None = None
            if mode is not WriterMode.NORMAL:
                task, switched = await self._select_task(mode, target_path)
                if switched is not None:
                    target_path = switched
                    report.chapter_advances += 1
                    await asyncio.sleep(self._writing.switch_delay)
                    continue

            current = await self._char_count(target_path)
            target = max(0, task.target_words if task is not None else self._writing.chapter_word_target)
            if target > 0 and current >= target:
                if task is not None:
                    next_path = await self._settle_task(mode, task, target_path, target)
                    if next_path is None:
                        continue
                else:
                    if report.chapter_advances >= self._writing.auto_max_chapter_advances:
                        raise _Finished(STATUS_ADVANCE_LIMIT)
                    next_path = await ensure_next_chapter(self._store, target_path)
                    if next_path is None:
                        raise _Finished(STATUS_CHAPTER_DONE)
                    self._status(f"Auto advanced to {next_path} (chapter {report.chapter_advances + 2})")
                report.chapter_advances += 1
                target_path = next_path
                self._cursor.active_path = next_path
                await asyncio.sleep(self._writing.switch_delay)
                continue

            gap = max(0, target - current) if target > 0 else DEFAULT_CHUNK_CHARS
            chunk = max(self._writing.auto_min_chars, min(self._writing.auto_max_chars, gap or DEFAULT_CHUNK_CHARS))
            progress = f"{current}/{target}" if target > 0 else f"{current}"
            self._status(f"Auto round {round_no} - {progress}")

            prompt = write_round_prompt(mode, target_path, current, target, chunk, task)
            stream_id = await self._streams.send_turn(prompt, SendTurnOptions(hide_user_echo=True))
            if stream_id is None:
                await asyncio.sleep(self._writing.refused_send_delay)
                continue
            await self._await_stream(stream_id)

            await asyncio.sleep(self._writing.round_settle_delay)
            grown = await self._char_count(target_path)
            if grown <= current + STALL_GROWTH_CHARS:
                stalled += 1
                if stalled >= MAX_STALLED_ROUNDS:
                    raise _Finished(STATUS_STALLED)
            else:
                stalled = 0

    async def _await_stream(self, stream_id: str) -> str:
        try:
            await self._streams.wait_for_completion(stream_id)
        except StreamCancelledError as exc:
            raise _Finished(STATUS_STOPPED) from exc
        if self._streams.was_cancelled(stream_id):
            self._streams.forget(stream_id)
            raise _Finished(STATUS_STOPPED)
        output = self._streams.output(stream_id).strip()
        self._streams.forget(stream_id)
        return output

    async def _select_task(self, mode: WriterMode, target_path: str) -> tuple[Task | None, str | None]:
        """Pick the task for this round; the second value is set when the loop switched files."""
        queue = await self._planner.load_run_queue()
        on_path = next(
            (
                task
                for task in queue
                if task.scope == target_path
                and task.status in (TaskStatus.RUNNING, TaskStatus.TODO, TaskStatus.RETRY)
            ),
            None,
        )
        selected = on_path or select_next_task(queue)
        if selected is None:
            raise _Finished(STATUS_QUEUE_DONE)

        if selected.scope != target_path:
            switched = await ensure_story_file(self._store, selected.scope)
            if switched is None:
                raise _Finished(STATUS_QUEUE_DONE)
            self._cursor.active_path = switched
            self._status(f"Auto task switch -> {selected.id} @ {switched}")
            return selected, switched

        if selected.status is not TaskStatus.RUNNING:
            await self._planner.update_task(mode, selected.id, mark_running)
        await self._planner.set_task_pointer(self._session_id, selected.id, None)
        return selected, None

    async def _settle_task(self, mode: WriterMode, task: Task, target_path: str, target: int) -> str | None:
        """Confirm a chapter that reached its target; returns the next chapter path or ``None`` to retry."""
        self._status(f"Auto validating {task.id}...")
        stream_id = await self._streams.send_turn(
            completion_check_prompt(task, target_path, target),
            SendTurnOptions(hide_user_echo=True, skip_mode_wrap=True),
        )
        if stream_id is None:
            raise PlannerError(f"completion check for task {task.id} could not be started")
        reply = await self._await_stream(stream_id)

        queue = await self._planner.load_run_queue()
        verdict = await self._validator.validate(task, reply, queue)
        if not verdict.ok:
            queue = await self._planner.update_task(mode, task.id, mark_failed(verdict.reason))
            await self._planner.set_task_pointer(self._session_id, task.id, verdict.reason)
            updated = next((item for item in queue if item.id == task.id), None)
            if updated is not None and updated.status is TaskStatus.BLOCKED:
                raise _Finished(f"Auto blocked: {task.id} {verdict.reason or ''}".strip())
            self._status(f"Auto retry: {task.id} {verdict.reason or ''}".strip())
            return None

        current = await self._char_count(target_path)
        summary = extract_task_summary(reply) or f"Auto reached target words ({current}/{target})"
        queue = await self._planner.update_task(mode, task.id, mark_done)
        await self._planner.append_continuity_entry(task, summary)
        await self._planner.set_task_pointer(self._session_id, None, None)

        upcoming = select_next_task(queue)
        if upcoming is None:
            raise _Finished(STATUS_QUEUE_DONE)
        switched = await ensure_story_file(self._store, upcoming.scope)
        if switched is None:
            raise _Finished(STATUS_QUEUE_DONE)
        self._status(f"Auto task done {upcoming.id} -> {switched}")
        return switched
