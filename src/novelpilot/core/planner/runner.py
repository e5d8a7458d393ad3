"""Planner queue runner: executes run-queue tasks one stream at a time."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from novelpilot.core.contracts.config import WritingSettings
from novelpilot.core.contracts.exceptions import NovelPilotError, PlannerError
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.quality import QualityValidator
from novelpilot.core.contracts.stream import SendTurnOptions
from novelpilot.core.contracts.task import Task, TaskStatus, WriterMode
from novelpilot.core.contracts.workspace import EditorCursor, FileStore
from novelpilot.core.planner.documents import utc_now
from novelpilot.core.planner.prompts import build_task_prompt
from novelpilot.core.planner.service import PlannerService, TaskUpdater
from novelpilot.core.planner.tasks import extract_task_summary, select_next_task
from novelpilot.core.streams.manager import StreamSessionManager
from novelpilot.core.workspace.stories import ensure_story_file

_LOG = logging.getLogger(__name__)

NORMAL_MODE_REFUSAL = "普通模式不执行细纲队列"
QUALITY_FALLBACK_REASON = "质量校验失败"
DEFAULT_CONTINUITY_SUMMARY = "任务完成"


@dataclass
class QueueRunReport:
    status: str
    completed: list[str] = field(default_factory=list)
    blocked_task_id: str | None = None


def mark_running(task: Task) -> Task:
    return task.model_copy(update={"status": TaskStatus.RUNNING, "last_error": None})


def mark_failed(reason: str | None) -> TaskUpdater:
    """Updater recording a failed validation: retry on the first failure, blocked afterwards."""

    def update(task: Task) -> Task:
        return task.model_copy(
            update={
                "status": TaskStatus.BLOCKED if task.retries >= 1 else TaskStatus.RETRY,
                "retries": task.retries + 1,
                "last_error": reason or QUALITY_FALLBACK_REASON,
            }
        )

    return update


def mark_done(task: Task) -> Task:
    return task.model_copy(update={"status": TaskStatus.DONE, "completed_at": utc_now(), "last_error": None})


def restore_status(previous: Task) -> TaskUpdater:
    """Updater putting a task back to its pre-run status after an aborted attempt."""

    def update(task: Task) -> Task:
        return task.model_copy(update={"status": previous.status, "last_error": previous.last_error})

    return update


class QueueRunner:
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

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        self._stop_requested = True

    def _status(self, message: str) -> str:
        _LOG.info("%s", message)
        self._observer.status_changed(message)
        return message

    async def run(self, mode: WriterMode, instruction: str = "") -> QueueRunReport:
        """Run tasks until the queue is exhausted, a task blocks, or ``stop`` is called.

        Quality-gate failures are recorded on the task; any other error is
        recorded on the session and re-raised, leaving the queue resumable.
        """
        if mode is WriterMode.NORMAL:
            await self._planner.set_task_pointer(self._session_id, None, NORMAL_MODE_REFUSAL)
            return QueueRunReport(status=self._status(NORMAL_MODE_REFUSAL))
        if self._running:
            return QueueRunReport(status="planner queue is already running")

        self._running = True
        self._stop_requested = False
        report = QueueRunReport(status="")
        try:
            await self._planner.ensure_artifacts(
                mode,
                chapter_word_target=self._writing.chapter_word_target,
                instruction=instruction,
            )
            await self._planner.set_task_pointer(self._session_id, None, None)
            tasks = await self._planner.load_run_queue()
            for _ in range(self._planner.settings.max_iterations):
                if self._stop_requested:
                    report.status = self._status("planner queue stopped")
                    return report
                task = select_next_task(tasks)
                if task is None:
                    break
                tasks = await self._run_task(mode, task, instruction, tasks, report)
                if report.blocked_task_id is not None:
                    return report
            else:
                _LOG.warning("planner queue hit the iteration guard")
            report.status = self._status(f"planner queue finished: {len(report.completed)} task(s) done")
            return report
        except NovelPilotError as exc:
            await self._planner.set_task_pointer(self._session_id, None, str(exc))
            raise
        finally:
            self._running = False
            self._stop_requested = False

    async def _run_task(
        self,
        mode: WriterMode,
        task: Task,
        instruction: str,
        tasks: list[Task],
        report: QueueRunReport,
    ) -> list[Task]:
        await self._planner.set_task_pointer(self._session_id, task.id, None)
        tasks = await self._planner.update_task(mode, task.id, mark_running)
        self._status(f"running {task.id} {task.title}")
        try:
            output = await self._generate(mode, task, instruction)
        except NovelPilotError:
            await self._planner.update_task(mode, task.id, restore_status(task))
            raise

        verdict = await self._validator.validate(task, output, tasks)
        if not verdict.ok:
            tasks = await self._planner.update_task(mode, task.id, mark_failed(verdict.reason))
            updated = next(item for item in tasks if item.id == task.id)
            if updated.status is TaskStatus.BLOCKED:
                message = f"task {task.id} blocked: {verdict.reason or QUALITY_FALLBACK_REASON}"
                await self._planner.set_task_pointer(self._session_id, task.id, message)
                report.blocked_task_id = task.id
                report.status = self._status(message)
            else:
                self._status(f"task {task.id} will retry: {verdict.reason}")
            return tasks

        tasks = await self._planner.update_task(mode, task.id, mark_done)
        await self._planner.append_continuity_entry(task, extract_task_summary(output) or DEFAULT_CONTINUITY_SUMMARY)
        await self._planner.set_task_pointer(self._session_id, None, None)
        report.completed.append(task.id)
        self._status(f"task {task.id} done")

        upcoming = select_next_task(tasks)
        if upcoming is not None:
            opened = await ensure_story_file(self._store, upcoming.scope)
            if opened is not None:
                self._cursor.active_path = opened
        return tasks

    async def _generate(self, mode: WriterMode, task: Task, instruction: str) -> str:
        context = await self._planner.build_context(mode, task.scope or self._cursor.active_path)
        prompt = build_task_prompt(mode, task, context, instruction)
        stream_id = await self._streams.send_turn(prompt, SendTurnOptions(skip_mode_wrap=True))
        if stream_id is None:
            raise PlannerError(f"task {task.id} could not be started")
        try:
            await self._streams.wait_for_completion(stream_id)
            return self._streams.output(stream_id)
        finally:
            self._streams.forget(stream_id)
