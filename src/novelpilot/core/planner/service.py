"""Planner service: workspace artifacts, session state, plans, run queue and context."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from novelpilot.core.contracts.config import PlannerSettings, WritingSettings
from novelpilot.core.contracts.exceptions import ConfigError, ModelError, WorkspaceError
from novelpilot.core.contracts.model import ModelService
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.task import ContextPack, RunQueue, SessionState, SessionStore, Task, WriterMode
from novelpilot.core.contracts.workspace import FileStore
from novelpilot.core.planner.documents import (
    CONTINUITY_HEADER,
    CONTINUITY_INDEX_PATH,
    MASTER_PLAN_PATH,
    MASTER_TASKS_PATH,
    PLANS_DIR,
    PROJECT_SETTINGS_PATH,
    RUN_QUEUE_PATH,
    SESSION_STATE_PATH,
    STATE_DIR,
    TASKS_DIR,
    clean_markdown,
    extract_plan_summary,
    parse_front_matter,
    parse_task_list,
    serialize_task_list,
    to_front_matter,
    utc_now,
)
from novelpilot.core.planner.prompts import build_fallback_plan, build_mode_prompt, build_plan_prompt
from novelpilot.core.planner.tasks import build_default_tasks, select_next_task

_LOG = logging.getLogger(__name__)

STORY_EXTENSIONS = (".md", ".txt")
REFERENCE_FILES = ("concept/characters.md", "concept/relations.md", "outline/outline.md", CONTINUITY_INDEX_PATH)
NEIGHBOUR_SPAN = 2
RECENT_STORY_FILES = 3

TaskUpdater = Callable[[Task], Task]


class PlannerService:
    """Reads and writes the planner artifacts under ``.novel/``.

    Every operation goes through the workspace file store; the service keeps
    no state of its own beyond its collaborators, so several services over
    the same store observe the same queue.
    """

    def __init__(
        self,
        store: FileStore,
        model: ModelService,
        *,
        settings: PlannerSettings | None = None,
        observer: WriterObserver | None = None,
    ) -> None:
        self._store = store
        self._model = model
        self._settings = settings or PlannerSettings()
        self._observer = observer or NullWriterObserver()

    @property
    def settings(self) -> PlannerSettings:
        return self._settings

    async def _read_optional(self, path: str) -> str:
        try:
            if not await self._store.exists(path):
                return ""
            return await self._store.read(path)
        except WorkspaceError as exc:
            _LOG.debug("treating unreadable %s as empty: %s", path, exc)
            return ""

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------

    async def ensure_workspace(self) -> None:
        for directory in (PLANS_DIR, TASKS_DIR, STATE_DIR):
            await self._store.create_dir(directory)
        if not (await self._read_optional(SESSION_STATE_PATH)).strip():
            await self._save_session_store(SessionStore())
        if not (await self._read_optional(CONTINUITY_INDEX_PATH)).strip():
            await self._store.write(CONTINUITY_INDEX_PATH, CONTINUITY_HEADER)

    async def load_writing_settings(self, base: WritingSettings | None = None) -> WritingSettings:
        """Overlay ``.novel/.settings/project.json`` on *base*; values are clamped into range."""
        settings = base or WritingSettings()
        raw = await self._read_optional(PROJECT_SETTINGS_PATH)
        if not raw.strip():
            return settings
        try:
            overrides = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"parse project settings failed: {exc}") from exc
        if not isinstance(overrides, dict):
            raise ConfigError("parse project settings failed: expected a JSON object")
        known = {key: value for key, value in overrides.items() if key in WritingSettings.model_fields}
        try:
            return WritingSettings.model_validate({**settings.model_dump(), **known})
        except ValidationError as exc:
            raise ConfigError(f"invalid project settings: {exc}") from exc

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    async def _load_session_store(self) -> SessionStore:
        await self.ensure_workspace()
        raw = await self._read_optional(SESSION_STATE_PATH)
        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            _LOG.warning("session state is not valid JSON; starting fresh")
            return SessionStore()
        sessions = parsed.get("sessions") if isinstance(parsed, dict) else None
        if not isinstance(sessions, dict):
            return SessionStore()

        store = SessionStore()
        for key, value in sessions.items():
            if not isinstance(value, dict):
                continue
            mode_raw = value.get("mode")
            mode = WriterMode(mode_raw) if mode_raw in ("plan", "spec") else WriterMode.NORMAL
            auto_run = value.get("auto_run")
            current = value.get("current_task_id")
            updated = value.get("updated_at")
            error = value.get("last_error")
            store.sessions[key] = SessionState(
                session_id=key,
                mode=mode,
                auto_run=auto_run if isinstance(auto_run, bool) else mode is not WriterMode.NORMAL,
                current_task_id=current if isinstance(current, str) else None,
                updated_at=updated if isinstance(updated, str) else utc_now(),
                last_error=error if isinstance(error, str) else None,
            )
        return store

    async def _save_session_store(self, store: SessionStore) -> None:
        raw = json.dumps(store.model_dump(mode="json"), ensure_ascii=False, indent=2)
        await self._store.write(SESSION_STATE_PATH, raw)

    async def get_session_state(self, session_id: str) -> SessionState:
        store = await self._load_session_store()
        existing = store.sessions.get(session_id)
        if existing is not None:
            return existing
        state = SessionState(session_id=session_id, updated_at=utc_now())
        store.sessions[session_id] = state
        await self._save_session_store(store)
        return state

    async def set_session_mode(self, session_id: str, mode: WriterMode) -> SessionState:
        store = await self._load_session_store()
        previous = store.sessions.get(session_id)
        auto_run = False if mode is WriterMode.NORMAL else (previous.auto_run if previous is not None else True)
        current_task_id = previous.current_task_id if previous is not None else None
        state = SessionState(
            session_id=session_id,
            mode=mode,
            auto_run=auto_run,
            current_task_id=None if mode is WriterMode.NORMAL else current_task_id,
            updated_at=utc_now(),
        )
        store.sessions[session_id] = state
        await self._save_session_store(store)
        return state

    async def set_session_auto_run(self, session_id: str, auto_run: bool) -> SessionState:
        store = await self._load_session_store()
        previous = store.sessions.get(session_id) or SessionState(session_id=session_id)
        state = previous.model_copy(update={"auto_run": auto_run, "updated_at": utc_now()})
        store.sessions[session_id] = state
        await self._save_session_store(store)
        return state

    async def set_task_pointer(self, session_id: str, task_id: str | None, error: str | None) -> SessionState:
        store = await self._load_session_store()
        previous = store.sessions.get(session_id) or SessionState(session_id=session_id)
        state = previous.model_copy(update={"current_task_id": task_id, "last_error": error, "updated_at": utc_now()})
        store.sessions[session_id] = state
        await self._save_session_store(store)
        return state

    # ------------------------------------------------------------------
    # Master plan
    # ------------------------------------------------------------------

    async def read_master_plan(self) -> str:
        await self.ensure_workspace()
        return await self._read_optional(MASTER_PLAN_PATH)

    async def ensure_master_plan(
        self,
        mode: WriterMode,
        *,
        target_words: int | None = None,
        chapter_word_target: int = 2000,
        instruction: str = "",
    ) -> str:
        existing = await self.read_master_plan()
        if existing.strip():
            meta, _ = parse_front_matter(existing)
            if meta.get("mode") == mode.value:
                return existing
        return await self.generate_master_plan(
            mode, target_words=target_words, chapter_word_target=chapter_word_target, instruction=instruction
        )

    async def generate_master_plan(
        self,
        mode: WriterMode,
        *,
        target_words: int | None = None,
        chapter_word_target: int = 2000,
        instruction: str = "",
    ) -> str:
        await self.ensure_workspace()
        words = target_words if target_words is not None else self._settings.target_words
        instruction = instruction.strip()
        prompt = build_plan_prompt(mode, words, chapter_word_target, instruction)
        try:
            body = clean_markdown(await self._model.complete(prompt))
        except ModelError as exc:
            _LOG.warning("plan generation failed, using fallback plan: %s", exc)
            body = ""
        if not body.strip():
            body = build_fallback_plan(mode, words, chapter_word_target, instruction)

        markdown = to_front_matter(
            {
                "id": "master-plan",
                "mode": mode.value,
                "status": "active",
                "target_words": words,
                "chapter_word_target": chapter_word_target,
                "updated_at": utc_now(),
            },
            body,
        )
        await self._store.write(MASTER_PLAN_PATH, markdown)
        _LOG.info("wrote %s plan to %s", mode.value, MASTER_PLAN_PATH)
        return markdown

    async def ensure_artifacts(
        self,
        mode: WriterMode,
        *,
        target_words: int | None = None,
        chapter_word_target: int = 2000,
        instruction: str = "",
    ) -> list[Task]:
        """Make sure a plan and a run queue exist for *mode*, regenerating stale ones."""
        if mode is WriterMode.NORMAL:
            return []
        await self.ensure_master_plan(
            mode, target_words=target_words, chapter_word_target=chapter_word_target, instruction=instruction
        )
        queue = await self.load_run_queue_state()
        if queue.tasks and queue.mode is mode:
            return queue.tasks
        return await self.generate_tasks_from_plan(
            mode, target_words=target_words, chapter_word_target=chapter_word_target
        )

    # ------------------------------------------------------------------
    # Run queue
    # ------------------------------------------------------------------

    async def generate_tasks_from_plan(
        self,
        mode: WriterMode,
        *,
        target_words: int | None = None,
        chapter_word_target: int = 2000,
    ) -> list[Task]:
        await self.ensure_workspace()
        summary = extract_plan_summary(await self.read_master_plan())
        words = target_words if target_words is not None else self._settings.target_words
        tasks = build_default_tasks(mode, words, chapter_word_target, summary)
        await self._store.write(MASTER_TASKS_PATH, serialize_task_list(mode, tasks, "master-tasks", "Master Tasks"))
        await self._store.write(RUN_QUEUE_PATH, serialize_task_list(mode, tasks, "run-queue", "Run Queue"))
        _LOG.info("generated %d %s tasks", len(tasks), mode.value)
        self._observer.queue_changed(mode, tasks)
        return tasks

    async def load_run_queue_state(self) -> RunQueue:
        await self.ensure_workspace()
        raw = await self._read_optional(RUN_QUEUE_PATH)
        if not raw.strip():
            return RunQueue()
        return parse_task_list(raw)

    async def load_run_queue(self) -> list[Task]:
        return (await self.load_run_queue_state()).tasks

    async def save_run_queue(self, mode: WriterMode, tasks: list[Task]) -> None:
        await self.ensure_workspace()
        await self._store.write(RUN_QUEUE_PATH, serialize_task_list(mode, tasks, "run-queue", "Run Queue"))
        self._observer.queue_changed(mode, tasks)

    async def update_task(self, mode: WriterMode, task_id: str, updater: TaskUpdater) -> list[Task]:
        tasks = [updater(task) if task.id == task_id else task for task in await self.load_run_queue()]
        await self.save_run_queue(mode, tasks)
        return tasks

    def next_task(self, tasks: list[Task]) -> Task | None:
        return select_next_task(tasks)

    async def append_continuity_entry(self, task: Task, summary: str) -> None:
        await self.ensure_workspace()
        existing = (await self._read_optional(CONTINUITY_INDEX_PATH)).strip()
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"- {stamp} [{task.id}] {task.title}: {summary.strip()}"
        text = f"{existing}\n{line}\n" if existing else f"# Continuity Index\n\n{line}\n"
        await self._store.write(CONTINUITY_INDEX_PATH, text)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def build_context(self, mode: WriterMode, active_path: str | None) -> ContextPack:
        """Collect excerpts of neighbouring chapters and planning documents for a prompt."""
        story_files = sorted(
            path for path in await self._store.list_files("stories") if path.endswith(STORY_EXTENSIONS)
        )
        references: list[str] = []
        if active_path and active_path in story_files:
            index = story_files.index(active_path)
            references.extend(story_files[max(0, index - NEIGHBOUR_SPAN) : index + NEIGHBOUR_SPAN + 1])
        elif story_files:
            references.extend(story_files[-RECENT_STORY_FILES:])
        if mode is not WriterMode.NORMAL:
            references.append(MASTER_PLAN_PATH)
        if mode is WriterMode.SPEC:
            references.append(RUN_QUEUE_PATH)
        references.extend(REFERENCE_FILES)

        deduped = list(dict.fromkeys(references))
        limit = self._settings.max_context_chars_per_file
        snippets: list[str] = []
        for path in deduped:
            text = (await self._read_optional(path)).strip()
            if text:
                snippets.append(f"### {path}\n{text[:limit]}")
        return ContextPack(mode=mode, active_path=active_path, summary="\n\n".join(snippets), references=deduped)

    async def wrap_prompt(self, mode: WriterMode, user_input: str, active_path: str | None) -> str:
        context = await self.build_context(mode, active_path)
        return build_mode_prompt(mode, user_input, context, active_path)
