"""SDK composition root for NovelPilot."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import TracebackType

import httpx

from novelpilot.core.autowrite import AutoWriter, AutoWriteReport
from novelpilot.core.changes import ChangeSetManager
from novelpilot.core.contracts.changes import ChangeSetStatus
from novelpilot.core.contracts.config import NovelPilotConfig, WritingSettings
from novelpilot.core.contracts.exceptions import StreamError
from novelpilot.core.contracts.model import ModelService
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.quality import QualityValidator
from novelpilot.core.contracts.task import RunQueue, SessionState, Task, WriterMode
from novelpilot.core.contracts.workspace import EditorCursor, FileStore
from novelpilot.core.planner import HeuristicQualityValidator, PlannerService, QueueRunner, QueueRunReport
from novelpilot.core.providers import create_model_service
from novelpilot.core.streams import Conversation, StreamSessionManager, parse_composer_input
from novelpilot.core.workspace import LocalFileStore


@dataclass(frozen=True)
class ChatResult:
    """Outcome of one composer submission."""

    mode: WriterMode
    auto_run: bool
    stream_id: str | None = None
    output: str = ""
    cancelled: bool = False
    change_set_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class WorkspaceStatus:
    session: SessionState
    queue: RunQueue
    has_master_plan: bool
    pending_change_sets: int = 0


class NovelPilot:
    """NovelPilot SDK public API.

    Wires the workspace store, model service, change-set manager, stream
    manager, planner and both writing loops around one shared editor cursor.
    Use as an async context manager so the model service is opened and closed::

        async with await NovelPilot.from_config(config) as pilot:
            await pilot.run_queue()
    """

    def __init__(
        self,
        *,
        config: NovelPilotConfig,
        model: ModelService,
        store: FileStore,
        writing: WritingSettings | None = None,
        validator: QualityValidator | None = None,
        observer: WriterObserver | None = None,
    ) -> None:
        self._config = config
        self._model = model
        self._store = store
        self._observer = observer or NullWriterObserver()
        self._mode = config.mode
        self._writing = writing or config.writing
        self._cursor = EditorCursor()
        self._entered = False

        self._changes = ChangeSetManager(store, observer=self._observer)
        self._planner = PlannerService(store, model, settings=config.planner, observer=self._observer)
        self._conversation = Conversation()
        self._streams = StreamSessionManager(
            model,
            self._changes,
            settings=config.streams,
            conversation=self._conversation,
            prompt_wrapper=self._wrap_prompt,
            observer=self._observer,
        )
        self._validator = validator or HeuristicQualityValidator(store)
        self._runner = QueueRunner(
            self._planner,
            self._streams,
            self._validator,
            store,
            session_id=config.session_id,
            writing=self._writing,
            cursor=self._cursor,
            observer=self._observer,
        )
        self._autowriter = AutoWriter(
            self._planner,
            self._streams,
            self._validator,
            store,
            session_id=config.session_id,
            writing=self._writing,
            cursor=self._cursor,
            observer=self._observer,
        )

    @classmethod
    async def from_config(
        cls,
        config: NovelPilotConfig,
        *,
        observer: WriterObserver | None = None,
        model: ModelService | None = None,
        store: FileStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NovelPilot:
        """Build an SDK instance, overlaying the workspace's project writing settings."""
        store = store or LocalFileStore(config.workspace_root)
        model = model or create_model_service(config.model, transport=transport)
        settings_reader = PlannerService(store, model, settings=config.planner)
        writing = await settings_reader.load_writing_settings(config.writing)
        return cls(config=config, model=model, store=store, writing=writing, observer=observer)

    async def __aenter__(self) -> NovelPilot:
        await self._model.__aenter__()
        self._entered = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._runner.stop()
        self._autowriter.stop()
        await self._streams.aclose()
        if self._entered:
            self._entered = False
            await self._model.__aexit__(None, None, None)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> NovelPilotConfig:
        return self._config

    @property
    def mode(self) -> WriterMode:
        return self._mode

    @property
    def writing(self) -> WritingSettings:
        return self._writing

    @property
    def cursor(self) -> EditorCursor:
        return self._cursor

    @property
    def store(self) -> FileStore:
        return self._store

    @property
    def changes(self) -> ChangeSetManager:
        return self._changes

    @property
    def streams(self) -> StreamSessionManager:
        return self._streams

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def planner(self) -> PlannerService:
        return self._planner

    @property
    def runner(self) -> QueueRunner:
        return self._runner

    @property
    def autowriter(self) -> AutoWriter:
        return self._autowriter

    async def _wrap_prompt(self, text: str) -> str:
        return await self._planner.wrap_prompt(self._mode, text, self._cursor.active_path)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def set_mode(self, mode: WriterMode) -> SessionState:
        self._mode = mode
        return await self._planner.set_session_mode(self._config.session_id, mode)

    async def restore_mode(self) -> WriterMode:
        """Adopt the mode persisted for this session without touching its auto-run flag."""
        state = await self._planner.get_session_state(self._config.session_id)
        self._mode = state.mode
        return self._mode

    def open_file(self, path: str | None) -> None:
        self._cursor.active_path = path

    async def send(self, text: str) -> ChatResult:
        """Submit composer input: apply slash directives, then stream any remaining text."""
        directive = parse_composer_input(text)
        session_id = self._config.session_id
        if directive.requested_mode is not None:
            state = await self.set_mode(directive.requested_mode)
        else:
            state = await self._planner.get_session_state(session_id)
        if directive.auto_action is not None:
            enabled = not state.auto_run if directive.auto_action == "toggle" else directive.auto_action == "on"
            state = await self._planner.set_session_auto_run(session_id, enabled)
        if not directive.content:
            return ChatResult(mode=self._mode, auto_run=state.auto_run)

        stream_id = await self._streams.send_turn(directive.content)
        if stream_id is None:
            raise StreamError("a generation is already in progress")
        output = await self._streams.wait_for_completion(stream_id)
        session = self._streams.session(stream_id)
        change_set_ids: list[str] = []
        if session is not None:
            message = self._conversation.find(session.assistant_message_id)
            if message is not None:
                change_set_ids = list(message.change_set_ids)
        return ChatResult(
            mode=self._mode,
            auto_run=state.auto_run,
            stream_id=stream_id,
            output=output,
            cancelled=self._streams.was_cancelled(stream_id),
            change_set_ids=change_set_ids,
        )

    async def prepare_plan(self, *, instruction: str = "", target_words: int | None = None) -> list[Task]:
        """Ensure the master plan and run queue exist for the current mode."""
        return await self._planner.ensure_artifacts(
            self._mode,
            target_words=target_words,
            chapter_word_target=self._writing.chapter_word_target,
            instruction=instruction,
        )

    async def run_queue(self, instruction: str = "") -> QueueRunReport:
        return await self._runner.run(self._mode, instruction)

    async def auto_write(self, path: str | None = None) -> AutoWriteReport:
        return await self._autowriter.run(self._mode, path)

    def stop(self) -> None:
        self._runner.stop()
        self._autowriter.stop()

    async def queue(self) -> list[Task]:
        return await self._planner.load_run_queue()

    async def status(self) -> WorkspaceStatus:
        session = await self._planner.get_session_state(self._config.session_id)
        queue = await self._planner.load_run_queue_state()
        plan = await self._planner.read_master_plan()
        change_sets = self._changes.list_change_sets()
        pending = sum(1 for change_set in change_sets if change_set.status is ChangeSetStatus.PENDING)
        return WorkspaceStatus(
            session=session,
            queue=queue,
            has_master_plan=bool(plan.strip()),
            pending_change_sets=pending,
        )


__all__ = ["ChatResult", "NovelPilot", "WorkspaceStatus"]
