"""Stream session manager.

Owns every in-flight generation: the per-stream scratch state, the waiters
other components block on, the first-token stall detector with its single
automatic retry, reply versioning and turn rollback. Model services report
progress by calling ``dispatch`` with loosely-typed payloads; nothing else
touches a stream's state.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from novelpilot.core.changes.codec import parse_change_set_payload
from novelpilot.core.changes.edits import parse_file_edits
from novelpilot.core.changes.manager import ChangeSetManager
from novelpilot.core.contracts.config import ApplyMode, StreamSettings
from novelpilot.core.contracts.exceptions import (
    ChangeSetError,
    ModelError,
    NovelPilotError,
    StreamCancelledError,
    StreamError,
    StreamTimeoutError,
)
from novelpilot.core.contracts.model import ModelService
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.stream import (
    AssistantVersion,
    ChatItem,
    ChatMessage,
    Role,
    RollbackTurn,
    SendTurnOptions,
    StreamChangeSet,
    StreamDone,
    StreamFailure,
    StreamPhase,
    StreamStart,
    StreamStatus,
    StreamToken,
)
from novelpilot.core.streams.conversation import Conversation
from novelpilot.core.streams.events import parse_stream_event
from novelpilot.core.streams.text import overlap_remainder

_LOG = logging.getLogger(__name__)

PromptWrapper = Callable[[str], Awaitable[str]]

MAX_CANDIDATE_ROUNDS = 4


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _consume_exception(future: asyncio.Future[None]) -> None:
    if not future.cancelled():
        future.exception()


@dataclass
class StreamSession:
    """Per-request scratch state; discarded a fixed delay after the terminal event."""

    stream_id: str
    assistant_message_id: str
    user_message_id: str | None
    version_group_id: str
    messages: list[ChatMessage]
    settled: asyncio.Future[None]
    agent_id: str | None = None
    output: str = ""
    phase: StreamPhase = StreamPhase.INITIALIZING
    started_at: float | None = None
    last_token_at: float | None = None
    token_seen: bool = False
    manually_cancelled: bool = False
    terminal: bool = False
    retrying: bool = False
    error: str | None = None
    superseded_by: str | None = None
    backend_finished: asyncio.Event = field(default_factory=asyncio.Event)
    first_token_timer: asyncio.TimerHandle | None = None
    cleanup_timer: asyncio.TimerHandle | None = None

    def clear_first_token_timer(self) -> None:
        if self.first_token_timer is not None:
            self.first_token_timer.cancel()
            self.first_token_timer = None


class StreamSessionManager:
    def __init__(
        self,
        model: ModelService,
        changes: ChangeSetManager,
        *,
        settings: StreamSettings | None = None,
        conversation: Conversation | None = None,
        prompt_wrapper: PromptWrapper | None = None,
        observer: WriterObserver | None = None,
    ) -> None:
        self._model = model
        self._changes = changes
        self._settings = settings or StreamSettings()
        self.conversation = conversation or Conversation()
        self._prompt_wrapper = prompt_wrapper
        self._observer = observer or NullWriterObserver()
        self._sessions: dict[str, StreamSession] = {}
        self._retry_counts: dict[str, int] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_streaming(self) -> bool:
        return self.conversation.is_streaming

    def session(self, stream_id: str) -> StreamSession | None:
        return self._sessions.get(stream_id)

    def output(self, stream_id: str) -> str:
        """Accumulated output of *stream_id*, following automatic-retry redirects."""
        session = self._resolve(stream_id)
        return session.output if session is not None else ""

    def was_cancelled(self, stream_id: str) -> bool:
        session = self._resolve(stream_id)
        return session is not None and session.manually_cancelled

    def retry_count(self, version_group_id: str) -> int:
        return self._retry_counts.get(version_group_id, 0)

    def _resolve(self, stream_id: str) -> StreamSession | None:
        session = self._sessions.get(stream_id)
        while session is not None and session.superseded_by is not None:
            session = self._sessions.get(session.superseded_by)
        return session

    # ------------------------------------------------------------------
    # Starting turns
    # ------------------------------------------------------------------

    async def send_turn(self, text: str, options: SendTurnOptions | None = None) -> str | None:
        """Start a generation for *text*; ``None`` when nothing was started."""
        return await self._start_turn(text, options or SendTurnOptions())

    async def _start_turn(
        self,
        text: str,
        options: SendTurnOptions,
        *,
        reuse_assistant_id: str | None = None,
    ) -> str | None:
        content = text.strip()
        if not content and not options.use_existing_last_user:
            return None
        if self.is_streaming:
            _LOG.debug("refusing new turn while another stream is active")
            return None

        history = (
            list(options.source_messages)
            if options.source_messages is not None
            else self.conversation.settled_history()
        )
        existing_user: ChatItem | None = None
        if options.use_existing_last_user:
            existing_user = Conversation.last_user(history)
            if existing_user is None:
                _LOG.debug("no prior user message to reuse")
                return None
            history = history[: history.index(existing_user) + 1]
            content = content or existing_user.content

        payload = content
        if not options.skip_mode_wrap and self._prompt_wrapper is not None:
            payload = await self._prompt_wrapper(content)
        if self.is_streaming:
            return None

        if existing_user is not None:
            user_message_id: str | None = existing_user.id
            prompt_history = history
        else:
            user_item = ChatItem(id=_new_id("user"), role=Role.USER, content=content)
            user_message_id = None
            if not options.hide_user_echo:
                self.conversation.append(user_item)
                user_message_id = user_item.id
            prompt_history = [*history, user_item]

        window = prompt_history[-self._settings.context_window :]
        messages = [ChatMessage(role=item.role, content=item.content) for item in window]
        messages[-1] = ChatMessage(role=messages[-1].role, content=payload)

        stream_id = self._launch(
            messages,
            user_message_id=user_message_id,
            version_group_id=options.version_group_id or _new_id("vg"),
            agent_id=options.agent_id,
            reuse_assistant_id=reuse_assistant_id,
        )
        session = self._sessions[stream_id]
        if user_message_id is not None and not options.hide_user_echo and not options.use_existing_last_user:
            self.conversation.push_turn(
                RollbackTurn(
                    user_message_id=user_message_id,
                    assistant_message_id=session.assistant_message_id,
                    stream_id=stream_id,
                )
            )
        return stream_id

    def _launch(
        self,
        messages: list[ChatMessage],
        *,
        user_message_id: str | None,
        version_group_id: str,
        agent_id: str | None,
        reuse_assistant_id: str | None = None,
    ) -> str:
        loop = asyncio.get_running_loop()
        stream_id = _new_id("stream")

        assistant = self.conversation.find(reuse_assistant_id) if reuse_assistant_id else None
        if assistant is None:
            assistant = self.conversation.append(
                ChatItem(id=_new_id("assistant"), role=Role.ASSISTANT, version_group_id=version_group_id)
            )
        assistant.content = ""
        assistant.streaming = True
        assistant.cancelled = False
        assistant.stream_id = stream_id
        assistant.version_group_id = version_group_id
        assistant.change_set_ids = []
        assistant.phase = StreamPhase.INITIALIZING

        settled: asyncio.Future[None] = loop.create_future()
        settled.add_done_callback(_consume_exception)
        session = StreamSession(
            stream_id=stream_id,
            assistant_message_id=assistant.id,
            user_message_id=user_message_id,
            version_group_id=version_group_id,
            messages=messages,
            settled=settled,
            agent_id=agent_id,
        )
        self._sessions[stream_id] = session

        turn = self.conversation.turn_for_assistant(assistant.id)
        if turn is not None:
            turn.stream_id = stream_id

        session.first_token_timer = loop.call_later(
            self._settings.first_token_timeout, self._on_first_token_timeout, stream_id
        )
        self._spawn(self._run_backend(session))
        _LOG.debug("started stream %s (group %s, %d messages)", stream_id, version_group_id, len(messages))
        return stream_id

    async def _run_backend(self, session: StreamSession) -> None:
        try:
            await self._model.stream_chat(
                session.stream_id, session.messages, self.dispatch, agent_id=session.agent_id
            )
        except ModelError as exc:
            self.dispatch(
                {
                    "type": "error",
                    "stream_id": session.stream_id,
                    "message": str(exc),
                    "stage": exc.stage,
                    "provider": exc.provider or self._model.name,
                }
            )
        except Exception as exc:
            _LOG.exception("model service crashed on stream %s", session.stream_id)
            self.dispatch(
                {
                    "type": "error",
                    "stream_id": session.stream_id,
                    "message": str(exc) or type(exc).__name__,
                    "stage": "agent",
                    "provider": self._model.name,
                }
            )
        finally:
            session.backend_finished.set()
        if not session.terminal and not session.retrying and session.stream_id in self._sessions:
            _LOG.warning("model service returned without a terminal event for %s", session.stream_id)
            self.dispatch({"type": "done", "stream_id": session.stream_id, "cancelled": session.manually_cancelled})

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def dispatch(self, payload: Any) -> None:
        """Entry point for model service events; malformed payloads are dropped."""
        event = parse_stream_event(payload)
        if event is None:
            return
        session = self._sessions.get(event.stream_id)
        if session is None:
            _LOG.debug("dropping %s event for unknown stream %s", event.type, event.stream_id)
            return

        if isinstance(event, StreamStart):
            self._on_start(session)
        elif isinstance(event, StreamToken):
            self._on_token(session, event.token)
        elif isinstance(event, StreamStatus):
            self._on_status(session, event.phase)
        elif isinstance(event, StreamFailure):
            self._on_error(session, event)
        elif isinstance(event, StreamDone):
            self._on_done(session, event.cancelled)
        elif isinstance(event, StreamChangeSet):
            self._spawn(self._import_change_sets(session, event.change_set))
        self._observer.stream_event(event)

    def _assistant(self, session: StreamSession) -> ChatItem | None:
        message = self.conversation.find(session.assistant_message_id)
        if message is None or message.stream_id != session.stream_id:
            return None
        return message

    def _on_start(self, session: StreamSession) -> None:
        now = asyncio.get_running_loop().time()
        session.started_at = now
        session.last_token_at = now

    def _on_token(self, session: StreamSession, token: str) -> None:
        if session.terminal or session.retrying or session.manually_cancelled:
            return
        remainder = overlap_remainder(session.output, token)
        session.last_token_at = asyncio.get_running_loop().time()
        session.token_seen = True
        session.clear_first_token_timer()
        if not remainder:
            return
        session.output += remainder
        session.phase = StreamPhase.RESPONDING
        message = self._assistant(session)
        if message is not None:
            message.content = session.output
            message.phase = StreamPhase.RESPONDING

    def _on_status(self, session: StreamSession, phase: StreamPhase) -> None:
        if session.terminal:
            return
        session.phase = phase
        message = self._assistant(session)
        if message is not None:
            message.phase = phase

    def _on_error(self, session: StreamSession, event: StreamFailure) -> None:
        if session.terminal or session.retrying:
            return
        session.terminal = True
        session.error = event.message
        session.clear_first_token_timer()
        message = self._assistant(session)
        if message is not None:
            details = []
            if event.provider:
                details.append(f"provider={event.provider}")
            if event.stage:
                details.append(f"stage={event.stage}")
            message.content = f"{event.message}\n({' '.join(details)})" if details else event.message
            message.streaming = False
            message.phase = None
        if not session.settled.done():
            session.settled.set_exception(
                ModelError(event.message, stage=event.stage or "agent", provider=event.provider)
            )
        self._schedule_cleanup(session, self._settings.cleanup_after_error)

    def _on_done(self, session: StreamSession, cancelled: bool) -> None:
        if session.retrying:
            session.backend_finished.set()
            return
        if session.terminal:
            return
        session.terminal = True
        session.clear_first_token_timer()
        self._spawn(self._finalize(session, cancelled))

    async def _finalize(self, session: StreamSession, cancelled: bool) -> None:
        change_set_ids: list[str] = []
        failure: NovelPilotError | None = None
        try:
            change_set_ids = await self._materialize_edits(session)
        except NovelPilotError as exc:
            _LOG.warning("applying edits from stream %s failed: %s", session.stream_id, exc)
            failure = exc

        message = self._assistant(session)
        if message is not None:
            message.streaming = False
            message.cancelled = cancelled
            message.phase = None
            message.content = session.output if failure is None else f"{session.output}\n({failure})".strip()
            message.change_set_ids = list(dict.fromkeys([*message.change_set_ids, *change_set_ids]))
            index, count = self.conversation.upsert_version(
                session.version_group_id,
                AssistantVersion(
                    content=message.content,
                    change_set_ids=list(message.change_set_ids),
                    cancelled=cancelled,
                    timestamp=time.time(),
                ),
            )
            message.version_index = index
            message.version_count = count
            self.conversation.record_change_sets(message.id, change_set_ids)

        if session.output.strip():
            self._retry_counts.pop(session.version_group_id, None)

        if not session.settled.done():
            if failure is not None:
                session.error = str(failure)
                session.settled.set_exception(failure)
            else:
                session.settled.set_result(None)
        self._schedule_cleanup(session, self._settings.cleanup_after_done)

    async def _materialize_edits(self, session: StreamSession) -> list[str]:
        change_set_ids: list[str] = []
        for edit in parse_file_edits(session.output):
            change_set = await self._changes.create_from_edit(edit)
            if change_set is None:
                continue
            change_set_ids.append(change_set.id)
            if self._settings.apply_mode is ApplyMode.AUTO:
                await self._changes.accept_all(change_set.id)
        return change_set_ids

    async def _import_change_sets(self, session: StreamSession, raw: Any) -> None:
        imported = parse_change_set_payload(raw)
        if not imported:
            _LOG.debug("ignoring empty change set payload on %s", session.stream_id)
            return
        change_sets = self._changes.register_imports(imported)
        ids = [change_set.id for change_set in change_sets]
        self.conversation.record_change_sets(session.assistant_message_id, ids)
        message = self._assistant(session)
        if message is not None:
            message.change_set_ids = list(dict.fromkeys([*message.change_set_ids, *ids]))
        if self._settings.apply_mode is ApplyMode.AUTO:
            for change_set in change_sets:
                try:
                    await self._changes.accept_all(change_set.id)
                except ChangeSetError as exc:
                    _LOG.warning("auto-apply of %s failed: %s", change_set.id, exc)

    # ------------------------------------------------------------------
    # Waiting and cancellation
    # ------------------------------------------------------------------

    async def wait_for_completion(self, stream_id: str, timeout: float | None = None) -> str:
        """Wait for *stream_id* to settle and return its output.

        Raises ``ModelError`` when the stream recorded an error and
        ``StreamTimeoutError`` once the ceiling elapses. A cancelled stream
        settles successfully.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (timeout if timeout is not None else self._settings.completion_timeout)
        current = stream_id
        while True:
            session = self._sessions.get(current)
            if session is None:
                raise StreamError(f"unknown stream: {current}")
            try:
                await asyncio.wait_for(asyncio.shield(session.settled), timeout=max(0.0, deadline - loop.time()))
            except TimeoutError as exc:
                raise StreamTimeoutError("timed out waiting for AI response") from exc
            if session.superseded_by is None:
                return session.output
            current = session.superseded_by

    async def cancel(self, stream_id: str) -> None:
        session = self._resolve(stream_id)
        if session is None or session.terminal:
            return
        session.manually_cancelled = True
        session.clear_first_token_timer()
        _LOG.debug("cancelling stream %s", session.stream_id)
        await self._model.cancel(session.stream_id)

    async def cancel_all(self) -> None:
        for session in list(self._sessions.values()):
            if not session.terminal and session.superseded_by is None:
                await self.cancel(session.stream_id)

    def forget(self, stream_id: str) -> None:
        """Discard bookkeeping of a settled stream (and of the streams it superseded)."""
        chain: list[str] = []
        session = self._sessions.get(stream_id)
        while session is not None:
            chain.append(session.stream_id)
            session = self._sessions.get(session.superseded_by) if session.superseded_by else None
        for sid in chain:
            settled = self._sessions[sid]
            if settled.terminal or settled.superseded_by is not None:
                self._discard(sid)

    def _schedule_cleanup(self, session: StreamSession, delay: float) -> None:
        if session.cleanup_timer is not None:
            session.cleanup_timer.cancel()
        session.cleanup_timer = asyncio.get_running_loop().call_later(delay, self._discard, session.stream_id)

    def _discard(self, stream_id: str) -> None:
        session = self._sessions.pop(stream_id, None)
        if session is None:
            return
        session.clear_first_token_timer()
        if session.cleanup_timer is not None:
            session.cleanup_timer.cancel()

    # ------------------------------------------------------------------
    # First-token timeout and automatic retry
    # ------------------------------------------------------------------

    def _on_first_token_timeout(self, stream_id: str) -> None:
        session = self._sessions.get(stream_id)
        if session is None:
            return
        session.first_token_timer = None
        if session.terminal or session.retrying or session.manually_cancelled:
            return
        if session.token_seen or session.output:
            return
        group = session.version_group_id
        attempts = self._retry_counts.get(group, 0)
        if attempts >= self._settings.auto_retry_max:
            _LOG.warning("stream %s has no first token and group %s has no retries left", stream_id, group)
            return
        self._retry_counts[group] = attempts + 1
        session.retrying = True
        session.phase = StreamPhase.RETRYING
        message = self._assistant(session)
        if message is not None:
            message.phase = StreamPhase.RETRYING
        _LOG.info("no first token on %s after %.0fs, retrying", stream_id, self._settings.first_token_timeout)
        self._observer.stream_event(StreamStatus(stream_id=stream_id, phase=StreamPhase.RETRYING))
        self._spawn(self._auto_retry(session))

    async def _wait_until(self, predicate: Callable[[], bool]) -> bool:
        for _ in range(self._settings.quiesce_attempts):
            if predicate():
                return True
            await asyncio.sleep(self._settings.quiesce_interval)
        return predicate()

    async def _auto_retry(self, session: StreamSession) -> None:
        try:
            await self._model.cancel(session.stream_id)
            await self._wait_until(session.backend_finished.is_set)
            message = self._assistant(session)
            if message is None:
                raise StreamError("assistant message disappeared before retry")
            message.streaming = False
            message.phase = None
            if not await self._wait_until(lambda: not self.is_streaming):
                raise StreamError("another stream is still active")
            self._snapshot_version(message, cancelled=True)
            new_stream_id = self._launch(
                session.messages,
                user_message_id=session.user_message_id,
                version_group_id=session.version_group_id,
                agent_id=session.agent_id,
                reuse_assistant_id=message.id,
            )
            session.superseded_by = new_stream_id
            session.terminal = True
            _LOG.debug("stream %s superseded by %s", session.stream_id, new_stream_id)
            if not session.settled.done():
                session.settled.set_result(None)
        except NovelPilotError as exc:
            session.terminal = True
            session.error = str(exc)
            if not session.settled.done():
                session.settled.set_exception(StreamError(f"automatic retry failed: {exc}"))
        self._schedule_cleanup(session, self._settings.cleanup_after_done)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def _snapshot_version(self, message: ChatItem, *, cancelled: bool) -> None:
        if message.version_group_id is None:
            return
        index, count = self.conversation.upsert_version(
            message.version_group_id,
            AssistantVersion(
                content=message.content,
                change_set_ids=list(message.change_set_ids),
                cancelled=cancelled,
                timestamp=time.time(),
            ),
        )
        message.version_index = index
        message.version_count = count

    async def regenerate(self, assistant_message_id: str, *, agent_id: str | None = None) -> str | None:
        """Re-issue the user turn behind *assistant_message_id* as a new version of the same group."""
        if self.is_streaming:
            return None
        message = self.conversation.find(assistant_message_id)
        if message is None or message.role is not Role.ASSISTANT:
            raise StreamError(f"assistant message not found: {assistant_message_id}")
        history = self.conversation.history_before(assistant_message_id)
        user = Conversation.last_user(history)
        if user is None:
            return None
        self._snapshot_version(message, cancelled=message.cancelled)
        return await self._start_turn(
            user.content,
            SendTurnOptions(
                use_existing_last_user=True,
                version_group_id=message.version_group_id,
                source_messages=history,
                agent_id=agent_id,
            ),
            reuse_assistant_id=assistant_message_id,
        )

    async def generate_candidates(self, assistant_message_id: str, rounds: int) -> list[str]:
        stream_ids: list[str] = []
        for _ in range(max(1, min(MAX_CANDIDATE_ROUNDS, rounds))):
            stream_id = await self.regenerate(assistant_message_id)
            if stream_id is None:
                break
            stream_ids.append(stream_id)
            await self.wait_for_completion(stream_id)
        return stream_ids

    def switch_version(self, assistant_message_id: str, delta: int) -> ChatItem | None:
        message = self.conversation.find(assistant_message_id)
        if message is None or message.streaming or message.version_group_id is None:
            return None
        versions = self.conversation.versions(message.version_group_id)
        if not versions:
            return None
        index = (message.version_index + delta) % len(versions)
        version = versions[index]
        message.content = version.content
        message.change_set_ids = list(version.change_set_ids)
        message.cancelled = version.cancelled
        message.version_index = index
        message.version_count = len(versions)
        return message

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def rollback_last_turn(self) -> RollbackTurn | None:
        """Undo the most recent turn still present in the transcript."""
        stack = self.conversation.rollback_stack
        turn: RollbackTurn | None = None
        while stack:
            candidate = stack[-1]
            if (
                self.conversation.find(candidate.user_message_id) is None
                or self.conversation.find(candidate.assistant_message_id) is None
            ):
                stack.pop()
                continue
            turn = candidate
            break
        if turn is None:
            return None

        session = self._resolve(turn.stream_id)
        if session is not None:
            if not session.terminal:
                session.manually_cancelled = True
                session.terminal = True
                session.clear_first_token_timer()
                await self._model.cancel(session.stream_id)
            if not session.settled.done():
                session.settled.set_exception(StreamCancelledError(f"turn rolled back: {session.stream_id}"))
            self._discard(session.stream_id)

        for change_set_id in reversed(turn.change_set_ids):
            try:
                await self._changes.rollback_change_set(change_set_id)
            except ChangeSetError as exc:
                _LOG.debug("change set %s already gone: %s", change_set_id, exc)
            self._changes.delete_change_set(change_set_id)

        assistant = self.conversation.find(turn.assistant_message_id)
        if assistant is not None and assistant.version_group_id is not None:
            self.conversation.drop_versions(assistant.version_group_id)
            self._retry_counts.pop(assistant.version_group_id, None)
        self.conversation.remove({turn.user_message_id, turn.assistant_message_id})
        stack.pop()
        _LOG.debug("rolled back turn of stream %s", turn.stream_id)
        return turn

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for pending event-handling tasks (finalization, imports) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for stream_id in list(self._sessions):
            self._discard(stream_id)
