from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from types import TracebackType
from typing import Any

import pytest

from novelpilot import (
    ChangeSetError,
    ConfigError,
    ModelError,
    NovelPilotConfig,
    PlannerError,
    RunQueue,
    SessionState,
    StreamTimeoutError,
    Task,
    TaskStatus,
    WorkspaceError,
    WriterMode,
)
from novelpilot.cli import (
    _format_auto_summary,
    _format_chat_reply,
    _format_plan_summary,
    _format_run_summary,
    _format_status_summary,
    _run_chat,
    _run_plan,
    _run_queue,
    _run_status,
    build_parser,
    main,
)
from novelpilot.core.autowrite import AutoWriteReport
from novelpilot.core.planner import QueueRunReport
from novelpilot.sdk import ChatResult, WorkspaceStatus


def _make_config(tmp_path: Path, mode: WriterMode = WriterMode.PLAN) -> NovelPilotConfig:
    return NovelPilotConfig(workspace_root=tmp_path, mode=mode)


def _make_args(command: str, **overrides: Any) -> argparse.Namespace:
    values: dict[str, Any] = {
        "command": command,
        "config": "/tmp/novelpilot.json",
        "mode": None,
        "verbose": False,
        "instruction": "",
        "target_words": None,
        "file": None,
        "text": "",
    }
    values.update(overrides)
    return argparse.Namespace(**values)


def _tasks() -> list[Task]:
    return [
        Task(id="task-0001", title="开端", status=TaskStatus.DONE, scope="stories/chapter-0001.md", target_words=3000),
        Task(
            id="task-0002",
            title="发展",
            status=TaskStatus.RETRY,
            depends_on=["task-0001"],
            scope="stories/chapter-0002.md",
            target_words=3000,
            last_error="too short",
        ),
    ]


class _FakePilot:
    """Stands in for the SDK inside ``async with await NovelPilot.from_config(...)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    async def __aenter__(self) -> _FakePilot:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.calls.append(("exit", None))

    async def set_mode(self, mode: WriterMode) -> None:
        self.calls.append(("set_mode", mode))

    async def restore_mode(self) -> WriterMode:
        self.calls.append(("restore_mode", None))
        return WriterMode.SPEC

    def open_file(self, path: str | None) -> None:
        self.calls.append(("open_file", path))

    async def send(self, text: str) -> ChatResult:
        self.calls.append(("send", text))
        return ChatResult(mode=WriterMode.SPEC, auto_run=True, stream_id="s1", output="好的")

    async def prepare_plan(self, *, instruction: str, target_words: int | None) -> list[Task]:
        self.calls.append(("prepare_plan", (instruction, target_words)))
        return _tasks()

    async def run_queue(self, instruction: str) -> QueueRunReport:
        self.calls.append(("run_queue", instruction))
        return QueueRunReport(status="planner queue finished: 1 task(s) done", completed=["task-0001"])

    async def auto_write(self, path: str | None) -> AutoWriteReport:
        self.calls.append(("auto_write", path))
        return AutoWriteReport(status="Auto stopped.", rounds=2, final_path=path)

    async def status(self) -> WorkspaceStatus:
        return WorkspaceStatus(
            session=SessionState(session_id="default", mode=WriterMode.PLAN, auto_run=True),
            queue=RunQueue(mode=WriterMode.PLAN, tasks=_tasks()),
            has_master_plan=True,
        )


@pytest.fixture
def pilot(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> _FakePilot:
    fake = _FakePilot()
    config = _make_config(tmp_path)

    async def _fake_from_config(input_config: NovelPilotConfig, **_kwargs: object) -> _FakePilot:
        fake.calls.append(("from_config", input_config))
        return fake

    monkeypatch.setattr("novelpilot.cli.load_config", lambda _: config)
    monkeypatch.setattr("novelpilot.cli.NovelPilot.from_config", _fake_from_config)
    return fake


def test_build_parser_requires_subcommand() -> None:
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args([])

    assert exc.value.code == 2


def test_build_parser_rejects_unknown_mode() -> None:
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["run", "--mode", "poetry"])

    assert exc.value.code == 2


def test_build_parser_auto_requires_file() -> None:
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["auto"])

    assert exc.value.code == 2


def test_build_parser_accepts_plan_arguments() -> None:
    args = build_parser().parse_args(
        ["plan", "--config", "book/novelpilot.json", "--mode", "spec", "--target-words", "90000", "-v"]
    )

    assert args.command == "plan"
    assert args.config == "book/novelpilot.json"
    assert args.mode == "spec"
    assert args.target_words == 90000
    assert args.verbose is True


def test_build_parser_chat_defaults() -> None:
    args = build_parser().parse_args(["chat", "/plan 写第二幕"])

    assert args.text == "/plan 写第二幕"
    assert args.file is None
    assert args.mode is None
    assert args.config is None


def test_build_parser_version_prints_and_exits(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["--version"])

    assert exc.value.code == 0
    assert "novelpilot" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_plan_delegates_to_sdk(pilot: _FakePilot, capsys: pytest.CaptureFixture[str]) -> None:
    args = _make_args("plan", mode="spec", instruction="武侠", target_words=90000)

    tasks = await _run_plan(args)

    assert [task.id for task in tasks] == ["task-0001", "task-0002"]
    assert ("set_mode", WriterMode.SPEC) in pilot.calls
    assert ("prepare_plan", ("武侠", 90000)) in pilot.calls
    assert pilot.calls[-1] == ("exit", None)
    assert "novelpilot - plan ready (spec)" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_plan_refuses_normal_mode(pilot: _FakePilot) -> None:
    with pytest.raises(PlannerError, match="normal mode has no plan"):
        await _run_plan(_make_args("plan", mode="normal"))

    assert pilot.calls == []


@pytest.mark.asyncio
async def test_run_queue_verbose_skips_progress(pilot: _FakePilot, capsys: pytest.CaptureFixture[str]) -> None:
    report = await _run_queue(_make_args("run", verbose=True, instruction="多写对话"))

    assert report.completed == ["task-0001"]
    assert ("set_mode", WriterMode.PLAN) in pilot.calls
    assert ("run_queue", "多写对话") in pilot.calls
    assert "Completed: 1 (task-0001)" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_chat_restores_persisted_mode_without_override(pilot: _FakePilot) -> None:
    result = await _run_chat(_make_args("chat", text="继续", file="stories/chapter-0001.md"))

    assert result.output == "好的"
    assert [name for name, _ in pilot.calls] == ["from_config", "restore_mode", "open_file", "send", "exit"]
    assert ("open_file", "stories/chapter-0001.md") in pilot.calls


@pytest.mark.asyncio
async def test_run_chat_with_mode_override_sets_mode(pilot: _FakePilot) -> None:
    await _run_chat(_make_args("chat", text="继续", mode="normal"))

    assert ("set_mode", WriterMode.NORMAL) in pilot.calls
    assert ("restore_mode", None) not in pilot.calls


@pytest.mark.asyncio
async def test_run_status_prints_queue(pilot: _FakePilot, capsys: pytest.CaptureFixture[str]) -> None:
    await _run_status(_make_args("status"))

    out = capsys.readouterr().out
    assert "Tasks:     2 total (1 done, 1 retry)" in out
    assert "[~] task-0002 发展 (stories/chapter-0002.md) - too short" in out


@pytest.mark.asyncio
async def test_run_status_without_config_file_uses_dry_run_defaults(
    monkeypatch: pytest.MonkeyPatch, pilot: _FakePilot, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)

    await _run_status(_make_args("status", config=None))

    name, config = pilot.calls[0]
    assert name == "from_config"
    assert config == NovelPilotConfig(workspace_root=tmp_path.resolve())


@pytest.mark.asyncio
async def test_run_status_without_config_flag_loads_cwd_config(
    monkeypatch: pytest.MonkeyPatch, pilot: _FakePilot, tmp_path: Path
) -> None:
    (tmp_path / "novelpilot.json").write_text("{}", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    loaded: list[object] = []
    monkeypatch.setattr("novelpilot.cli.load_config", lambda path: loaded.append(path) or _make_config(tmp_path))

    await _run_status(_make_args("status", config=None))

    assert loaded == [tmp_path.resolve() / "novelpilot.json"]
    assert pilot.calls[0] == ("from_config", _make_config(tmp_path))


def test_main_routes_auto_to_sdk(monkeypatch: pytest.MonkeyPatch, pilot: _FakePilot) -> None:
    monkeypatch.setattr("novelpilot.cli.logging.basicConfig", lambda **_: None)

    exit_code = main(["auto", "--file", "stories/chapter-0003.md", "--verbose"])

    assert exit_code == 0
    assert ("auto_write", "stories/chapter-0003.md") in pilot.calls


def test_main_returns_zero_on_success(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("novelpilot.cli.asyncio.run", lambda coro: coro.close())

    assert main(["status"]) == 0


def test_main_enables_verbose_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("novelpilot.cli.asyncio.run", lambda coro: coro.close())
    captured: dict[str, object] = {}

    def _fake_basic_config(**kwargs: object) -> None:
        captured.update(kwargs)

    monkeypatch.setattr("novelpilot.cli.logging.basicConfig", _fake_basic_config)

    main(["status", "--verbose"])

    assert captured["level"] == logging.DEBUG
    assert captured["stream"] == sys.stderr


@pytest.mark.parametrize(
    ("error", "exit_code"),
    [
        (ConfigError("bad config"), 3),
        (ModelError("API key is not set", stage="settings"), 4),
        (PlannerError("queue broken"), 5),
        (StreamTimeoutError("timed out waiting for AI response"), 5),
        (ChangeSetError("Change set x not found"), 5),
        (WorkspaceError("read failed"), 5),
        (RuntimeError("boom"), 1),
    ],
)
def test_main_maps_errors_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    error: Exception,
    exit_code: int,
) -> None:
    def _raise(coro: Any) -> None:
        coro.close()
        raise error

    monkeypatch.setattr("novelpilot.cli.asyncio.run", _raise)

    actual = main(["run", "--mode", "plan"])

    assert actual == exit_code
    captured = capsys.readouterr()
    assert "error:" in captured.err
    assert str(error) in captured.err


def test_format_plan_summary(tmp_path: Path) -> None:
    text = _format_plan_summary(_tasks(), _make_config(tmp_path, WriterMode.SPEC))

    assert "Tasks:     2 total (1 done, 1 retry)" in text
    assert "Volumes:   1" in text
    assert "Words:     6000" in text
    assert "First:     task-0001 开端" in text


def test_format_run_summary_shows_blocked_task(tmp_path: Path) -> None:
    report = QueueRunReport(status="task task-0002 blocked: too short", blocked_task_id="task-0002")

    text = _format_run_summary(report, _make_config(tmp_path))

    assert "Completed: 0 (none)" in text
    assert "Blocked:   task-0002" in text


def test_format_auto_summary(tmp_path: Path) -> None:
    report = AutoWriteReport(status="Auto paused: no measurable file growth.", rounds=3, chapter_advances=1)

    text = _format_auto_summary(report, _make_config(tmp_path, WriterMode.NORMAL))

    assert "auto-write (normal)" in text
    assert "Advances:  1" in text
    assert "File:      none" in text


def test_format_chat_reply_variants() -> None:
    directive_only = ChatResult(mode=WriterMode.PLAN, auto_run=False)
    edited = ChatResult(
        mode=WriterMode.NORMAL,
        auto_run=False,
        stream_id="s1",
        output="改好了",
        cancelled=True,
        change_set_ids=["cs-1", "cs-2"],
    )

    assert _format_chat_reply(directive_only) == "[plan] auto-run: off"
    assert _format_chat_reply(edited).splitlines() == [
        "[normal] auto-run: off",
        "(cancelled)",
        "",
        "改好了",
        "",
        "change sets: cs-1, cs-2",
    ]


def test_format_status_summary_without_queue(tmp_path: Path) -> None:
    status = WorkspaceStatus(
        session=SessionState(session_id="default", last_error="provider unreachable"),
        queue=RunQueue(),
        has_master_plan=False,
    )

    text = _format_status_summary(status, _make_config(tmp_path))

    assert "Plan:      missing" in text
    assert "Queue:     none" in text
    assert "Next:      none" in text
    assert "Error:     provider unreachable" in text
