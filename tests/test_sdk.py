from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from novelpilot import (
    NovelPilot,
    NovelPilotConfig,
    PlannerSettings,
    StreamError,
    StreamSettings,
    WriterMode,
)
from novelpilot.core.contracts.config import WritingSettings
from novelpilot.core.planner.documents import (
    MASTER_PLAN_PATH,
    PROJECT_SETTINGS_PATH,
    RUN_QUEUE_PATH,
    SESSION_STATE_PATH,
)
from novelpilot.core.workspace import LocalFileStore
from tests.fakes.model import FakeModelService, ScriptedReply
from tests.fakes.observer import RecordingObserver
from tests.fakes.store import MemoryFileStore


def _config(**overrides: object) -> NovelPilotConfig:
    data: dict[str, object] = {
        "planner": PlannerSettings(target_words=20_000),
        "streams": StreamSettings(first_token_timeout=0.05, completion_timeout=2.0, quiesce_interval=0.005),
    }
    data.update(overrides)
    return NovelPilotConfig.model_validate(data)


def _pilot(store: MemoryFileStore, model: FakeModelService, **overrides: object) -> NovelPilot:
    return NovelPilot(
        config=_config(**overrides),
        model=model,
        store=store,
        writing=WritingSettings(round_settle_delay=0, switch_delay=0, refused_send_delay=0),
    )


@pytest.mark.asyncio
async def test_context_manager_opens_and_closes_model(store: MemoryFileStore, model: FakeModelService) -> None:
    async with _pilot(store, model) as pilot:
        assert pilot.mode is WriterMode.NORMAL
        assert model.entered == 1

    assert model.exited == 1


@pytest.mark.asyncio
async def test_send_streams_wrapped_prompt(store: MemoryFileStore) -> None:
    model = FakeModelService(["雨停了。"])

    async with _pilot(store, model) as pilot:
        pilot.open_file("stories/chapter-0001.md")
        result = await pilot.send("  继续写  ")

    assert result.output == "雨停了。"
    assert result.stream_id is not None
    assert result.cancelled is False
    assert result.change_set_ids == []
    assert (result.mode, result.auto_run) == (WriterMode.NORMAL, False)
    prompt = model.last_prompt
    assert prompt.startswith("写作模式：Normal（无大纲）")
    assert "- 当前编辑目标：stories/chapter-0001.md" in prompt
    assert prompt.endswith("[用户请求]\n继续写")


@pytest.mark.asyncio
async def test_mode_directive_switches_mode_and_sends_rest(store: MemoryFileStore) -> None:
    model = FakeModelService(["好"])

    async with _pilot(store, model) as pilot:
        result = await pilot.send("/细纲 写第二幕")

    assert result.mode is WriterMode.SPEC
    assert result.auto_run is True
    assert model.last_prompt.startswith("写作模式：Spec")
    assert model.last_prompt.endswith("写第二幕")
    assert '"mode": "spec"' in store.files[SESSION_STATE_PATH]


@pytest.mark.asyncio
async def test_directive_without_text_does_not_stream(store: MemoryFileStore, model: FakeModelService) -> None:
    async with _pilot(store, model) as pilot:
        result = await pilot.send("/plan")

    assert result.stream_id is None
    assert result.mode is WriterMode.PLAN
    assert model.calls == []


@pytest.mark.asyncio
async def test_auto_directive_toggles_and_sets_flag(store: MemoryFileStore, model: FakeModelService) -> None:
    async with _pilot(store, model) as pilot:
        await pilot.set_mode(WriterMode.PLAN)
        toggled = await pilot.send("/auto")
        enabled = await pilot.send("/auto on")
        disabled = await pilot.send("/auto off extra words")

    assert toggled.auto_run is False
    assert enabled.auto_run is True
    assert disabled.auto_run is False
    assert model.calls == []


@pytest.mark.asyncio
async def test_send_refuses_while_streaming(store: MemoryFileStore) -> None:
    model = FakeModelService([ScriptedReply(hang=True)])

    async with _pilot(store, model, streams=StreamSettings(first_token_timeout=30.0)) as pilot:
        first = asyncio.create_task(pilot.send("第一段"))
        for _ in range(100):
            await asyncio.sleep(0)
            if model.calls:
                break

        with pytest.raises(StreamError, match="already in progress"):
            await pilot.send("第二段")

        await pilot.streams.cancel(model.calls[0][0])
        result = await first

    assert result.cancelled is True


@pytest.mark.asyncio
async def test_restore_mode_uses_persisted_session(store: MemoryFileStore, model: FakeModelService) -> None:
    async with _pilot(store, model) as pilot:
        await pilot.set_mode(WriterMode.SPEC)

    async with _pilot(store, model) as pilot:
        assert pilot.mode is WriterMode.NORMAL
        assert await pilot.restore_mode() is WriterMode.SPEC
        assert pilot.mode is WriterMode.SPEC


@pytest.mark.asyncio
async def test_prepare_plan_and_status(store: MemoryFileStore) -> None:
    model = FakeModelService(completion="# 设计\n主线")

    async with _pilot(store, model) as pilot:
        empty = await pilot.status()
        await pilot.set_mode(WriterMode.PLAN)
        tasks = await pilot.prepare_plan(instruction="武侠")
        status = await pilot.status()
        queue = await pilot.queue()

    assert empty.has_master_plan is False
    assert empty.queue.tasks == []
    assert len(tasks) == 12
    assert [task.id for task in queue] == [task.id for task in tasks]
    assert "武侠" in model.prompts[0]
    assert MASTER_PLAN_PATH in store.files
    assert RUN_QUEUE_PATH in store.files
    assert status.has_master_plan is True
    assert status.queue.mode is WriterMode.PLAN
    assert status.session.mode is WriterMode.PLAN
    assert status.pending_change_sets == 0


@pytest.mark.asyncio
async def test_from_config_overlays_project_settings(model: FakeModelService) -> None:
    store = MemoryFileStore({PROJECT_SETTINGS_PATH: '{"chapter_word_target": 3500, "unknown": 1}'})
    observer = RecordingObserver()

    pilot = await NovelPilot.from_config(_config(), observer=observer, model=model, store=store)

    assert pilot.writing.chapter_word_target == 3500
    assert pilot.store is store
    await pilot.aclose()


@pytest.mark.asyncio
async def test_from_config_defaults_to_local_store(tmp_path: Path, model: FakeModelService) -> None:
    pilot = await NovelPilot.from_config(_config(workspace_root=tmp_path), model=model)

    assert isinstance(pilot.store, LocalFileStore)
    assert pilot.writing == WritingSettings()
    await pilot.aclose()
