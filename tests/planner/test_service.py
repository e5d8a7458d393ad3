from __future__ import annotations

import json

import pytest

from novelpilot.core.contracts.config import PlannerSettings, WritingSettings
from novelpilot.core.contracts.exceptions import ConfigError, ModelError
from novelpilot.core.contracts.task import TaskStatus, WriterMode
from novelpilot.core.planner import PlannerService, parse_front_matter
from novelpilot.core.planner.documents import (
    CONTINUITY_INDEX_PATH,
    MASTER_PLAN_PATH,
    MASTER_TASKS_PATH,
    PROJECT_SETTINGS_PATH,
    RUN_QUEUE_PATH,
    SESSION_STATE_PATH,
)
from tests.fakes.model import FakeModelService
from tests.fakes.observer import RecordingObserver
from tests.fakes.store import MemoryFileStore


def _planner(
    store: MemoryFileStore, model: FakeModelService | None = None, observer: RecordingObserver | None = None
) -> PlannerService:
    return PlannerService(
        store,
        model or FakeModelService(),
        settings=PlannerSettings(target_words=20_000),
        observer=observer,
    )


@pytest.mark.asyncio
async def test_ensure_workspace_seeds_state_files(store: MemoryFileStore) -> None:
    await _planner(store).ensure_workspace()

    assert json.loads(store.files[SESSION_STATE_PATH]) == {"sessions": {}}
    assert store.files[CONTINUITY_INDEX_PATH].startswith("# Continuity Index")
    assert ".novel/plans" in store.dirs


@pytest.mark.asyncio
async def test_project_settings_overlay_is_clamped() -> None:
    store = MemoryFileStore({PROJECT_SETTINGS_PATH: json.dumps({"auto_min_chars": 50, "theme": "dark"})})

    settings = await _planner(store).load_writing_settings(WritingSettings(chapter_word_target=3000))

    assert settings.auto_min_chars == 120
    assert settings.chapter_word_target == 3000


@pytest.mark.asyncio
async def test_unparsable_project_settings_raise_config_error() -> None:
    store = MemoryFileStore({PROJECT_SETTINGS_PATH: "{nope"})

    with pytest.raises(ConfigError, match="parse project settings failed"):
        await _planner(store).load_writing_settings()


@pytest.mark.asyncio
async def test_session_mode_controls_auto_run(store: MemoryFileStore) -> None:
    planner = _planner(store)

    fresh = await planner.get_session_state("s0")
    planned = await planner.set_session_mode("s1", WriterMode.PLAN)
    paused = await planner.set_session_auto_run("s1", False)
    normal = await planner.set_session_mode("s1", WriterMode.NORMAL)

    assert (fresh.mode, fresh.auto_run) == (WriterMode.NORMAL, False)
    assert (planned.mode, planned.auto_run) == (WriterMode.PLAN, True)
    assert paused.auto_run is False
    assert (await planner.set_session_mode("s1", WriterMode.SPEC)).auto_run is False
    assert (normal.mode, normal.auto_run) == (WriterMode.NORMAL, False)
    assert json.loads(store.files[SESSION_STATE_PATH])["sessions"]["s1"]["mode"] == "spec"


@pytest.mark.asyncio
async def test_session_state_is_sanitized_on_load() -> None:
    raw = {"sessions": {"s1": {"mode": "spec"}, "s2": {"mode": "weird", "auto_run": "yes"}, "s3": 5}}
    store = MemoryFileStore({SESSION_STATE_PATH: json.dumps(raw)})
    planner = _planner(store)

    spec = await planner.get_session_state("s1")
    weird = await planner.get_session_state("s2")

    assert (spec.mode, spec.auto_run) == (WriterMode.SPEC, True)
    assert (weird.mode, weird.auto_run) == (WriterMode.NORMAL, False)


@pytest.mark.asyncio
async def test_task_pointer_records_error(store: MemoryFileStore) -> None:
    state = await _planner(store).set_task_pointer("s1", "task-0003", "boom")

    assert (state.current_task_id, state.last_error) == ("task-0003", "boom")


@pytest.mark.asyncio
async def test_switching_to_normal_clears_task_pointer(store: MemoryFileStore) -> None:
    planner = _planner(store)
    await planner.set_session_mode("s1", WriterMode.PLAN)
    await planner.set_task_pointer("s1", "task-0003", None)

    kept = await planner.set_session_mode("s1", WriterMode.SPEC)
    normal = await planner.set_session_mode("s1", WriterMode.NORMAL)

    assert kept.current_task_id == "task-0003"
    assert (normal.mode, normal.auto_run, normal.current_task_id) == (WriterMode.NORMAL, False, None)
    assert (await planner.get_session_state("s1")).current_task_id is None


@pytest.mark.asyncio
async def test_master_plan_strips_fence_and_records_mode(store: MemoryFileStore) -> None:
    model = FakeModelService(completion="```markdown\n# 设计\n主线\n```")

    markdown = await _planner(store, model).generate_master_plan(WriterMode.SPEC, instruction="  写一部武侠  ")

    meta, body = parse_front_matter(markdown)
    assert body == "# 设计\n主线"
    assert meta["mode"] == "spec"
    assert meta["target_words"] == 20_000
    assert store.files[MASTER_PLAN_PATH] == markdown
    assert "写一部武侠" in model.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("completion", ["", ModelError("offline")])
async def test_master_plan_falls_back_when_model_gives_nothing(
    store: MemoryFileStore, completion: str | Exception
) -> None:
    model = FakeModelService(completion=completion)

    markdown = await _planner(store, model).generate_master_plan(WriterMode.PLAN, instruction="写一部武侠")

    _, body = parse_front_matter(markdown)
    assert body.startswith("# Plan 小说设计文档")
    assert "创作说明：写一部武侠" in body


@pytest.mark.asyncio
async def test_ensure_artifacts_reuses_matching_queue_and_regenerates_stale_one(store: MemoryFileStore) -> None:
    observer = RecordingObserver()
    model = FakeModelService(completion="# 设计")
    planner = _planner(store, model, observer)

    spec_tasks = await planner.ensure_artifacts(WriterMode.SPEC)
    again = await planner.ensure_artifacts(WriterMode.SPEC)
    plan_tasks = await planner.ensure_artifacts(WriterMode.PLAN)

    assert len(spec_tasks) == 24
    assert [task.id for task in again] == [task.id for task in spec_tasks]
    assert len(model.prompts) == 2
    assert len(plan_tasks) == 12
    assert (await planner.load_run_queue_state()).mode is WriterMode.PLAN
    assert MASTER_TASKS_PATH in store.files
    assert [mode for mode, _ in observer.queues] == [WriterMode.SPEC, WriterMode.PLAN]


@pytest.mark.asyncio
async def test_normal_mode_has_no_artifacts(store: MemoryFileStore) -> None:
    assert await _planner(store).ensure_artifacts(WriterMode.NORMAL) == []
    assert MASTER_PLAN_PATH not in store.files


@pytest.mark.asyncio
async def test_update_task_persists_queue(store: MemoryFileStore) -> None:
    planner = _planner(store)
    await planner.ensure_artifacts(WriterMode.PLAN)

    tasks = await planner.update_task(
        WriterMode.PLAN, "task-0001", lambda task: task.model_copy(update={"status": TaskStatus.DONE})
    )

    assert tasks[0].status is TaskStatus.DONE
    assert (await planner.load_run_queue())[0].status is TaskStatus.DONE
    assert "- [x] task-0001" in store.files[RUN_QUEUE_PATH]
    next_task = planner.next_task(tasks)
    assert next_task is not None and next_task.id == "task-0002"


@pytest.mark.asyncio
async def test_continuity_entries_are_appended(store: MemoryFileStore) -> None:
    planner = _planner(store)
    tasks = await planner.ensure_artifacts(WriterMode.PLAN)

    await planner.append_continuity_entry(tasks[0], " 主角离家。 ")
    await planner.append_continuity_entry(tasks[1], "遇见师父。")

    lines = store.files[CONTINUITY_INDEX_PATH].splitlines()
    assert lines[-2].endswith("[task-0001] 阶段1·开端: 主角离家。")
    assert lines[-1].endswith("[task-0002] 阶段2·发展: 遇见师父。")


@pytest.mark.asyncio
async def test_build_context_collects_neighbours_and_plan_documents() -> None:
    chapters = {f"stories/chapter-{i:04d}.md": f"第{i}章" for i in range(1, 7)}
    store = MemoryFileStore({**chapters, "stories/notes.json": "{}", "concept/characters.md": "林青：剑客"})
    planner = _planner(store)

    context = await planner.build_context(WriterMode.SPEC, "stories/chapter-0004.md")

    assert context.references[:5] == [f"stories/chapter-{i:04d}.md" for i in range(2, 7)]
    assert MASTER_PLAN_PATH in context.references
    assert RUN_QUEUE_PATH in context.references
    assert "### stories/chapter-0004.md\n第4章" in context.summary
    assert "### concept/characters.md\n林青：剑客" in context.summary
    assert "notes.json" not in context.summary


@pytest.mark.asyncio
async def test_build_context_without_active_file_uses_latest_chapters() -> None:
    store = MemoryFileStore({f"stories/chapter-{i:04d}.md": "x" for i in range(1, 6)})

    context = await _planner(store).build_context(WriterMode.NORMAL, None)

    assert context.references[:3] == [f"stories/chapter-{i:04d}.md" for i in range(3, 6)]
    assert MASTER_PLAN_PATH not in context.references


@pytest.mark.asyncio
async def test_wrap_prompt_embeds_request_and_target() -> None:
    store = MemoryFileStore({"stories/chapter-0001.md": "开头"})

    prompt = await _planner(store).wrap_prompt(WriterMode.NORMAL, "  继续写  ", "stories/chapter-0001.md")

    assert prompt.endswith("[用户请求]\n继续写")
    assert "- 当前编辑目标：stories/chapter-0001.md" in prompt
    assert "### stories/chapter-0001.md\n开头" in prompt
