from __future__ import annotations

from novelpilot.core.contracts.task import Task, TaskPriority, TaskStatus, WriterMode
from novelpilot.core.planner import build_default_tasks, extract_task_summary, select_next_task


def _task(task_id: str, status: TaskStatus = TaskStatus.TODO, depends_on: list[str] | None = None) -> Task:
    return Task(id=task_id, title=task_id, status=status, depends_on=depends_on or [])


def test_select_next_task_waits_for_dependencies() -> None:
    tasks = [
        _task("A", TaskStatus.DONE),
        _task("B", depends_on=["A"]),
        _task("C", depends_on=["B"]),
    ]

    selected = select_next_task(tasks)

    assert selected is not None
    assert selected.id == "B"


def test_select_next_task_picks_retry_and_skips_blocked_chains() -> None:
    tasks = [
        _task("A", TaskStatus.BLOCKED),
        _task("B", depends_on=["A"]),
        _task("C", TaskStatus.RETRY),
    ]

    selected = select_next_task(tasks)

    assert selected is not None
    assert selected.id == "C"


def test_select_next_task_returns_none_when_nothing_is_runnable() -> None:
    assert select_next_task([_task("A", TaskStatus.DONE), _task("B", TaskStatus.RUNNING)]) is None
    assert select_next_task([]) is None


def test_spec_tasks_are_split_into_volumes() -> None:
    tasks = build_default_tasks(WriterMode.SPEC, 20_000, 2000, "主角离家")

    assert len(tasks) == 24
    first, last_of_volume, first_of_next = tasks[0], tasks[11], tasks[12]
    assert first.title == "卷1·第1章·起势"
    assert first.scope == "stories/vol-01/chapter-0001.md"
    assert first.depends_on == []
    assert first.priority is TaskPriority.HIGH
    assert first.target_words == 1200
    assert first.foreshadow_refs == ["伏笔-01-01"]
    assert "计划摘要（节选）：主角离家" in first.task_prompt
    assert "卷1阶段收束" in last_of_volume.arc_targets
    assert first_of_next.scope == "stories/vol-02/chapter-0013.md"
    assert first_of_next.timeline_window == "vol-02"
    assert all(task.depends_on == [tasks[i].id] for i, task in enumerate(tasks[1:]))


def test_plan_tasks_are_a_single_linear_chain() -> None:
    tasks = build_default_tasks(WriterMode.PLAN, 200_000, 2000)

    assert len(tasks) == 50
    assert tasks[0].title == "阶段1·开端"
    assert tasks[0].scope == "stories/chapter-0001.md"
    assert tasks[3].priority is TaskPriority.MEDIUM
    assert tasks[49].id == "task-0050"
    assert {task.target_words for task in tasks} == {4000}
    assert "暂无摘要" in tasks[0].task_prompt


def test_tiny_targets_are_raised_to_the_minimum() -> None:
    assert len(build_default_tasks(WriterMode.PLAN, 10, 0)) == 12


def test_extract_task_summary_keeps_last_lines_without_tag() -> None:
    reply = "line one\n\nline two\nline three\nline four\nTASK_DONE: task-0001"

    assert extract_task_summary(reply) == "line two line three line four"
