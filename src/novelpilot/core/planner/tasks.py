"""Default task generation and selection."""

from __future__ import annotations

import math

from novelpilot.core.contracts.task import Task, TaskPriority, TaskStatus, WriterMode

MIN_TARGET_WORDS = 20_000
VOLUME_TARGET_WORDS = 120_000
TASK_SUMMARY_CHARS = 360

SPEC_ARCS = ("起势", "扩张", "裂变", "反噬", "重组", "决战", "余波")
PLAN_ARCS = ("开端", "发展", "转折", "高潮", "收束")

DEFAULT_ACCEPTANCE_CHECKS = (
    "角色动机连续",
    "时间线不冲突",
    "与上一任务衔接自然",
    "结尾保留下一章钩子",
)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def task_id_for(index: int) -> str:
    return f"task-{index:04d}"


def build_default_tasks(
    mode: WriterMode,
    target_words: int,
    chapter_word_target: int,
    plan_summary: str = "",
) -> list[Task]:
    """Lay out a linear chain of chapter tasks sized to *target_words*.

    Spec mode splits the book into volumes of roughly 120k words and writes
    one task per chapter; plan mode writes one task per two chapters' worth
    of words. Every task depends on its predecessor.
    """
    safe_target = max(MIN_TARGET_WORDS, round(target_words))
    safe_chapter = _clamp(round(chapter_word_target or 2000), 800, 12_000)
    estimated = max(12, math.ceil(safe_target / safe_chapter))
    is_spec = mode is WriterMode.SPEC

    count = _clamp(estimated, 24, 800) if is_spec else _clamp(math.ceil(estimated / 2), 12, 240)
    words_per_task = max(1200, round(safe_target / count))
    arcs = SPEC_ARCS if is_spec else PLAN_ARCS
    volumes = _clamp(math.ceil(safe_target / VOLUME_TARGET_WORDS), 2, 40) if is_spec else 1
    per_volume = max(1, math.ceil(count / volumes))
    excerpt = plan_summary[:TASK_SUMMARY_CHARS] or "暂无摘要"

    tasks: list[Task] = []
    for i in range(count):
        chapter_no = i + 1
        arc = arcs[i % len(arcs)]
        if is_spec:
            volume = min(volumes, i // per_volume + 1)
            in_volume = i - (volume - 1) * per_volume + 1
            title = f"卷{volume}·第{in_volume}章·{arc}"
            scope = f"stories/vol-{volume:02d}/chapter-{chapter_no:04d}.md"
            volume_end = in_volume == per_volume or chapter_no == count
            arc_targets = [f"主线-{arc}", f"卷{volume}阶段收束" if volume_end else f"卷{volume}推进"]
            foreshadow = [f"伏笔-{volume:02d}-{in_volume:02d}"]
            timeline = f"vol-{volume:02d}"
        else:
            volume, in_volume = 1, chapter_no
            title = f"阶段{chapter_no}·{arc}"
            scope = f"stories/chapter-{chapter_no:04d}.md"
            volume_end = False
            arc_targets = [f"主线-{arc}"]
            foreshadow = []
            timeline = "global"

        prompt_lines = [
            f"本任务属于“{arc}”阶段，目标是推进主线并落实人物弧线。",
            f"当前为卷 {volume} 的章节任务（卷内序号 {in_volume}）。" if is_spec else "",
            f"计划摘要（节选）：{excerpt}",
            "请包含至少一个伏笔推进或回收动作。" if is_spec else "保持阶段节奏，不要跳过关键冲突。",
            "这是卷末节点，需要形成阶段性冲突闭环并抛出新悬念。" if volume_end else "",
        ]
        tasks.append(
            Task(
                id=task_id_for(chapter_no),
                title=title,
                priority=TaskPriority.HIGH if i < 3 else TaskPriority.MEDIUM,
                depends_on=[task_id_for(i)] if i > 0 else [],
                target_words=words_per_task,
                scope=scope,
                volume=volume,
                chapter_index=chapter_no,
                acceptance_checks=list(DEFAULT_ACCEPTANCE_CHECKS),
                arc_targets=arc_targets,
                foreshadow_refs=foreshadow,
                timeline_window=timeline,
                task_prompt="\n".join(prompt_lines),
            )
        )
    return tasks


def select_next_task(tasks: list[Task]) -> Task | None:
    """First todo/retry task, in stored order, whose dependencies are all done."""
    done = {task.id for task in tasks if task.status is TaskStatus.DONE}
    for task in tasks:
        if task.is_runnable_status and all(dep in done for dep in task.depends_on):
            return task
    return None


def extract_task_summary(text: str) -> str:
    """Last three meaningful lines of a task reply, without the completion tag."""
    lines = [line.strip() for line in text.strip().split("\n")]
    useful = [line for line in lines if line and not line.startswith("TASK_DONE:")]
    return " ".join(useful[-3:]).strip()[:TASK_SUMMARY_CHARS]
