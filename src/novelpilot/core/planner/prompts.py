"""Prompt builders for plan generation, mode wrapping and task execution."""

from __future__ import annotations

import re

from novelpilot.core.contracts.task import ContextPack, Task, WriterMode

_NON_DIGITS_RE = re.compile(r"\D+")

_MODE_HEADERS = {
    WriterMode.NORMAL: "写作模式：Normal（无大纲）",
    WriterMode.PLAN: "写作模式：Plan（粗纲驱动）",
    WriterMode.SPEC: "写作模式：Spec（粗纲 + 细纲任务驱动）",
}


def build_plan_prompt(mode: WriterMode, target_words: int, chapter_word_target: int, instruction: str = "") -> str:
    is_spec = mode is WriterMode.SPEC
    lines = [
        f"你是小说总编剧。请输出一份可执行的{'超详细' if is_spec else '阶段化'}小说设计文档（Markdown）。",
        "要求：",
        f"- 总字数目标：{target_words}",
        f"- 章节目标字数：{chapter_word_target}",
        "- 必须包含：核心主题、主线冲突、三幕/多幕结构、角色弧线、伏笔清单、阶段目标。",
        "- 需要支持百万字长篇规划，分卷分阶段说明。" if is_spec else "- 粗纲层级清晰，便于按阶段写作。",
        f"- 用户补充：{instruction}" if instruction else "",
        "请直接输出 Markdown，不要输出 JSON，不要解释。",
    ]
    return "\n".join(line for line in lines if line)


def build_fallback_plan(mode: WriterMode, target_words: int, chapter_word_target: int, instruction: str = "") -> str:
    """Deterministic three-act plan used when the model returns nothing usable."""
    chapter_count = max(12, -(-target_words // max(800, chapter_word_target)))
    mode_name = "Spec" if mode is WriterMode.SPEC else "Plan"
    return "\n".join(
        [
            f"# {mode_name} 小说设计文档",
            "",
            "## 项目目标",
            f"- 总字数目标：{target_words:,} 字",
            f"- 章节目标：约 {chapter_count} 章（每章约 {chapter_word_target} 字）",
            f"- 创作说明：{instruction or '围绕核心冲突推进，保持叙事连贯。'}",
            "",
            "## 核心主线",
            "- 主角在稳定世界中遭遇不可逆转的冲突。",
            "- 通过阶段性失败和代价升级，推动人物成长。",
            "- 在结尾兑现伏笔并完成主题表达。",
            "",
            "## 三幕结构",
            "### 第一幕（建立）",
            "- 建立世界规则、角色欲望、初始关系。",
            "- 引发事件迫使主角离开舒适区。",
            "### 第二幕（对抗）",
            "- 冲突升级，主副线交叉推进。",
            "- 中点反转后，目标与代价重新定义。",
            "### 第三幕（收束）",
            "- 高潮对决与关键选择。",
            "- 伏笔回收、角色弧线完成、主题落地。",
            "",
            "## 角色弧线",
            "- 主角：从回避责任到主动承担。",
            "- 伙伴：从功利合作到价值共鸣。",
            "- 对手：由外部压迫转为价值镜像。",
            "",
            "## 伏笔池",
            "- 早期埋设：关键道具、失踪档案、被误读的预言。",
            "- 中期强化：身份错位、立场反转、规则漏洞。",
            "- 后期回收：真相揭示、代价兑现、情感闭环。",
        ]
    )


def build_mode_prompt(mode: WriterMode, user_input: str, context: ContextPack, active_path: str | None) -> str:
    constraints = [
        "- 必须保持剧情逻辑闭环与人物动机一致。",
        "- 优先沿用上下文既有设定，避免自相矛盾。",
        "- 需要修改文件时主动执行，不要只提示。",
    ]
    if active_path:
        constraints.append(f"- 当前编辑目标：{active_path}")
    context_block = (
        f"\n\n[上下文包]\n{context.summary}\n" if context.summary else "\n\n[上下文包]\n（暂无可读上下文）\n"
    )
    return "\n".join([_MODE_HEADERS[mode], *constraints, context_block, "[用户请求]", user_input.strip()])


def _task_body(mode: WriterMode, task: Task, chapter_number: int) -> str:
    checks = "\n".join(f"- {check}" for check in task.acceptance_checks)
    arcs = "，".join(task.arc_targets) if task.arc_targets else "主线推进"
    foreshadow = "，".join(task.foreshadow_refs) if task.foreshadow_refs else "无"
    instruction = (
        "你在 Spec 模式，必须严格按照任务约束写作，并主动修改目标文件。"
        if mode is WriterMode.SPEC
        else "你在 Plan 模式，按粗纲推进剧情，保持节奏和连贯性。"
    )
    return "\n".join(
        [
            instruction,
            "",
            f"任务ID：{task.id}",
            f"任务标题：{task.title}",
            f"目标文件：{task.scope}",
            f"卷号：{task.volume}，章节序号：{task.chapter_index}",
            f"目标字数：{task.target_words}",
            f"弧线目标：{arcs}",
            f"伏笔引用：{foreshadow}",
            f"时间窗口：{task.timeline_window}",
            "",
            "必须执行：",
            f"1. 如文件不存在请先创建，再写入完整章节文本（章节号建议使用第{chapter_number}章）。",
            "2. 使用工具主动修改文件，不要只给建议。",
            "3. 保持与既有设定一致，避免时间线与角色动机冲突。",
            "4. 在文本结尾加入下一章钩子。",
            "",
            "质量门槛（平衡）：",
            checks or "- 角色动机一致\n- 时间线连续\n- 与上一章衔接自然",
            "",
            "完成后请只做两件事：",
            "1. 输出一句“TASK_DONE: <task_id>”。",
            "2. 用 2-3 句总结本章推进点。",
            "",
            "任务详细说明：",
            task.task_prompt or task.title,
        ]
    )


def build_task_prompt(mode: WriterMode, task: Task, context: ContextPack, user_instruction: str = "") -> str:
    digits = _NON_DIGITS_RE.sub("", task.id)
    chapter_number = int(digits) if digits and int(digits) > 0 else 1
    extra = f"\n附加要求：{user_instruction.strip()}" if user_instruction.strip() else ""
    return "\n".join(
        [
            _task_body(mode, task, chapter_number),
            "",
            "上下文参考：",
            context.summary or "（暂无可用上下文）",
            extra,
        ]
    )
