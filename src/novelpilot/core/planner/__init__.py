"""Task queue and planner engine."""

from novelpilot.core.planner.documents import parse_front_matter, parse_task_list, sanitize_task, to_front_matter
from novelpilot.core.planner.prompts import build_mode_prompt, build_task_prompt
from novelpilot.core.planner.quality import HeuristicQualityValidator, count_chars
from novelpilot.core.planner.runner import QueueRunner, QueueRunReport
from novelpilot.core.planner.service import PlannerService
from novelpilot.core.planner.tasks import build_default_tasks, extract_task_summary, select_next_task

__all__ = [
    "HeuristicQualityValidator",
    "PlannerService",
    "QueueRunReport",
    "QueueRunner",
    "build_default_tasks",
    "build_mode_prompt",
    "build_task_prompt",
    "count_chars",
    "extract_task_summary",
    "parse_front_matter",
    "parse_task_list",
    "sanitize_task",
    "select_next_task",
    "to_front_matter",
]
