"""Quality validator fake."""

from __future__ import annotations

from collections.abc import Callable

from novelpilot.core.contracts.quality import QualityValidator, QualityVerdict
from novelpilot.core.contracts.task import Task


class ScriptedValidator(QualityValidator):
    """Returns queued verdicts (passing once exhausted) and records what it saw."""

    def __init__(self, *verdicts: QualityVerdict, on_validate: Callable[[], None] | None = None) -> None:
        self._verdicts = list(verdicts)
        self._on_validate = on_validate
        self.seen: list[tuple[str, str]] = []

    async def validate(self, task: Task, generated_text: str, task_pool: list[Task]) -> QualityVerdict:
        self.seen.append((task.id, generated_text))
        if self._on_validate is not None:
            self._on_validate()
        return self._verdicts.pop(0) if self._verdicts else QualityVerdict.passed()


__all__ = ["ScriptedValidator"]
