"""Quality validator contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from novelpilot.core.contracts.task import Task


@dataclass(frozen=True)
class QualityVerdict:
    ok: bool
    reason: str | None = None

    @classmethod
    def passed(cls) -> QualityVerdict:
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: str) -> QualityVerdict:
        return cls(ok=False, reason=reason)


class QualityValidator(ABC):
    @abstractmethod
    async def validate(self, task: Task, generated_text: str, task_pool: list[Task]) -> QualityVerdict:
        ...  # pragma: no cover
