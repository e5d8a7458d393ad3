"""Writing task and planner session contracts."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class WriterMode(StrEnum):
    NORMAL = "normal"
    PLAN = "plan"
    SPEC = "spec"


class TaskStatus(StrEnum):
    TODO = "todo"
    RUNNING = "running"
    BLOCKED = "blocked"
    DONE = "done"
    RETRY = "retry"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(BaseModel):
    """One planner-scheduled unit of chapter-writing work."""

    id: str
    title: str
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    depends_on: list[str] = Field(default_factory=list)
    target_words: int = Field(default=2000, ge=500)
    scope: str = ""
    volume: int = Field(default=1, ge=1)
    chapter_index: int = Field(default=1, ge=1)
    acceptance_checks: list[str] = Field(default_factory=list)
    arc_targets: list[str] = Field(default_factory=list)
    foreshadow_refs: list[str] = Field(default_factory=list)
    timeline_window: str = "global"
    task_prompt: str = ""
    retries: int = Field(default=0, ge=0)
    last_error: str | None = None
    completed_at: str | None = None

    @property
    def is_runnable_status(self) -> bool:
        return self.status in (TaskStatus.TODO, TaskStatus.RETRY)


class RunQueue(BaseModel):
    """Run queue as stored in ``run-queue.md``; *mode* is ``None`` when no queue exists yet."""

    mode: WriterMode | None = None
    tasks: list[Task] = Field(default_factory=list)


class SessionState(BaseModel):
    session_id: str
    mode: WriterMode = WriterMode.NORMAL
    auto_run: bool = False
    current_task_id: str | None = None
    updated_at: str = ""
    last_error: str | None = None


class SessionStore(BaseModel):
    sessions: dict[str, SessionState] = Field(default_factory=dict)


class ContextPack(BaseModel):
    """Workspace excerpts assembled for one prompt."""

    mode: WriterMode
    active_path: str | None = None
    summary: str = ""
    references: list[str] = Field(default_factory=list)
