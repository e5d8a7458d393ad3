"""Change-set and modification contracts."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class ModificationType(StrEnum):
    ADD = "add"
    DELETE = "delete"
    MODIFY = "modify"


class ModificationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ChangeSetStatus(StrEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DiffChange(BaseModel):
    """One line-numbered change record; line numbers refer to the original text."""

    type: ModificationType
    line_start: int
    line_end: int
    original_text: str | None = None
    modified_text: str | None = None


class DiffStats(BaseModel):
    additions: int = 0
    deletions: int = 0
    modifications: int = 0


class DiffResult(BaseModel):
    changes: list[DiffChange] = Field(default_factory=list)
    stats: DiffStats = Field(default_factory=DiffStats)


class Modification(BaseModel):
    id: str
    type: ModificationType
    line_start: int = Field(ge=1)
    line_end: int
    original_text: str | None = None
    modified_text: str | None = None
    status: ModificationStatus = ModificationStatus.PENDING


class ChangeSetStats(BaseModel):
    additions: int = 0
    deletions: int = 0


class ChangeSet(BaseModel):
    """Reviewable bundle of line-level edits proposed for one file."""

    id: str
    timestamp: int
    file_path: str
    status: ChangeSetStatus = ChangeSetStatus.PENDING
    stats: ChangeSetStats = Field(default_factory=ChangeSetStats)
    modifications: list[Modification] = Field(default_factory=list)


class ChangeSetCounts(BaseModel):
    total: int = 0
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
