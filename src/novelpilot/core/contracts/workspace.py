"""Workspace file store contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class FileStore(ABC):
    """Text resources addressed by ``/``-separated paths relative to the workspace root.

    ``create_file`` raises ``ParentDirectoryMissingError`` when the parent
    directory does not exist; every other failure is a ``WorkspaceError``.
    """

    @abstractmethod
    async def read(self, path: str) -> str: ...  # pragma: no cover

    @abstractmethod
    async def write(self, path: str, text: str) -> None: ...  # pragma: no cover

    @abstractmethod
    async def create_file(self, path: str) -> None: ...  # pragma: no cover

    @abstractmethod
    async def create_dir(self, path: str) -> None: ...  # pragma: no cover

    @abstractmethod
    async def exists(self, path: str) -> bool: ...  # pragma: no cover

    @abstractmethod
    async def list_files(self, prefix: str = "") -> list[str]: ...  # pragma: no cover


@dataclass
class EditorCursor:
    """The file the writer currently has open; shared by the loops that advance it."""

    active_path: str | None = None
