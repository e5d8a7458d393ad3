"""In-memory file store fake."""

from __future__ import annotations

from novelpilot.core.contracts.exceptions import ParentDirectoryMissingError, WorkspaceError
from novelpilot.core.contracts.workspace import FileStore


class MemoryFileStore(FileStore):
    """Dict-backed store with the same parent-directory rules as the local store.

    *failing_writes* maps a path to the number of upcoming writes to it that
    raise ``WorkspaceError``. Every successful write is recorded.
    """

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = {}
        self.dirs: set[str] = {""}
        self.writes: list[tuple[str, str]] = []
        self.failing_writes: dict[str, int] = {}
        for path, text in (files or {}).items():
            self._add_parents(path)
            self.files[path] = text

    def _add_parents(self, path: str) -> None:
        parts = path.split("/")[:-1]
        for index in range(1, len(parts) + 1):
            self.dirs.add("/".join(parts[:index]))

    @staticmethod
    def _parent(path: str) -> str:
        return path.rpartition("/")[0]

    async def read(self, path: str) -> str:
        if path not in self.files:
            raise WorkspaceError(f"read failed: {path}: no such file")
        return self.files[path]

    async def write(self, path: str, text: str) -> None:
        if self._parent(path) not in self.dirs:
            raise ParentDirectoryMissingError(f"parent directory does not exist: {path}", path=path)
        if self.failing_writes.get(path, 0) > 0:
            self.failing_writes[path] -= 1
            raise WorkspaceError(f"write failed: {path}: disk full")
        self.files[path] = text
        self.writes.append((path, text))

    async def create_file(self, path: str) -> None:
        if self._parent(path) not in self.dirs:
            raise ParentDirectoryMissingError(f"parent directory does not exist: {path}", path=path)
        self.files.setdefault(path, "")

    async def create_dir(self, path: str) -> None:
        self._add_parents(f"{path}/")

    async def exists(self, path: str) -> bool:
        return path in self.files

    async def list_files(self, prefix: str = "") -> list[str]:
        base = prefix.rstrip("/")
        return sorted(path for path in self.files if not base or path.startswith(f"{base}/"))
