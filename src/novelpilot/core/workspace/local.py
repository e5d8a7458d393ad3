"""Local-disk file store rooted at the workspace directory."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from novelpilot.core.contracts.exceptions import ParentDirectoryMissingError, WorkspaceError
from novelpilot.core.contracts.workspace import FileStore


def normalize_relative_path(path: str) -> str:
    normalized = path.replace("\\", "/").strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if not normalized or normalized.startswith("/"):
        raise WorkspaceError(f"path must be relative to the workspace: {path!r}")
    if any(part == ".." for part in PurePosixPath(normalized).parts):
        raise WorkspaceError(f"path escapes the workspace: {path!r}")
    return normalized


class LocalFileStore(FileStore):
    def __init__(self, root: Path) -> None:
        self._root = root.expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        return self._root / normalize_relative_path(path)

    async def read(self, path: str) -> str:
        target = self._resolve(path)
        try:
            return target.read_text(encoding="utf-8")
        except OSError as exc:
            raise WorkspaceError(f"read failed: {path}: {exc}") from exc

    async def write(self, path: str, text: str) -> None:
        target = self._resolve(path)
        if not target.parent.is_dir():
            raise ParentDirectoryMissingError(f"parent directory does not exist: {path}", path=path)
        try:
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise WorkspaceError(f"write failed: {path}: {exc}") from exc

    async def create_file(self, path: str) -> None:
        target = self._resolve(path)
        if not target.parent.is_dir():
            raise ParentDirectoryMissingError(f"parent directory does not exist: {path}", path=path)
        try:
            target.touch(exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(f"create file failed: {path}: {exc}") from exc

    async def create_dir(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(f"create dir failed: {path}: {exc}") from exc

    async def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    async def list_files(self, prefix: str = "") -> list[str]:
        base = self._resolve(prefix) if prefix else self._root
        if not base.is_dir():
            return []
        return sorted(
            candidate.relative_to(self._root).as_posix() for candidate in base.rglob("*") if candidate.is_file()
        )
