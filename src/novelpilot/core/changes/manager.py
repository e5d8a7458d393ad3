"""Change-set review: accept, reject, undo and rollback against the workspace."""

from __future__ import annotations

import logging
import time

from novelpilot.core.changes.codec import ImportedChangeSet
from novelpilot.core.changes.diff import (
    apply_modifications,
    change_set_stats,
    compute_diff,
    derive_change_set_status,
    diff_to_modifications,
)
from novelpilot.core.changes.edits import FileEdit, build_proposed_content
from novelpilot.core.contracts.changes import ChangeSet, ChangeSetCounts, Modification, ModificationStatus
from novelpilot.core.contracts.exceptions import ChangeSetError, ParentDirectoryMissingError
from novelpilot.core.contracts.observer import NullWriterObserver, WriterObserver
from novelpilot.core.contracts.workspace import FileStore

_LOG = logging.getLogger(__name__)


class ChangeSetManager:
    """Owns every change set of a session together with its pre-edit backup.

    The file on disk is always ``apply_modifications(backup, modifications)``:
    each review operation rewrites it from the backup instead of patching the
    current content, so line numbers never drift between operations.
    """

    def __init__(self, store: FileStore, *, observer: WriterObserver | None = None) -> None:
        self._store = store
        self._observer = observer or NullWriterObserver()
        self._change_sets: dict[str, ChangeSet] = {}
        self._backups: dict[tuple[str, str], str] = {}
        self._counter = 0

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def create_change_set(self, file_path: str, original: str, modified: str) -> ChangeSet:
        stamp = int(time.time() * 1000)
        self._counter += 1
        modifications = diff_to_modifications(compute_diff(original, modified), timestamp=stamp)
        change_set = ChangeSet(
            id=f"changeset-{stamp}-{self._counter}",
            timestamp=stamp,
            file_path=file_path,
            stats=change_set_stats(modifications),
            modifications=modifications,
        )
        self._register(change_set, original)
        return change_set

    def register_imported(self, change_set: ChangeSet, original_content: str) -> ChangeSet:
        registered = change_set.model_copy(
            update={"status": derive_change_set_status(change_set.modifications)}, deep=True
        )
        self._register(registered, original_content)
        return registered

    def register_imports(self, imported: list[ImportedChangeSet]) -> list[ChangeSet]:
        return [self.register_imported(item.change_set, item.original_content) for item in imported]

    async def create_from_edit(self, edit: FileEdit) -> ChangeSet | None:
        """Diff the current file against the edit's requested content; ``None`` when nothing changes."""
        original = await self._store.read(edit.path) if await self._store.exists(edit.path) else ""
        proposed = build_proposed_content(original, edit)
        if proposed == original:
            return None
        return self.create_change_set(edit.path, original, proposed)

    def _register(self, change_set: ChangeSet, backup: str) -> None:
        self._change_sets[change_set.id] = change_set
        self._backups[(change_set.id, change_set.file_path)] = backup
        _LOG.debug("registered change set %s for %s", change_set.id, change_set.file_path)
        self._observer.change_set_changed(change_set)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_change_set(self, change_set_id: str) -> ChangeSet:
        change_set = self._change_sets.get(change_set_id)
        if change_set is None:
            raise ChangeSetError(f"Change set {change_set_id} not found")
        return change_set

    def list_change_sets(self) -> list[ChangeSet]:
        return list(self._change_sets.values())

    def status_counts(self, change_set_id: str) -> ChangeSetCounts:
        change_set = self.get_change_set(change_set_id)
        counts = ChangeSetCounts(total=len(change_set.modifications))
        for mod in change_set.modifications:
            if mod.status is ModificationStatus.PENDING:
                counts.pending += 1
            elif mod.status is ModificationStatus.ACCEPTED:
                counts.accepted += 1
            else:
                counts.rejected += 1
        return counts

    def backup_for(self, change_set_id: str) -> str:
        change_set = self.get_change_set(change_set_id)
        backup = self._backups.get((change_set.id, change_set.file_path))
        if backup is None:
            raise ChangeSetError(f"No backup found for change set {change_set_id}")
        return backup

    # ------------------------------------------------------------------
    # Review operations
    # ------------------------------------------------------------------

    async def accept_modification(self, change_set_id: str, modification_id: str) -> ChangeSet:
        change_set = self.get_change_set(change_set_id)
        self._find(change_set, modification_id)
        updated = self._with_status(change_set, {modification_id}, ModificationStatus.ACCEPTED)
        await self._materialize(updated)
        return self._commit(updated)

    async def reject_modification(self, change_set_id: str, modification_id: str) -> ChangeSet:
        change_set = self.get_change_set(change_set_id)
        previous = self._find(change_set, modification_id)
        updated = self._with_status(change_set, {modification_id}, ModificationStatus.REJECTED)
        if previous.status is ModificationStatus.ACCEPTED:
            await self._materialize(updated)
        return self._commit(updated)

    async def accept_all(self, change_set_id: str) -> ChangeSet:
        change_set = self.get_change_set(change_set_id)
        pending = {mod.id for mod in change_set.modifications if mod.status is ModificationStatus.PENDING}
        updated = self._with_status(change_set, pending, ModificationStatus.ACCEPTED)
        snapshot = await self._read_current(change_set)
        try:
            await self._materialize(updated)
        except Exception as exc:
            _LOG.warning("accept all failed for %s, restoring %s", change_set_id, change_set.file_path)
            await self._store.write(change_set.file_path, snapshot)
            raise ChangeSetError(f"Failed to accept all modifications: {exc}") from exc
        return self._commit(updated)

    async def reject_all(self, change_set_id: str) -> ChangeSet:
        change_set = self.get_change_set(change_set_id)
        had_accepted = any(mod.status is ModificationStatus.ACCEPTED for mod in change_set.modifications)
        updated = self._with_status(
            change_set, {mod.id for mod in change_set.modifications}, ModificationStatus.REJECTED
        )
        if had_accepted:
            await self._materialize(updated)
        return self._commit(updated)

    async def undo_modification(self, change_set_id: str, modification_id: str) -> ChangeSet:
        change_set = self.get_change_set(change_set_id)
        modification = self._find(change_set, modification_id)
        if modification.status is not ModificationStatus.ACCEPTED:
            raise ChangeSetError(f"Modification {modification_id} is not in accepted state")
        updated = self._with_status(change_set, {modification_id}, ModificationStatus.PENDING)
        await self._materialize(updated)
        return self._commit(updated)

    async def rollback_change_set(self, change_set_id: str) -> None:
        change_set = self.get_change_set(change_set_id)
        await self._store.write(change_set.file_path, self.backup_for(change_set_id))
        _LOG.debug("rolled back %s on %s", change_set_id, change_set.file_path)

    def delete_change_set(self, change_set_id: str) -> None:
        change_set = self._change_sets.pop(change_set_id, None)
        if change_set is not None:
            self._backups.pop((change_set.id, change_set.file_path), None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _find(change_set: ChangeSet, modification_id: str) -> Modification:
        for mod in change_set.modifications:
            if mod.id == modification_id:
                return mod
        raise ChangeSetError(f"Modification {modification_id} not found in change set {change_set.id}")

    @staticmethod
    def _with_status(change_set: ChangeSet, ids: set[str], status: ModificationStatus) -> ChangeSet:
        modifications = [
            mod.model_copy(update={"status": status}) if mod.id in ids else mod for mod in change_set.modifications
        ]
        return change_set.model_copy(
            update={"modifications": modifications, "status": derive_change_set_status(modifications)}
        )

    async def _read_current(self, change_set: ChangeSet) -> str:
        if await self._store.exists(change_set.file_path):
            return await self._store.read(change_set.file_path)
        return self.backup_for(change_set.id)

    async def _materialize(self, change_set: ChangeSet) -> None:
        content = apply_modifications(self.backup_for(change_set.id), change_set.modifications)
        await self._write(change_set.file_path, content)

    async def _write(self, path: str, content: str) -> None:
        try:
            await self._store.write(path, content)
        except ParentDirectoryMissingError:
            parent = path.rsplit("/", 1)[0] if "/" in path else ""
            if not parent:
                raise
            await self._store.create_dir(parent)
            await self._store.write(path, content)

    def _commit(self, change_set: ChangeSet) -> ChangeSet:
        self._change_sets[change_set.id] = change_set
        self._observer.change_set_changed(change_set)
        return change_set
