"""Chat transcript, reply versions and the rollback turn stack."""

from __future__ import annotations

from novelpilot.core.contracts.stream import AssistantVersion, ChatItem, Role, RollbackTurn


class Conversation:
    def __init__(self) -> None:
        self.messages: list[ChatItem] = []
        self.rollback_stack: list[RollbackTurn] = []
        self._versions: dict[str, list[AssistantVersion]] = {}

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append(self, item: ChatItem) -> ChatItem:
        self.messages.append(item)
        return item

    def find(self, message_id: str) -> ChatItem | None:
        return next((item for item in self.messages if item.id == message_id), None)

    def remove(self, message_ids: set[str]) -> None:
        self.messages = [item for item in self.messages if item.id not in message_ids]

    @property
    def is_streaming(self) -> bool:
        return any(item.streaming for item in self.messages)

    def settled_history(self) -> list[ChatItem]:
        """Messages usable as model context: finished and non-empty."""
        return [item for item in self.messages if not item.streaming and item.content.strip()]

    def history_before(self, message_id: str) -> list[ChatItem]:
        for index, item in enumerate(self.messages):
            if item.id == message_id:
                return [m for m in self.messages[:index] if not m.streaming and m.content.strip()]
        return []

    @staticmethod
    def last_user(history: list[ChatItem]) -> ChatItem | None:
        return next((item for item in reversed(history) if item.role is Role.USER), None)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def versions(self, group_id: str) -> list[AssistantVersion]:
        return list(self._versions.get(group_id, []))

    def upsert_version(self, group_id: str, version: AssistantVersion) -> tuple[int, int]:
        """Record *version* (deduplicated by content); returns its index and the group size."""
        group = self._versions.setdefault(group_id, [])
        for index, existing in enumerate(group):
            if existing.content == version.content:
                merged_ids = list(dict.fromkeys([*existing.change_set_ids, *version.change_set_ids]))
                group[index] = existing.model_copy(
                    update={"change_set_ids": merged_ids, "cancelled": version.cancelled}
                )
                return index, len(group)
        group.append(version)
        return len(group) - 1, len(group)

    def drop_versions(self, group_id: str) -> None:
        self._versions.pop(group_id, None)

    # ------------------------------------------------------------------
    # Rollback turns
    # ------------------------------------------------------------------

    def push_turn(self, turn: RollbackTurn) -> None:
        self.rollback_stack.append(turn)

    def turn_for_assistant(self, assistant_message_id: str) -> RollbackTurn | None:
        return next(
            (turn for turn in reversed(self.rollback_stack) if turn.assistant_message_id == assistant_message_id),
            None,
        )

    def record_change_sets(self, assistant_message_id: str, change_set_ids: list[str]) -> None:
        turn = self.turn_for_assistant(assistant_message_id)
        if turn is not None:
            turn.change_set_ids = list(dict.fromkeys([*turn.change_set_ids, *change_set_ids]))
