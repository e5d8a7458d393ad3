"""Shared test fixtures for novelpilot tests."""

from __future__ import annotations

import pytest

from novelpilot.core.changes import ChangeSetManager
from novelpilot.core.contracts.config import StreamSettings, WritingSettings
from novelpilot.core.streams import StreamSessionManager
from tests.fakes.model import FakeModelService
from tests.fakes.store import MemoryFileStore


@pytest.fixture
def store() -> MemoryFileStore:
    return MemoryFileStore()


@pytest.fixture
def model() -> FakeModelService:
    return FakeModelService()


@pytest.fixture
def stream_settings() -> StreamSettings:
    """Short timers so stall and retry paths run in milliseconds."""
    return StreamSettings(
        first_token_timeout=0.05,
        completion_timeout=2.0,
        cleanup_after_done=30.0,
        cleanup_after_error=30.0,
        quiesce_attempts=20,
        quiesce_interval=0.005,
    )


@pytest.fixture
def writing_settings() -> WritingSettings:
    return WritingSettings(round_settle_delay=0, switch_delay=0, refused_send_delay=0)


@pytest.fixture
def changes(store: MemoryFileStore) -> ChangeSetManager:
    return ChangeSetManager(store)


@pytest.fixture
def streams(
    model: FakeModelService, changes: ChangeSetManager, stream_settings: StreamSettings
) -> StreamSessionManager:
    return StreamSessionManager(model, changes, settings=stream_settings)
