from __future__ import annotations

from pathlib import Path

import pytest

from dbvault.core.config import get_settings
from dbvault.services.backup import ArtifactStore, BackupManager
from dbvault.tests.utils.fakes import FakeDumpRunner, FakeRestoreRunner


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path: Path):
    # Keep env-driven settings from leaking between tests.
    monkeypatch.setenv("BACKUP_DIR", str(tmp_path / "backups"))
    monkeypatch.delenv("ADMIN_API_TOKEN", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    backup_store = ArtifactStore(tmp_path / "backups")
    backup_store.ensure_directory()
    return backup_store


@pytest.fixture
def dump_runner() -> FakeDumpRunner:
    return FakeDumpRunner()


@pytest.fixture
def restore_runner() -> FakeRestoreRunner:
    return FakeRestoreRunner()


@pytest.fixture
def manager(store: ArtifactStore, dump_runner: FakeDumpRunner, restore_runner: FakeRestoreRunner) -> BackupManager:
    return BackupManager(
        store=store,
        connection_target="postgresql+asyncpg://app:secret@db:5432/app",
        max_backups=30,
        dump_runner=dump_runner,
        restore_runner=restore_runner,
    )
