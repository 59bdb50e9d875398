from __future__ import annotations

import json
from pathlib import Path
import sys

import pytest

from dbvault.tests.utils.fakes import SAMPLE_DUMP
import scripts.backup_create as backup_create
import scripts.backup_list as backup_list
import scripts.backup_prune as backup_prune
import scripts.backup_restore as backup_restore
import scripts.backup_verify as backup_verify


NAMES = [
    "db_backup_2024-01-01T02-00-00Z.sql",
    "db_backup_2024-01-02T02-00-00Z.sql",
    "db_backup_2024-01-03T02-00-00Z.sql",
]


def _seed(tmp_path: Path) -> Path:
    # conftest points BACKUP_DIR at tmp_path/backups.
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir(parents=True, exist_ok=True)
    for name in NAMES:
        (backup_dir / name).write_text(SAMPLE_DUMP, encoding="utf-8")
    return backup_dir


def test_prune_script_dry_run_then_apply(tmp_path: Path, monkeypatch, capsys) -> None:
    backup_dir = _seed(tmp_path)

    monkeypatch.setattr(sys, "argv", ["backup_prune.py", "--max-backups", "1", "--dry-run"])
    backup_prune.main()
    output = capsys.readouterr().out
    assert "dry_run=true" in output
    assert "pruned_backups=2" in output
    assert len(list(backup_dir.iterdir())) == 3

    monkeypatch.setattr(sys, "argv", ["backup_prune.py", "--max-backups", "1"])
    backup_prune.main()
    assert "pruned_backups=2" in capsys.readouterr().out
    assert [path.name for path in backup_dir.iterdir()] == [NAMES[-1]]


def test_prune_script_rejects_negative_limit(tmp_path: Path, monkeypatch, capsys) -> None:
    _seed(tmp_path)
    monkeypatch.setattr(sys, "argv", ["backup_prune.py", "--max-backups", "-1"])
    with pytest.raises(SystemExit) as excinfo:
        backup_prune.main()
    assert excinfo.value.code == 1
    assert "error=INVALID_ARGUMENT" in capsys.readouterr().out


def test_list_script_prints_newest_first(tmp_path: Path, monkeypatch, capsys) -> None:
    _seed(tmp_path)
    monkeypatch.setattr(sys, "argv", ["backup_list.py"])
    backup_list.main()
    payload = json.loads(capsys.readouterr().out)
    assert payload["count"] == 3
    assert [item["name"] for item in payload["backups"]] == NAMES[::-1]


def test_verify_script_exit_codes(tmp_path: Path, monkeypatch, capsys) -> None:
    backup_dir = _seed(tmp_path)
    monkeypatch.setattr(sys, "argv", ["backup_verify.py", NAMES[0]])
    backup_verify.main()
    assert json.loads(capsys.readouterr().out)["valid"] is True

    (backup_dir / NAMES[1]).write_bytes(b"")
    monkeypatch.setattr(sys, "argv", ["backup_verify.py", NAMES[1]])
    with pytest.raises(SystemExit) as excinfo:
        backup_verify.main()
    assert excinfo.value.code == 1

    monkeypatch.setattr(sys, "argv", ["backup_verify.py", "../etc/passwd"])
    with pytest.raises(SystemExit):
        backup_verify.main()
    assert "error=INVALID_NAME" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_restore_script_requires_confirm_flag(tmp_path: Path, capsys) -> None:
    # Without --confirm the script refuses before any psql process is started.
    _seed(tmp_path)
    exit_code = await backup_restore._run_restore(NAMES[0], None, False)
    assert exit_code == 1
    assert "error=CONFIRMATION_REQUIRED" in capsys.readouterr().out.splitlines()


@pytest.mark.asyncio
async def test_create_script_reports_dump_failure(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("BACKUP_DUMP_COMMAND", str(tmp_path / "missing-pg_dump"))
    backup_create.get_settings.cache_clear()
    exit_code = await backup_create._run_backup(str(tmp_path / "out"))
    output = capsys.readouterr().out
    assert exit_code == 1
    assert "error=DUMP_FAILED" in output
    assert list((tmp_path / "out").iterdir()) == []


@pytest.mark.asyncio
async def test_restore_script_prints_key_value_summary(tmp_path: Path, monkeypatch, capsys) -> None:
    # A stand-in restore utility that accepts psql's arguments and succeeds.
    _seed(tmp_path)
    fake_psql = tmp_path / "fake-psql"
    fake_psql.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    fake_psql.chmod(0o755)
    monkeypatch.setenv("BACKUP_RESTORE_COMMAND", str(fake_psql))
    backup_restore.get_settings.cache_clear()

    exit_code = await backup_restore._run_restore(NAMES[0], "postgresql+asyncpg://app@db/app", True)

    lines = capsys.readouterr().out.splitlines()
    assert exit_code == 0
    assert f"restored={NAMES[0]}" in lines
    assert any(line.startswith("duration_s=") for line in lines)


def _block_backup_dir(tmp_path: Path, monkeypatch) -> None:
    # A regular file where the backup directory's parent should be.
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setenv("BACKUP_DIR", str(blocker / "backups"))
    backup_prune.get_settings.cache_clear()


@pytest.mark.parametrize(
    ("module", "argv"),
    [
        (backup_prune, ["backup_prune.py"]),
        (backup_verify, ["backup_verify.py", NAMES[0]]),
        (backup_list, ["backup_list.py"]),
    ],
)
def test_sync_scripts_report_unusable_backup_dir(tmp_path: Path, monkeypatch, capsys, module, argv) -> None:
    _block_backup_dir(tmp_path, monkeypatch)
    monkeypatch.setattr(sys, "argv", argv)
    with pytest.raises(SystemExit) as excinfo:
        module.main()
    assert excinfo.value.code == 1
    assert "error=BACKUP_IO_ERROR" in capsys.readouterr().out.splitlines()


@pytest.mark.asyncio
async def test_async_scripts_report_unusable_backup_dir(tmp_path: Path, monkeypatch, capsys) -> None:
    _block_backup_dir(tmp_path, monkeypatch)
    assert await backup_create._run_backup(None) == 1
    assert "error=BACKUP_IO_ERROR" in capsys.readouterr().out.splitlines()
    assert await backup_restore._run_restore(NAMES[0], None, True) == 1
    assert "error=BACKUP_IO_ERROR" in capsys.readouterr().out.splitlines()
