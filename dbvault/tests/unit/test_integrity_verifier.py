from __future__ import annotations

from pathlib import Path

import pytest

from dbvault.core.errors import BackupIOError
from dbvault.services.backup import IntegrityVerifier
from dbvault.services.backup import verifier as verifier_module
from dbvault.tests.utils.fakes import SAMPLE_DUMP


def test_zero_byte_file_is_invalid(tmp_path: Path) -> None:
    path = tmp_path / "empty.sql"
    path.write_bytes(b"")
    result = IntegrityVerifier().verify(path)
    assert result.valid is False
    assert result.reasons == ["missing structural markers"]
    assert result.size_bytes == 0


def test_complete_dump_is_valid_with_transaction(tmp_path: Path) -> None:
    path = tmp_path / "dump.sql"
    path.write_text(SAMPLE_DUMP, encoding="utf-8")
    result = IntegrityVerifier().verify(path)
    assert result.valid is True
    assert result.reasons == []
    assert result.has_structure is True
    assert result.has_transaction is True
    assert result.size_bytes == path.stat().st_size
    assert result.to_dict()["integrity"] == "valid"


def test_transaction_markers_are_optional(tmp_path: Path) -> None:
    # Plain pg_dump output often has no BEGIN/COMMIT; that alone is not a failure.
    path = tmp_path / "dump.sql"
    path.write_text("create   table t (id int);\n", encoding="utf-8")
    result = IntegrityVerifier().verify(path)
    assert result.valid is True
    assert result.has_transaction is False


def test_truncated_dump_without_tables_is_invalid(tmp_path: Path) -> None:
    path = tmp_path / "dump.sql"
    path.write_text("--\n-- PostgreSQL database dump\n--\nSET statement_timeout = 0;\n", encoding="utf-8")
    result = IntegrityVerifier().verify(path)
    assert result.valid is False
    assert result.reasons == ["missing structural markers"]


def test_binary_file_is_invalid(tmp_path: Path) -> None:
    path = tmp_path / "image.sql"
    path.write_bytes(bytes(range(256)) * 8)
    assert IntegrityVerifier().verify(path).valid is False


def test_marker_split_across_chunks_is_found(tmp_path: Path, monkeypatch) -> None:
    # Overlap between reads keeps markers that straddle a chunk boundary.
    monkeypatch.setattr(verifier_module, "_CHUNK_SIZE", 7)
    path = tmp_path / "dump.sql"
    path.write_text("-- header --\nCREATE TABLE t (id int);\n", encoding="utf-8")
    result = IntegrityVerifier().verify(path)
    assert result.valid is True
    assert result.size_bytes == path.stat().st_size


def test_unreadable_path_raises_io_error(tmp_path: Path) -> None:
    with pytest.raises(BackupIOError):
        IntegrityVerifier().verify(tmp_path / "missing.sql")
