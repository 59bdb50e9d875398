from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
from typing import Any

from dbvault.core.errors import BackupIOError


MISSING_STRUCTURE = "missing structural markers"

_CHUNK_SIZE = 1024 * 1024
# Longest marker we look for; kept as overlap so markers split across chunks still match.
_OVERLAP = 32

_CREATE_TABLE = re.compile(rb"CREATE\s+TABLE", re.IGNORECASE)
_BEGIN = re.compile(rb"\bBEGIN\b", re.IGNORECASE)
_COMMIT = re.compile(rb"\bCOMMIT\b", re.IGNORECASE)


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reasons: list[str] = field(default_factory=list)
    size_bytes: int = 0
    has_structure: bool = False
    has_transaction: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "integrity": "valid" if self.valid else "invalid",
            "reasons": list(self.reasons),
            "size_bytes": self.size_bytes,
            "has_structure": self.has_structure,
            "has_transaction": self.has_transaction,
        }


class IntegrityVerifier:
    """Heuristic structural check of a plain SQL dump.

    A dump is considered plausible when it contains table definitions.
    Transaction bracketing is reported but not required since pg_dump's plain
    format does not always emit it. This never proves an artifact restores.
    """

    def verify(self, artifact_path: Path) -> VerificationResult:
        has_structure = False
        has_begin = False
        has_commit = False
        size_bytes = 0
        tail = b""
        try:
            with artifact_path.open("rb") as handle:
                for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                    size_bytes += len(chunk)
                    window = tail + chunk
                    has_structure = has_structure or bool(_CREATE_TABLE.search(window))
                    has_begin = has_begin or bool(_BEGIN.search(window))
                    has_commit = has_commit or bool(_COMMIT.search(window))
                    if has_structure and has_begin and has_commit:
                        size_bytes = artifact_path.stat().st_size
                        break
                    tail = window[-_OVERLAP:]
        except OSError as exc:
            raise BackupIOError(f"Cannot read backup {artifact_path.name}: {exc.strerror or exc}") from exc

        reasons = [] if has_structure else [MISSING_STRUCTURE]
        return VerificationResult(
            valid=has_structure,
            reasons=reasons,
            size_bytes=size_bytes,
            has_structure=has_structure,
            has_transaction=has_begin and has_commit,
        )
