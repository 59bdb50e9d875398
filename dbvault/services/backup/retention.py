from __future__ import annotations

from typing import Sequence, TypeVar


T = TypeVar("T")


def select_for_deletion(sorted_artifacts: Sequence[T], max_count: int) -> list[T]:
    # Input is newest-first; keep the first max_count entries and return the rest.
    if max_count < 0:
        raise ValueError("max_count must be >= 0")
    return list(sorted_artifacts[max_count:])
