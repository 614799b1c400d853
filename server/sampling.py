from __future__ import annotations

import random
import threading
from typing import AbstractSet, FrozenSet, Iterable, List, Optional

from errors import SamplingExhausted


class ConsumedIDRegistry:
    """
    Category ids already placed on a board during one game session.

    Append-only until reset(); shared between a session and its assembly runs,
    so every access goes through the lock.
    """

    def __init__(self, ids: Optional[Iterable[int]] = None):
        self._ids = set(ids or ())
        self._lock = threading.Lock()

    def add(self, category_id: int) -> None:
        with self._lock:
            self._ids.add(category_id)

    def snapshot(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._ids)

    def reset(self) -> None:
        with self._lock:
            self._ids.clear()

    def __contains__(self, category_id) -> bool:
        with self._lock:
            return category_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


def sample_ids(
    count: int,
    id_space_max: int,
    excluded: AbstractSet[int] = frozenset(),
    rng: Optional[random.Random] = None,
) -> List[int]:
    """
    Draw `count` distinct ids from [1, id_space_max] minus `excluded`.

    Returned in draw order. Raises SamplingExhausted up front when not enough
    ids are left, instead of looping forever.
    """
    rng = rng or random.Random()
    if count <= 0:
        return []

    blocked = sum(1 for i in excluded if 1 <= i <= id_space_max)
    available = id_space_max - blocked
    if available < count:
        raise SamplingExhausted(
            f"need {count} category ids but only {available} of {id_space_max} are unused"
        )

    out: List[int] = []
    seen = set()
    while len(out) < count:
        candidate = rng.randint(1, id_space_max)
        if candidate in excluded or candidate in seen:
            continue
        seen.add(candidate)
        out.append(candidate)
    return out
