# selection.py
#
# Clue selection for one category.
# - filter_valid(): usable clues only, first occurrence of each question wins
# - bucket(): value -> difficulty tier working copy
# - assign_rows(): one clue per board row, borrowing from easier tiers when a tier is empty
#
# Nothing here touches the fetched RawCategory; bucket() builds fresh lists and
# assign_rows() only consumes those.

from __future__ import annotations

import random
from typing import Dict, Iterable, List, Optional, Sequence

from errors import InsufficientClues
from jservice import RawClue
from sanitize import sanitize
from utils import round_half_up


# -----------------------------
# Validation + de-dup
# -----------------------------
def is_usable(clue: RawClue) -> bool:
    if clue.flagged_invalid:
        return False
    return bool(sanitize(clue.question))


def filter_valid(raw_clues: Iterable[RawClue]) -> List[RawClue]:
    out: List[RawClue] = []
    seen_questions: set[str] = set()
    seen_ids: set[int] = set()

    for clue in raw_clues:
        if not is_usable(clue):
            continue
        key = sanitize(clue.question)
        if key in seen_questions:
            continue
        if clue.id is not None and clue.id in seen_ids:
            continue
        seen_questions.add(key)
        if clue.id is not None:
            seen_ids.add(clue.id)
        out.append(clue)

    return out


# -----------------------------
# Difficulty tiers
# -----------------------------
def tier_for(value: int, num_tiers: int, max_value: int) -> int:
    step = max_value / num_tiers
    tier = round_half_up((value or 0) / step)
    return max(0, min(tier, num_tiers))


def bucket(clues: Sequence[RawClue], num_tiers: int, max_value: int) -> Dict[int, List[RawClue]]:
    buckets: Dict[int, List[RawClue]] = {}
    for clue in clues:
        buckets.setdefault(tier_for(clue.value, num_tiers, max_value), []).append(clue)
    return buckets


def _nearest_populated_tier(target: int, buckets: Dict[int, List[RawClue]]) -> Optional[int]:
    tier = target
    while tier >= 0:
        if buckets.get(tier):
            return tier
        tier -= 1
    return None


def assign_rows(
    buckets: Dict[int, List[RawClue]],
    num_tiers: int,
    rng: Optional[random.Random] = None,
) -> List[RawClue]:
    """
    Pick one clue per row 1..num_tiers from the tier map.

    An empty tier borrows from the nearest populated easier tier; tier 0 is the
    last donor. Picked clues leave the pool. Raises InsufficientClues when a
    row has nothing at or below it.
    """
    rng = rng or random.Random()
    rows: List[RawClue] = []

    for row in range(1, num_tiers + 1):
        tier = _nearest_populated_tier(row, buckets)
        if tier is None:
            raise InsufficientClues(f"no clue available for row {row} of {num_tiers}")
        pool = buckets[tier]
        rows.append(pool.pop(rng.randrange(len(pool))))
        if not pool:
            del buckets[tier]

    return rows
