from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from errors import InvalidTransition
from utils import round_half_up


class RevealState(str, Enum):
    HIDDEN = "hidden"
    QUESTION = "question"
    ANSWER = "answer"


# Forward-only: hidden -> question -> answer, nothing after answer.
REVEAL_TRANSITIONS: Dict[RevealState, RevealState] = {
    RevealState.HIDDEN: RevealState.QUESTION,
    RevealState.QUESTION: RevealState.ANSWER,
}


@dataclass
class Clue:
    question: str
    answer: str
    value: int
    source_id: Optional[int] = None
    reveal_state: RevealState = RevealState.HIDDEN

    def advance(self, target: Optional[RevealState] = None) -> RevealState:
        nxt = REVEAL_TRANSITIONS.get(self.reveal_state)
        if nxt is None:
            raise InvalidTransition(f"clue already at {self.reveal_state.value}")
        if target is not None and RevealState(target) != nxt:
            raise InvalidTransition(
                f"cannot go from {self.reveal_state.value} to {RevealState(target).value}"
            )
        self.reveal_state = nxt
        return nxt

    def to_public_dict(self) -> Dict[str, Any]:
        # Hidden text stays on the server so the client can't peek.
        out: Dict[str, Any] = {"value": self.value, "state": self.reveal_state.value}
        if self.reveal_state in (RevealState.QUESTION, RevealState.ANSWER):
            out["question"] = self.question
        if self.reveal_state == RevealState.ANSWER:
            out["answer"] = self.answer
        return out


@dataclass
class Category:
    title: str
    clues: Tuple[Clue, ...]
    source_id: Optional[int] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "id": self.source_id,
            "clues": [c.to_public_dict() for c in self.clues],
        }


def row_display_value(row: int, num_rows: int, max_value: int) -> int:
    """Dollar amount painted on row `row` (0-based), snapped to 50s."""
    raw = (max_value / num_rows) * (row + 1)
    return round_half_up(raw / 50) * 50


@dataclass
class Board:
    categories: List[Category] = field(default_factory=list)
    num_rows: int = 0
    max_value: int = 1000

    @property
    def source_ids(self) -> List[Optional[int]]:
        return [c.source_id for c in self.categories]

    def clue_at(self, category_index: int, row: int) -> Clue:
        if not (0 <= category_index < len(self.categories)):
            raise IndexError(f"category {category_index} out of range")
        clues = self.categories[category_index].clues
        if not (0 <= row < len(clues)):
            raise IndexError(f"row {row} out of range")
        return clues[row]

    def advance(self, category_index: int, row: int, target: Optional[RevealState] = None) -> Clue:
        clue = self.clue_at(category_index, row)
        clue.advance(target)
        return clue

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "categories": [c.to_public_dict() for c in self.categories],
            "row_values": [row_display_value(r, self.num_rows, self.max_value) for r in range(self.num_rows)],
        }
