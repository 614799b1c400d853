# jservice.py
#
# Category fetcher for the jService trivia API.
# - parse_category(): strict parse of the loosely-typed payload into RawCategory
# - JServiceClient.get_category(): raising variant (FetchFailure)
# - JServiceClient.fetch(): never raises; returns RawCategory or FetchFailure
#
# No retries here: the assembler retries by sampling a different id.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import requests

from config import JSERVICE_BASE_URL
from errors import FetchFailure

logger = logging.getLogger(__name__)

USER_AGENT = "trivia-board/1.0 (+https://jservice.io)"


@dataclass(frozen=True)
class RawClue:
    id: Optional[int]
    question: str
    answer: str
    value: int
    invalid_count: Optional[int] = None

    @property
    def flagged_invalid(self) -> bool:
        return bool(self.invalid_count)


@dataclass(frozen=True)
class RawCategory:
    id: int
    title: str
    clues_count: int
    clues: Tuple[RawClue, ...]


# -----------------------------
# Payload parsing
# -----------------------------
def _opt_int(v: Any, what: str) -> Optional[int]:
    if v is None:
        return None
    # bool is an int subclass; a true/false here means a mangled payload
    if isinstance(v, bool):
        raise ValueError(f"{what} must be an integer, got bool")
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str) and v.strip().lstrip("-").isdigit():
        return int(v.strip())
    raise ValueError(f"{what} must be an integer, got {type(v).__name__}")


def _opt_str(v: Any, what: str) -> str:
    if v is None:
        return ""
    if not isinstance(v, str):
        raise ValueError(f"{what} must be a string, got {type(v).__name__}")
    return v


def parse_clue(c: Any, idx: int) -> RawClue:
    if not isinstance(c, dict):
        raise ValueError(f"clue {idx} must be object")
    return RawClue(
        id=_opt_int(c.get("id"), f"clue {idx} id"),
        question=_opt_str(c.get("question"), f"clue {idx} question"),
        answer=_opt_str(c.get("answer"), f"clue {idx} answer"),
        value=_opt_int(c.get("value"), f"clue {idx} value") or 0,
        invalid_count=_opt_int(c.get("invalid_count"), f"clue {idx} invalid_count"),
    )


def parse_category(payload: Any) -> RawCategory:
    """
    Validate a /category response into a RawCategory.

    Raises ValueError on any shape mismatch; the client turns that into a
    FetchFailure.
    """
    if not isinstance(payload, dict):
        raise ValueError("category payload must be an object")
    if "id" not in payload or "clues" not in payload:
        raise ValueError("category payload missing id/clues")

    cat_id = _opt_int(payload.get("id"), "category id")
    if cat_id is None:
        raise ValueError("category id is null")

    raw_clues = payload.get("clues")
    if not isinstance(raw_clues, list):
        raise ValueError("clues must be a list")
    clues = tuple(parse_clue(c, i) for i, c in enumerate(raw_clues))

    clues_count = _opt_int(payload.get("clues_count"), "clues_count")
    if clues_count is None:
        clues_count = len(clues)

    return RawCategory(
        id=cat_id,
        title=_opt_str(payload.get("title"), "title"),
        clues_count=clues_count,
        clues=clues,
    )


# -----------------------------
# HTTP client
# -----------------------------
class JServiceClient:
    """Thin requests wrapper around GET {base_url}/category?id=N."""

    def __init__(self, base_url: str = JSERVICE_BASE_URL, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        })

    @classmethod
    def from_config(cls, config) -> "JServiceClient":
        return cls(base_url=config.base_url, timeout=config.timeout)

    def get_category(self, category_id: int) -> RawCategory:
        url = f"{self.base_url}/category"
        try:
            response = self.session.get(url, params={"id": category_id}, timeout=self.timeout)
            response.raise_for_status()
            payload: Dict[str, Any] = response.json()
        except requests.RequestException as e:
            raise FetchFailure(category_id, f"request failed: {e}") from e
        except ValueError as e:
            # requests' JSONDecodeError is a ValueError subclass
            raise FetchFailure(category_id, f"bad json: {e}") from e

        try:
            return parse_category(payload)
        except ValueError as e:
            raise FetchFailure(category_id, f"bad payload: {e}") from e

    def fetch(self, category_id: int) -> Union[RawCategory, FetchFailure]:
        try:
            return self.get_category(category_id)
        except FetchFailure as failure:
            logger.warning("Fetch failed for %s", failure)
            return failure

