# assembler.py
#
# Builds a full Board: sample ids -> fetch -> validate -> bucket -> accept/reject,
# backfilling until exactly NUM_CATEGORIES categories are accepted.
#
# Per-slot outcomes:
#   FetchFailure / short clue list / InsufficientClues -> rejected, slot refilled next pass
#   SamplingExhausted / RetryLimitExceeded             -> fatal, propagated to the session
#
# Rejected ids are not written to the consumed registry, so a later pass may draw
# them again (EXCLUDE_REJECTED_IDS skips them for the rest of the run only).

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Union

from board import Board, Category, Clue
from config import BoardConfig
from errors import FetchFailure, InsufficientClues, RetryLimitExceeded, StaleRun
from jservice import JServiceClient, RawCategory
from sampling import ConsumedIDRegistry, sample_ids
from sanitize import sanitize
from selection import assign_rows, bucket, filter_valid

logger = logging.getLogger(__name__)


@dataclass
class SlotOutcome:
    category_id: int
    category: Optional[Category] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.category is not None


@dataclass
class AssemblyStats:
    passes: int = 0
    fetches: int = 0
    rejected: List[SlotOutcome] = field(default_factory=list)
    elapsed: float = 0.0


def build_category(raw: RawCategory, config: BoardConfig, rng: random.Random) -> Category:
    """
    Validate + bucket one fetched category into a sanitized Category.

    Raises InsufficientClues when the category can't fill every row.
    """
    k = config.num_questions_per_cat
    if raw.clues_count < k:
        raise InsufficientClues(f"clues_count {raw.clues_count} < {k}")

    valid = filter_valid(raw.clues)
    if len(valid) < k:
        raise InsufficientClues(f"{len(valid)} valid clues < {k}")

    picked = assign_rows(bucket(valid, k, config.max_clue_value), k, rng=rng)

    clues = tuple(
        Clue(
            question=sanitize(c.question),
            answer=sanitize(c.answer),
            value=c.value,
            source_id=c.id,
        )
        for c in picked
    )
    return Category(title=sanitize(raw.title), clues=clues, source_id=raw.id)


class CategoryAssembler:
    def __init__(
        self,
        client: JServiceClient,
        registry: ConsumedIDRegistry,
        config: Optional[BoardConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.registry = registry
        self.config = config or BoardConfig()
        self.rng = rng or random.Random()
        self.stats = AssemblyStats()

    # -----------------------------
    # One slot
    # -----------------------------
    def _evaluate(self, category_id: int, fetched: Union[RawCategory, FetchFailure]) -> SlotOutcome:
        if isinstance(fetched, FetchFailure):
            return SlotOutcome(category_id, reason=fetched.reason)
        try:
            category = build_category(fetched, self.config, self.rng)
        except InsufficientClues as e:
            return SlotOutcome(category_id, reason=str(e))
        if category.source_id != category_id:
            # The API answered for a different category; key everything on the id we asked for.
            logger.debug("Category %s came back as id %s", category_id, category.source_id)
            category.source_id = category_id
        return SlotOutcome(category_id, category=category)

    def _fetch_all(self, ids: Sequence[int]) -> List[Union[RawCategory, FetchFailure]]:
        workers = min(self.config.fetch_workers, len(ids))
        if workers <= 1:
            return [self.client.fetch(i) for i in ids]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() keeps slot order regardless of completion order
            return list(pool.map(self.client.fetch, ids))

    def _check_budget(self, upcoming: int) -> None:
        cap = self.config.max_fetch_attempts
        if cap and self.stats.fetches + upcoming > cap:
            raise RetryLimitExceeded(
                f"gave up after {self.stats.fetches} category fetches "
                f"({len(self.stats.rejected)} rejected); the trivia API may be degraded"
            )

    # -----------------------------
    # Full board
    # -----------------------------
    def _register(self, board: Board) -> None:
        for category_id in board.source_ids:
            self.registry.add(category_id)

    def assemble(
        self,
        is_current: Optional[Callable[[], bool]] = None,
        commit: Optional[Callable[[Board], None]] = None,
    ) -> Board:
        """
        Fill a Board with exactly num_categories accepted categories.

        Accepted ids are only held by the run until the board is complete;
        `commit` then publishes the board and registers its ids in one step
        (default: add them to the registry). `is_current` is polled after each
        pass; once it returns False the run raises StaleRun. A commit callback
        may raise StaleRun too, and nothing reaches the registry either way.
        """
        n = self.config.num_categories
        started = time.perf_counter()
        self.stats = AssemblyStats()

        accepted: List[Category] = []
        accepted_ids: Set[int] = set()
        skipped_ids: Set[int] = set()

        while len(accepted) < n:
            missing = n - len(accepted)
            excluded = self.registry.snapshot() | accepted_ids | skipped_ids
            ids = sample_ids(missing, self.config.num_api_categories, excluded, rng=self.rng)

            self._check_budget(len(ids))
            self.stats.passes += 1
            self.stats.fetches += len(ids)
            logger.debug("Pass %d: fetching %d categories %s", self.stats.passes, len(ids), ids)

            fetched = self._fetch_all(ids)

            if is_current is not None and not is_current():
                raise StaleRun("assembly superseded before results were applied")

            for category_id, result in zip(ids, fetched):
                outcome = self._evaluate(category_id, result)
                if not outcome.accepted:
                    logger.debug("Rejected category %s: %s", category_id, outcome.reason)
                    self.stats.rejected.append(outcome)
                    if self.config.exclude_rejected_ids:
                        skipped_ids.add(category_id)
                    continue
                accepted_ids.add(category_id)
                accepted.append(outcome.category)

        self.stats.elapsed = time.perf_counter() - started
        board = Board(
            categories=accepted,
            num_rows=self.config.num_questions_per_cat,
            max_value=self.config.max_clue_value,
        )
        (commit or self._register)(board)

        logger.info(
            "Assembled %d categories in %.2fs (%d passes, %d fetches, %d rejected)",
            n,
            self.stats.elapsed,
            self.stats.passes,
            self.stats.fetches,
            len(self.stats.rejected),
        )
        return board
