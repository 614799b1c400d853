from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from assembler import CategoryAssembler
from board import Board, Clue, RevealState
from config import BoardConfig
from errors import FATAL_ERRORS, StaleRun
from jservice import JServiceClient
from sampling import ConsumedIDRegistry
from utils import gen_id, utc_now_iso

logger = logging.getLogger(__name__)

IDLE = "idle"
LOADING = "loading"
READY = "ready"
ERROR = "error"


class GameSession:
    """
    One player's game: the consumed-id registry, the current board and the
    token of the assembly run allowed to write it.

    start() and restart() bump the run token; a run that finishes under an old
    token is dropped, so a slow superseded run can never overwrite a newer board.
    Board ids reach the registry only when the board is published, under the
    same lock as the token check.
    """

    def __init__(
        self,
        client: JServiceClient,
        config: Optional[BoardConfig] = None,
        session_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        self.id = session_id or gen_id(14)
        self.client = client
        self.config = config or BoardConfig()
        self.rng = rng
        self.registry = ConsumedIDRegistry()
        self.created_at = utc_now_iso()
        self.last_active = time.monotonic()

        self.status = IDLE
        self.board: Optional[Board] = None
        self.error: Optional[str] = None
        self.run_token: Optional[str] = None
        self.last_stats = None
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    # -----------------------------
    # Session control
    # -----------------------------
    def start(self, background: Optional[bool] = None, clear_registry: bool = False) -> str:
        token = gen_id(8)
        with self._lock:
            if clear_registry:
                self.registry.reset()
            self.run_token = token
            self.status = LOADING
            self.board = None
            self.error = None

        if background is None:
            background = self.config.assemble_in_background
        if background:
            self._thread = threading.Thread(
                target=self._run, args=(token,), name=f"assemble-{self.id}-{token}", daemon=True
            )
            self._thread.start()
        else:
            self._run(token)
        return token

    def restart(self, background: Optional[bool] = None) -> str:
        return self.start(background=background, clear_registry=self.config.clear_registry_on_restart)

    def reset(self) -> None:
        """Forget every category used so far in this session."""
        with self._lock:
            self.registry.reset()

    def discard(self) -> None:
        """Drop the board and orphan any in-flight run."""
        with self._lock:
            self.run_token = None
            self.board = None
            self.status = IDLE

    def is_current(self, token: str) -> bool:
        with self._lock:
            return self.run_token == token

    def _run(self, token: str) -> None:
        assembler = CategoryAssembler(self.client, self.registry, config=self.config, rng=self.rng)
        try:
            assembler.assemble(
                is_current=lambda: self.is_current(token),
                commit=lambda board: self._publish(token, board),
            )
        except StaleRun:
            logger.info("Session %s: run %s superseded, result dropped", self.id, token)
            return
        except FATAL_ERRORS as e:
            logger.error("Session %s: board assembly aborted: %s", self.id, e)
            self._fail(token, str(e))
            return
        except Exception as e:
            logger.exception("Session %s: unexpected failure while assembling", self.id)
            self._fail(token, f"unexpected error: {e}")
            return
        self.last_stats = assembler.stats

    def _publish(self, token: str, board: Board) -> None:
        with self._lock:
            if self.run_token != token:
                raise StaleRun(f"run {token} finished after being superseded")
            for category_id in board.source_ids:
                self.registry.add(category_id)
            self.status = READY
            self.board = board

    def _fail(self, token: str, error: str) -> None:
        with self._lock:
            if self.run_token != token:
                logger.info("Session %s: run %s failed after being superseded", self.id, token)
                return
            self.status = ERROR
            self.error = error
            self.board = None

    # -----------------------------
    # Rendering hooks
    # -----------------------------
    def advance_clue(self, category_index: int, row: int, target: Optional[RevealState] = None) -> Clue:
        with self._lock:
            if self.status != READY or self.board is None:
                raise LookupError("board is not ready")
            return self.board.advance(category_index, row, target)

    def to_public_dict(self) -> Dict[str, Any]:
        with self._lock:
            out: Dict[str, Any] = {"session_id": self.id, "status": self.status, "created_at": self.created_at}
            if self.status == READY and self.board is not None:
                out["board"] = self.board.to_public_dict()
            if self.status == ERROR:
                out["error"] = self.error
            return out


class SessionStore:
    """
    In-memory sessions keyed by id; nothing outlives the process.

    Sessions idle for longer than `ttl` seconds are dropped, and once
    `max_sessions` are held the least recently used one makes room for a new
    one. A ttl or max_sessions of 0 turns that limit off.
    """

    def __init__(
        self,
        factory: Callable[[], GameSession],
        ttl: float = 3600.0,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._sessions: Dict[str, GameSession] = {}
        self._lock = threading.Lock()
        self.ttl = ttl
        self.max_sessions = max_sessions
        self._clock = clock

    def _evict(self, now: float, room_for: int = 0) -> None:
        dropped: List[GameSession] = []
        if self.ttl:
            for sid, session in list(self._sessions.items()):
                if now - session.last_active > self.ttl:
                    dropped.append(self._sessions.pop(sid))
        if self.max_sessions:
            by_age = sorted(self._sessions.values(), key=lambda s: s.last_active)
            while by_age and len(self._sessions) + room_for > self.max_sessions:
                dropped.append(self._sessions.pop(by_age.pop(0).id))
        for session in dropped:
            logger.info("Evicting session %s (created %s)", session.id, session.created_at)
            session.discard()

    def create(self) -> GameSession:
        session = self._factory()
        with self._lock:
            now = self._clock()
            self._evict(now, room_for=1)
            session.last_active = now
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[GameSession]:
        with self._lock:
            now = self._clock()
            self._evict(now)
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_active = now
            return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
