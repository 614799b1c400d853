from __future__ import annotations

from dataclasses import dataclass, replace
from os import getenv

from utils import env_bool, env_float, env_int

# From testing with the jService API, category IDs start at 1 and end at 18418,
# and clue values cap at 1000.
NUM_CATEGORIES = 6
NUM_QUESTIONS_PER_CAT = 5
NUM_API_CATEGORIES = 18418
NUM_MAX_CLUE_VALUE = 1000

JSERVICE_BASE_URL = "https://jservice.io/api"

RESTART_POLICIES = ("clear", "keep")


@dataclass(frozen=True)
class BoardConfig:
    num_categories: int = NUM_CATEGORIES
    num_questions_per_cat: int = NUM_QUESTIONS_PER_CAT
    num_api_categories: int = NUM_API_CATEGORIES
    max_clue_value: int = NUM_MAX_CLUE_VALUE
    base_url: str = JSERVICE_BASE_URL
    timeout: float = 10.0
    fetch_workers: int = 6
    max_fetch_attempts: int = 200
    restart_registry_policy: str = "clear"
    exclude_rejected_ids: bool = False
    assemble_in_background: bool = True
    session_ttl: float = 3600.0
    max_sessions: int = 1000

    def __post_init__(self):
        if self.num_categories < 1:
            raise ValueError("num_categories must be >= 1")
        if self.num_questions_per_cat < 1:
            raise ValueError("num_questions_per_cat must be >= 1")
        if self.num_api_categories < 1:
            raise ValueError("num_api_categories must be >= 1")
        if self.max_clue_value <= 0:
            raise ValueError("max_clue_value must be > 0")
        if self.fetch_workers < 1:
            raise ValueError("fetch_workers must be >= 1")
        if self.session_ttl < 0:
            raise ValueError("session_ttl must be >= 0")
        if self.max_sessions < 0:
            raise ValueError("max_sessions must be >= 0")
        if self.max_fetch_attempts < 0:
            raise ValueError("max_fetch_attempts must be >= 0")
        if self.restart_registry_policy not in RESTART_POLICIES:
            raise ValueError(
                f"restart_registry_policy must be one of {RESTART_POLICIES}, "
                f"got {self.restart_registry_policy!r}"
            )

    @property
    def clear_registry_on_restart(self) -> bool:
        return self.restart_registry_policy == "clear"

    def with_overrides(self, **kwargs) -> "BoardConfig":
        return replace(self, **kwargs)

    @classmethod
    def from_env(cls) -> "BoardConfig":
        return cls(
            num_categories=env_int("NUM_CATEGORIES", NUM_CATEGORIES),
            num_questions_per_cat=env_int("NUM_QUESTIONS_PER_CAT", NUM_QUESTIONS_PER_CAT),
            num_api_categories=env_int("NUM_API_CATEGORIES", NUM_API_CATEGORIES),
            max_clue_value=env_int("NUM_MAX_CLUE_VALUE", NUM_MAX_CLUE_VALUE),
            base_url=getenv("JSERVICE_BASE_URL", JSERVICE_BASE_URL).rstrip("/"),
            timeout=env_float("JSERVICE_TIMEOUT", 10.0),
            fetch_workers=env_int("FETCH_WORKERS", 6),
            max_fetch_attempts=env_int("MAX_FETCH_ATTEMPTS", 200),
            restart_registry_policy=(getenv("RESTART_REGISTRY_POLICY", "clear") or "clear").strip().lower(),
            exclude_rejected_ids=env_bool("EXCLUDE_REJECTED_IDS", False),
            assemble_in_background=env_bool("ASSEMBLE_IN_BACKGROUND", True),
            session_ttl=env_float("SESSION_TTL", 3600.0),
            max_sessions=env_int("MAX_SESSIONS", 1000),
        )

    def summary(self):
        return {
            "num_categories": self.num_categories,
            "num_questions_per_cat": self.num_questions_per_cat,
            "num_api_categories": self.num_api_categories,
            "max_clue_value": self.max_clue_value,
            "fetch_workers": self.fetch_workers,
            "max_fetch_attempts": self.max_fetch_attempts,
            "restart_registry_policy": self.restart_registry_policy,
            "exclude_rejected_ids": self.exclude_rejected_ids,
            "session_ttl": self.session_ttl,
            "max_sessions": self.max_sessions,
        }
