from __future__ import annotations

import os
from dataclasses import dataclass


def _f(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class LinkConfig:
    # Link-store retries (per atomic call)
    store_retries: int = _i("GOLDEN_LINK_STORE_RETRIES", 3)
    retry_initial_wait: float = _f("GOLDEN_LINK_RETRY_INITIAL_WAIT", 0.05)
    retry_max_wait: float = _f("GOLDEN_LINK_RETRY_MAX_WAIT", 1.0)

    # 0 means no cap on candidates taken from the finder
    max_candidates: int = _i("GOLDEN_LINK_MAX_CANDIDATES", 0)

    db_path: str = os.getenv("GOLDEN_LINK_DB_PATH", "./data/links.sqlite")


CONFIG = LinkConfig()
