# voting_portal/storage.py
# Static election dataset served in degraded mode
import json
import logging
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from voting_portal.config import FALLBACK_DATA_PATH
from voting_portal.models.election_model import Candidate, ElectionSettings, Position

logger = logging.getLogger(__name__)

EMPTY_DATASET = {"settings": {}, "positions": [], "candidates": []}


@lru_cache(maxsize=4)
def _read_dataset(path: str) -> Dict[str, Any]:
    """
    Read the static dataset file.
    A missing or corrupted file yields an empty election rather than an error,
    since this data is only used when the database is already unreachable.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, FileNotFoundError) as e:
        logger.error(f"Fallback dataset {path} unreadable: {e}")
        return EMPTY_DATASET


def load_fallback_election(path: str = FALLBACK_DATA_PATH) -> Tuple[ElectionSettings, List[Position], List[Candidate]]:
    data = _read_dataset(path)
    settings = ElectionSettings(
        id=data["settings"].get("id", "fallback-settings"),
        election_title=data["settings"].get("election_title", "Election"),
        # The static dataset is never authoritative, so it never accepts votes
        is_voting_open=False,
    )
    positions = sorted(
        (Position(**p) for p in data.get("positions", [])),
        key=lambda p: p.order_index,
    )
    candidates = sorted(
        (Candidate(**c) for c in data.get("candidates", [])),
        key=lambda c: (c.first_name, c.last_name),
    )
    return settings, positions, candidates
