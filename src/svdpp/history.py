"""Rating history sources.

The scorer folds a user's current ratings into their latent vector at query
time. A rating history source supplies those ratings.
"""

import logging
import threading
from collections import defaultdict
from typing import Dict, Hashable, Protocol

import pandas as pd

from src.svdpp.index import (
    ITEM_COL,
    RATING_COL,
    USER_COL,
    load_ratings_csv,
    validate_ratings_frame,
)

# Configure module logger
logger = logging.getLogger(__name__)


class RatingHistorySource(Protocol):
    """Anything that can return a user's ratings as ``{item_id: value}``."""

    def ratings_of(self, user_id: Hashable) -> Dict[Hashable, float]:
        ...


class InMemoryRatingHistory:
    """Thread-safe in-memory rating event store.

    Later ratings for the same user and item replace earlier ones.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ratings: Dict[Hashable, Dict[Hashable, float]] = defaultdict(dict)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "InMemoryRatingHistory":
        validate_ratings_frame(df)
        history = cls()
        for user_id, item_id, value in df[[USER_COL, ITEM_COL, RATING_COL]].itertuples(
            index=False, name=None
        ):
            history._ratings[user_id][item_id] = float(value)
        logger.info(f"Loaded rating history for {len(history._ratings)} users")
        return history

    @classmethod
    def from_csv(cls, csv_path: str) -> "InMemoryRatingHistory":
        return cls.from_dataframe(load_ratings_csv(csv_path))

    def add_rating(self, user_id: Hashable, item_id: Hashable, value: float) -> None:
        with self._lock:
            self._ratings[user_id][item_id] = float(value)

    def ratings_of(self, user_id: Hashable) -> Dict[Hashable, float]:
        with self._lock:
            if user_id not in self._ratings:
                return {}
            return dict(self._ratings[user_id])

    def __len__(self) -> int:
        with self._lock:
            return sum(len(r) for r in self._ratings.values())
