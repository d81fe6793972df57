"""Baseline rating estimates.

The SVD++ model only learns the residual between a rating and its baseline
estimate. A baseline provider supplies that additive, non-latent estimate
for a user against a set of items.
"""

import logging
from typing import Dict, Hashable, Iterable, Optional, Protocol

import pandas as pd

from src.svdpp.index import ITEM_COL, RATING_COL, USER_COL, validate_ratings_frame

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_DAMPING = 5.0


class BaselineProvider(Protocol):
    """Anything that can produce baseline scores for a user."""

    def score(self, user_id: Hashable, item_ids: Iterable[Hashable]) -> Dict[Hashable, float]:
        ...


class GlobalMeanBaseline:
    """Predicts the global mean rating for every user and item."""

    def __init__(self) -> None:
        self.global_mean: Optional[float] = None

    def fit(self, ratings: pd.DataFrame) -> "GlobalMeanBaseline":
        validate_ratings_frame(ratings)
        self.global_mean = float(ratings[RATING_COL].mean())
        logger.info(f"Fitted global mean baseline: {self.global_mean:.4f}")
        return self

    def _require_fitted(self) -> float:
        if self.global_mean is None:
            raise RuntimeError(f"{type(self).__name__} must be fitted before scoring")
        return self.global_mean

    def score(self, user_id: Hashable, item_ids: Iterable[Hashable]) -> Dict[Hashable, float]:
        mean = self._require_fitted()
        return {item_id: mean for item_id in item_ids}


class ItemMeanBaseline(GlobalMeanBaseline):
    """Damped item mean rating.

    Each item's offset from the global mean is shrunk towards zero by
    ``damping`` virtual ratings at the global mean. Unknown items fall back
    to the global mean.
    """

    def __init__(self, damping: float = DEFAULT_DAMPING):
        super().__init__()
        if damping < 0:
            raise ValueError(f"damping must be non-negative, got {damping}")
        self.damping = damping
        self.item_offsets: Dict[Hashable, float] = {}

    def fit(self, ratings: pd.DataFrame) -> "ItemMeanBaseline":
        super().fit(ratings)
        residuals = ratings[RATING_COL] - self.global_mean
        grouped = residuals.groupby(ratings[ITEM_COL])
        offsets = grouped.sum() / (grouped.count() + self.damping)
        self.item_offsets = offsets.to_dict()
        logger.info(f"Fitted item mean baseline over {len(self.item_offsets)} items")
        return self

    def item_estimate(self, item_id: Hashable) -> float:
        return self._require_fitted() + self.item_offsets.get(item_id, 0.0)

    def score(self, user_id: Hashable, item_ids: Iterable[Hashable]) -> Dict[Hashable, float]:
        self._require_fitted()
        return {item_id: self.item_estimate(item_id) for item_id in item_ids}


class UserItemBaseline(ItemMeanBaseline):
    """Damped item mean plus the user's damped mean offset from it.

    Unknown users get no offset, so they are scored with the item means.
    """

    def __init__(self, damping: float = DEFAULT_DAMPING):
        super().__init__(damping)
        self.user_offsets: Dict[Hashable, float] = {}

    def fit(self, ratings: pd.DataFrame) -> "UserItemBaseline":
        super().fit(ratings)
        item_estimates = ratings[ITEM_COL].map(self.item_estimate)
        residuals = ratings[RATING_COL] - item_estimates
        grouped = residuals.groupby(ratings[USER_COL])
        offsets = grouped.sum() / (grouped.count() + self.damping)
        self.user_offsets = offsets.to_dict()
        logger.info(f"Fitted user offsets for {len(self.user_offsets)} users")
        return self

    def score(self, user_id: Hashable, item_ids: Iterable[Hashable]) -> Dict[Hashable, float]:
        self._require_fitted()
        user_offset = self.user_offsets.get(user_id, 0.0)
        return {item_id: self.item_estimate(item_id) + user_offset for item_id in item_ids}


BASELINES = {
    "global": GlobalMeanBaseline,
    "item": ItemMeanBaseline,
    "user-item": UserItemBaseline,
}


def create_baseline(kind: str, ratings: pd.DataFrame, damping: float = DEFAULT_DAMPING):
    """Create and fit a baseline by name ("global", "item" or "user-item")."""
    if kind not in BASELINES:
        raise ValueError(f"Unknown baseline '{kind}', expected one of {sorted(BASELINES)}")
    baseline_cls = BASELINES[kind]
    baseline = baseline_cls() if kind == "global" else baseline_cls(damping=damping)
    return baseline.fit(ratings)
