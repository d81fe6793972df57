"""Module for scoring items with a trained SVD++ model.

Scores are computed by folding the user's current ratings into their latent
vector: the implicit feedback vectors of the rated items are added to the
stored user vector before taking the dot product with each item vector.
"""

import logging
import time
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from src.svdpp.baseline import BaselineProvider
from src.svdpp.config import RatingDomain
from src.svdpp.history import RatingHistorySource
from src.svdpp.model import SVDppModel
from src.svdpp.update import SVDppUpdateRule, implicit_term

# Configure module logger
logger = logging.getLogger(__name__)

# Default parameters
DEFAULT_TOP_N = 10
UNSCORED_POLICIES = ("mark", "baseline", "omit")


class Unscored:
    """Marker for an item the model cannot make a latent prediction for.

    There is a single instance, ``UNSCORED``.
    """

    _instance = None

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            cls._instance = super(Unscored, cls).__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSCORED"

    def __reduce__(self):
        return (Unscored, ())


UNSCORED = Unscored()

ScoreValue = Union[float, Unscored]


class SVDppItemScorer:
    """Fold-in item scorer for a trained SVD++ model.

    Args:
        model: Trained model. Treated as read-only unless ``update_rule`` is
            given.
        baseline: Baseline provider. Should be the one the model was
            trained with; a different baseline is unlikely to score well.
        history: Source of the user's current ratings, used when ``score``
            is not handed ratings explicitly.
        update_rule: Optional runtime update rule. When given, the user's
            row and the implicit rows of their rated items are refreshed
            from their ratings before scoring.
        domain: Optional rating range that latent scores are clamped to.
    """

    def __init__(
        self,
        model: SVDppModel,
        baseline: BaselineProvider,
        history: Optional[RatingHistorySource] = None,
        update_rule: Optional[SVDppUpdateRule] = None,
        domain: Optional[RatingDomain] = None,
    ):
        self.model = model
        self.baseline = baseline
        self.history = history
        self.update_rule = update_rule
        self.domain = domain

    def _ratings_for(
        self, user_id: Hashable, ratings: Optional[Mapping[Hashable, float]]
    ) -> Mapping[Hashable, float]:
        if ratings is not None:
            return ratings
        if self.history is not None:
            return self.history.ratings_of(user_id)
        return {}

    def _user_profile(
        self,
        user_id: Hashable,
        ratings: Mapping[Hashable, float],
        baselines: Mapping[Hashable, float],
    ) -> np.ndarray:
        """User vector plus the normalized implicit feedback of their ratings."""
        model = self.model
        index = model.index
        user_idx = index.user_index(user_id)

        known: List[Tuple[int, float, float]] = []
        for item_id, value in ratings.items():
            item_idx = index.item_index(item_id)
            if item_idx is not None:
                known.append((item_idx, float(value), float(baselines[item_id])))
        known_idxs = np.array([k[0] for k in known], dtype=np.int64)

        if self.update_rule is not None and user_idx is not None and known:
            self.update_rule.personalize(
                model,
                user_idx,
                known_idxs,
                [k[1] for k in known],
                [k[2] for k in known],
                n_rated=len(ratings),
            )

        # Same locks personalization writes under
        with model.row_locks.hold(user_idx, known_idxs):
            implicit_vec = implicit_term(
                model.implicit_features[known_idxs], len(ratings), model.feature_count
            )
            if user_idx is None:
                user_vec = np.zeros(model.feature_count, dtype=np.float64)
            else:
                user_vec = model.user_features[user_idx].copy()

        return user_vec + implicit_vec

    def score(
        self,
        user_id: Hashable,
        items: Iterable[Hashable],
        ratings: Optional[Mapping[Hashable, float]] = None,
        unscored: str = "mark",
    ) -> Dict[Hashable, ScoreValue]:
        """Score items for a user.

        Args:
            user_id: User to score for. Unknown users get a zero user vector.
            items: Target item ids.
            ratings: The user's ratings as ``{item_id: value}``. Defaults to
                the configured history source.
            unscored: How items unknown to the model are reported:
                "mark" maps them to ``UNSCORED``, "baseline" to their
                baseline estimate, "omit" leaves them out.

        Returns:
            Mapping of item id to predicted rating.
        """
        if unscored not in UNSCORED_POLICIES:
            raise ValueError(f"unscored must be one of {UNSCORED_POLICIES}, got {unscored!r}")

        start_time = time.time()
        targets = list(dict.fromkeys(items))
        ratings = self._ratings_for(user_id, ratings)
        all_items = list(dict.fromkeys([*targets, *ratings]))
        baselines = self.baseline.score(user_id, all_items)

        # No ratings to fold in: known items get their baseline exactly
        if ratings:
            profile = self._user_profile(user_id, ratings, baselines)
        else:
            profile = None
            logger.debug(
                "No rating history, returning baseline scores",
                extra={"user_id": user_id, "num_items": len(targets)},
            )

        index = self.model.index
        results: Dict[Hashable, ScoreValue] = {}
        n_unscored = 0
        for item_id in targets:
            item_idx = index.item_index(item_id)
            if item_idx is None:
                n_unscored += 1
                if unscored == "mark":
                    results[item_id] = UNSCORED
                elif unscored == "baseline":
                    results[item_id] = float(baselines[item_id])
                continue

            if profile is None:
                results[item_id] = float(baselines[item_id])
                continue

            score = float(baselines[item_id]) + float(self.model.item_features[item_idx] @ profile)
            if self.domain is not None:
                score = self.domain.clamp(score)
            results[item_id] = score

        logger.debug(
            "Scored items",
            extra={
                "user_id": user_id,
                "num_items": len(targets),
                "num_unscored": n_unscored,
                "num_ratings": len(ratings),
                "scoring_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return results

    def recommend(
        self,
        user_id: Hashable,
        top_n: int = DEFAULT_TOP_N,
        candidates: Optional[Iterable[Hashable]] = None,
        ratings: Optional[Mapping[Hashable, float]] = None,
        exclude_rated: bool = True,
    ) -> List[Tuple[Hashable, float]]:
        """Highest scoring items for a user.

        Args:
            user_id: User to recommend for.
            top_n: Maximum number of items to return.
            candidates: Items to rank. Defaults to every item in the model.
            ratings: The user's ratings. Defaults to the history source.
            exclude_rated: Leave out items the user already rated.

        Returns:
            ``(item_id, score)`` pairs ordered by descending score. Unscored
            candidates are never recommended.
        """
        if top_n <= 0:
            return []
        ratings = self._ratings_for(user_id, ratings)
        if candidates is None:
            candidates = self.model.index.item_ids
        if exclude_rated:
            candidates = [item_id for item_id in candidates if item_id not in ratings]

        scores = self.score(user_id, candidates, ratings=ratings, unscored="omit")
        ranked = sorted(scores.items(), key=lambda pair: pair[1], reverse=True)
        return [(item_id, float(score)) for item_id, score in ranked[:top_n]]


def score_items(
    user_id: Hashable,
    target_items: Iterable[Hashable],
    model: SVDppModel,
    baseline: BaselineProvider,
    rating_history: Mapping[Hashable, float],
    unscored: str = "mark",
) -> Dict[Hashable, ScoreValue]:
    """Score items for a user with pure fold-in scoring."""
    scorer = SVDppItemScorer(model, baseline)
    return scorer.score(user_id, target_items, ratings=rating_history, unscored=unscored)
