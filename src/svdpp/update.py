"""SVD++ stochastic gradient descent update rule.

One update consumes a single rating and moves the user vector, the item
vector and the implicit feedback vectors of every item the user rated. All
three deltas are computed from the vectors as they were before the update.
The same rule drives model training and runtime personalization.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from src.svdpp.config import DEFAULT_LEARNING_RATE, DEFAULT_REGULARIZATION, TrainingConfig
from src.svdpp.exceptions import InvalidConfiguration
from src.svdpp.model import SVDppModel

# Configure module logger
logger = logging.getLogger(__name__)


def implicit_term(implicit_rows: np.ndarray, n_rated: int, feature_count: int) -> np.ndarray:
    """|N(u)|^-1/2 * sum of the implicit vectors of the user's rated items."""
    if n_rated <= 0 or implicit_rows.shape[0] == 0:
        return np.zeros(feature_count, dtype=np.float64)
    return implicit_rows.sum(axis=0) * (n_rated ** -0.5)


class SVDppUpdateRule:
    """Gradient step for the SVD++ objective.

    Args:
        learning_rate: Step size (eta).
        regularization: L2 regularization term (lambda).
        passes: Sweeps over a user's ratings made by ``personalize``.
    """

    def __init__(
        self,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        regularization: float = DEFAULT_REGULARIZATION,
        passes: int = 1,
    ):
        if not learning_rate > 0:
            raise InvalidConfiguration("learning_rate", learning_rate, "must be > 0")
        if regularization < 0:
            raise InvalidConfiguration("regularization", regularization, "must be >= 0")
        if passes <= 0:
            raise InvalidConfiguration("passes", passes, "must be a positive integer")
        self.learning_rate = learning_rate
        self.regularization = regularization
        self.passes = passes

    @classmethod
    def from_config(cls, config: TrainingConfig, passes: int = 1) -> "SVDppUpdateRule":
        return cls(config.learning_rate, config.regularization, passes)

    def train_rating(
        self,
        user_features: np.ndarray,
        item_features: np.ndarray,
        implicit_features: np.ndarray,
        user_idx: int,
        item_idx: int,
        rated_items: np.ndarray,
        value: float,
        baseline: float,
        n_rated: Optional[int] = None,
        update_item: bool = True,
    ) -> float:
        """Apply one SGD step for a rating and return its prediction error.

        Args:
            user_features: User matrix, updated in place.
            item_features: Item matrix, updated in place when ``update_item``.
            implicit_features: Implicit feedback matrix, updated in place.
            user_idx: Row of the rating's user.
            item_idx: Row of the rated item.
            rated_items: Unique item rows rated by the user, R(u).
            value: Observed rating.
            baseline: Baseline estimate for the user and item.
            n_rated: |N(u)| used for normalization. Defaults to
                ``len(rated_items)``.
            update_item: Also move the item vector.

        Returns:
            ``value - prediction`` computed before the update.
        """
        if n_rated is None:
            n_rated = len(rated_items)
        lr = self.learning_rate
        reg = self.regularization

        # Snapshot every vector this rating reads before anything is written.
        user_vec = user_features[user_idx].copy()
        item_vec = item_features[item_idx].copy()
        implicit_rows = implicit_features[rated_items]

        profile_vec = user_vec + implicit_term(implicit_rows, n_rated, user_vec.shape[0])
        error = float(value) - (float(baseline) + float(item_vec @ profile_vec))

        user_delta = lr * (error * item_vec - reg * user_vec)
        item_delta = lr * (error * profile_vec - reg * item_vec)

        user_features[user_idx] += user_delta
        if update_item:
            item_features[item_idx] += item_delta
        if n_rated > 0 and implicit_rows.shape[0] > 0:
            implicit_delta = lr * (error * n_rated ** -0.5 * item_vec - reg * implicit_rows)
            implicit_features[rated_items] += implicit_delta

        return error

    def personalize(
        self,
        model: SVDppModel,
        user_idx: int,
        item_idxs: Sequence[int],
        values: Sequence[float],
        baselines: Sequence[float],
        n_rated: Optional[int] = None,
    ) -> float:
        """Refresh a user's row and their implicit rows from their ratings.

        Item vectors are left untouched. The user row and the implicit rows
        of ``item_idxs`` are held exclusively for the whole refresh.

        Returns:
            RMSE of the user's ratings over the last pass.
        """
        rated = np.unique(np.asarray(item_idxs, dtype=np.int64))
        if len(rated) != len(item_idxs):
            raise ValueError("item_idxs must not contain duplicates")
        if n_rated is None:
            n_rated = len(rated)

        squared_error = 0.0
        with model.row_locks.hold(user_idx, rated):
            for _ in range(self.passes):
                squared_error = 0.0
                for item_idx, value, baseline in zip(item_idxs, values, baselines):
                    error = self.train_rating(
                        model.user_features,
                        model.item_features,
                        model.implicit_features,
                        user_idx,
                        item_idx,
                        rated,
                        value,
                        baseline,
                        n_rated=n_rated,
                        update_item=False,
                    )
                    squared_error += error * error

        rmse = float(np.sqrt(squared_error / len(rated))) if len(rated) else 0.0
        logger.debug(
            "Personalized user vector",
            extra={"user_idx": int(user_idx), "n_rated": n_rated, "passes": self.passes, "rmse": rmse},
        )
        return rmse
