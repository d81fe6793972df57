"""Offline evaluation of SVD++ rating predictions.

Splits ratings into train and test sets and measures prediction error of a
scorer on the held-out ratings.
"""

import logging
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error
from sklearn.model_selection import train_test_split

from src.svdpp.index import ITEM_COL, RATING_COL, USER_COL, validate_ratings_frame
from src.svdpp.infer import UNSCORED, SVDppItemScorer

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_TEST_SIZE = 0.2


def split_ratings(
    ratings: pd.DataFrame,
    test_size: float = DEFAULT_TEST_SIZE,
    random_state: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Randomly split ratings into train and test frames."""
    validate_ratings_frame(ratings)
    train_df, test_df = train_test_split(
        ratings, test_size=test_size, random_state=random_state, shuffle=True
    )
    logger.info(f"Split {len(ratings)} ratings into {len(train_df)} train / {len(test_df)} test")
    return train_df.reset_index(drop=True), test_df.reset_index(drop=True)


def evaluate_model(scorer: SVDppItemScorer, test_ratings: pd.DataFrame) -> Dict[str, float]:
    """Compute RMSE and MAE of a scorer on held-out ratings.

    Each test user is scored against their test items using the history
    the scorer is configured with, so test ratings must not be part of it.
    Items unknown to the model are counted but excluded from the metrics.

    Returns:
        Dictionary with ``rmse``, ``mae``, ``n_scored`` and ``n_unscored``.
    """
    validate_ratings_frame(test_ratings)

    actual, predicted = [], []
    n_unscored = 0
    for user_id, group in test_ratings.groupby(USER_COL, sort=False):
        scores = scorer.score(user_id, group[ITEM_COL].tolist())
        for item_id, value in zip(group[ITEM_COL], group[RATING_COL]):
            score = scores[item_id]
            if score is UNSCORED:
                n_unscored += 1
                continue
            actual.append(float(value))
            predicted.append(float(score))

    if not actual:
        logger.warning("No test ratings could be scored")
        return {"rmse": float("nan"), "mae": float("nan"), "n_scored": 0, "n_unscored": n_unscored}

    rmse = float(np.sqrt(mean_squared_error(actual, predicted)))
    mae = float(mean_absolute_error(actual, predicted))
    logger.info(f"Evaluation RMSE={rmse:.4f} MAE={mae:.4f} over {len(actual)} ratings")
    return {"rmse": rmse, "mae": mae, "n_scored": len(actual), "n_unscored": n_unscored}
