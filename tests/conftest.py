"""Shared fixtures for the SVD++ test suite."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from src.svdpp.baseline import GlobalMeanBaseline
from src.svdpp.index import build_snapshot

# 5 users x 5 items, 15 ratings
SMALL_RATINGS = [
    (1, 10, 5.0), (1, 11, 4.0), (1, 13, 1.0),
    (2, 10, 4.0), (2, 12, 2.0), (2, 14, 1.0),
    (3, 11, 5.0), (3, 12, 4.0), (3, 13, 2.0),
    (4, 10, 1.0), (4, 13, 5.0), (4, 14, 4.0),
    (5, 11, 2.0), (5, 12, 1.0), (5, 14, 5.0),
]


@pytest.fixture
def small_ratings() -> pd.DataFrame:
    """Fifteen ratings over five users and five items."""
    return pd.DataFrame(SMALL_RATINGS, columns=["user_id", "item_id", "rating"])


@pytest.fixture
def small_snapshot(small_ratings):
    return build_snapshot(small_ratings)


@pytest.fixture
def global_baseline(small_ratings) -> GlobalMeanBaseline:
    return GlobalMeanBaseline().fit(small_ratings)


@pytest.fixture
def synthetic_ratings_csv(tmp_path: Path) -> Path:
    """Low-rank synthetic ratings for 20 users and 30 items, saved as CSV."""
    rng = np.random.default_rng(0)
    user_factors = rng.normal(size=(20, 2))
    item_factors = rng.normal(size=(30, 2))

    rows = []
    for user in range(20):
        for item in rng.choice(30, size=10, replace=False):
            value = 3.0 + user_factors[user] @ item_factors[item] + rng.normal(0, 0.3)
            rows.append((user + 1, int(item) + 1, float(np.clip(np.rint(value), 1, 5))))

    csv_path = tmp_path / "ratings.csv"
    pd.DataFrame(rows, columns=["user_id", "item_id", "rating"]).to_csv(csv_path, index=False)
    return csv_path
