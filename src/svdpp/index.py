"""Rating snapshot construction.

This module maps raw user and item ids to dense matrix indices and builds
the immutable rating snapshot the trainer iterates over.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Hashable, Iterable, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

# Configure module logger
logger = logging.getLogger(__name__)

# Expected rating columns
USER_COL = "user_id"
ITEM_COL = "item_id"
RATING_COL = "rating"


class RatingEvent(NamedTuple):
    """A single explicit rating."""

    user_id: Hashable
    item_id: Hashable
    value: float


class Index:
    """Bijective mapping between user/item ids and dense 0-based indices.

    The mapping is fixed once constructed. Ids are stored in index order, so
    ``user_ids[k]`` is the id of user index ``k``.
    """

    def __init__(self, user_ids: Sequence[Hashable], item_ids: Sequence[Hashable]):
        self.user_ids: List[Hashable] = list(user_ids)
        self.item_ids: List[Hashable] = list(item_ids)
        self.user_id_to_idx: Dict[Hashable, int] = {
            uid: idx for idx, uid in enumerate(self.user_ids)
        }
        self.item_id_to_idx: Dict[Hashable, int] = {
            iid: idx for idx, iid in enumerate(self.item_ids)
        }

        if len(self.user_id_to_idx) != len(self.user_ids):
            raise ValueError("Duplicate user ids in index")
        if len(self.item_id_to_idx) != len(self.item_ids):
            raise ValueError("Duplicate item ids in index")

    @classmethod
    def from_mappings(
        cls,
        user_id_to_idx: Dict[Hashable, int],
        item_id_to_idx: Dict[Hashable, int],
    ) -> "Index":
        """Rebuild an index from id->index dictionaries."""
        user_ids = sorted(user_id_to_idx, key=user_id_to_idx.__getitem__)
        item_ids = sorted(item_id_to_idx, key=item_id_to_idx.__getitem__)
        index = cls(user_ids, item_ids)
        if index.user_id_to_idx != dict(user_id_to_idx) or index.item_id_to_idx != dict(
            item_id_to_idx
        ):
            raise ValueError("Id mappings are not dense 0-based indices")
        return index

    @property
    def n_users(self) -> int:
        return len(self.user_ids)

    @property
    def n_items(self) -> int:
        return len(self.item_ids)

    def user_index(self, user_id: Hashable) -> Optional[int]:
        return self.user_id_to_idx.get(user_id)

    def item_index(self, item_id: Hashable) -> Optional[int]:
        return self.item_id_to_idx.get(item_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Index):
            return NotImplemented
        return self.user_ids == other.user_ids and self.item_ids == other.item_ids

    def __repr__(self) -> str:
        return f"Index(n_users={self.n_users}, n_items={self.n_items})"


@dataclass(frozen=True)
class RatingSnapshot:
    """Immutable training view of a rating data set.

    Attributes:
        index: Id<->index mapping for users and items.
        user_indices: User index of every rating, in input order.
        item_indices: Item index of every rating, in input order.
        values: Rating value of every rating, in input order.
        user_ratings: CSR matrix (n_users x n_items); row ``u`` holds the
            items rated by user index ``u`` and their values.
    """

    index: Index
    user_indices: np.ndarray
    item_indices: np.ndarray
    values: np.ndarray
    user_ratings: csr_matrix

    @property
    def n_ratings(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_users(self) -> int:
        return self.index.n_users

    @property
    def n_items(self) -> int:
        return self.index.n_items

    def rated_items(self, user_idx: int) -> np.ndarray:
        """Item indices rated by ``user_idx``, in ascending order."""
        start, end = self.user_ratings.indptr[user_idx], self.user_ratings.indptr[user_idx + 1]
        return self.user_ratings.indices[start:end]

    def user_values(self, user_idx: int) -> np.ndarray:
        start, end = self.user_ratings.indptr[user_idx], self.user_ratings.indptr[user_idx + 1]
        return self.user_ratings.data[start:end]

    def events(self) -> Iterable[RatingEvent]:
        """Iterate over all ratings with their original ids."""
        user_ids, item_ids = self.index.user_ids, self.index.item_ids
        for u, i, value in zip(self.user_indices, self.item_indices, self.values):
            yield RatingEvent(user_ids[u], item_ids[i], float(value))


def validate_ratings_frame(
    df: pd.DataFrame,
    user_col: str = USER_COL,
    item_col: str = ITEM_COL,
    rating_col: str = RATING_COL,
) -> None:
    """Check that a ratings DataFrame has the expected columns and rows.

    Raises:
        ValueError: If columns are missing, the frame is empty, or ratings
            are not finite numbers.
    """
    required_columns = {user_col, item_col, rating_col}
    if not required_columns.issubset(df.columns):
        missing = required_columns - set(df.columns)
        raise ValueError(f"Ratings data missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot build a snapshot from empty ratings data")

    values = pd.to_numeric(df[rating_col], errors="coerce")
    if not np.all(np.isfinite(values.to_numpy(dtype=np.float64))):
        raise ValueError(f"Column '{rating_col}' contains missing or non-numeric ratings")


def load_ratings_csv(
    csv_path: str,
    user_col: str = USER_COL,
    item_col: str = ITEM_COL,
    rating_col: str = RATING_COL,
) -> pd.DataFrame:
    """Load a ratings CSV into a DataFrame with normalized column names.

    Args:
        csv_path: Path to a CSV file with user, item and rating columns.
        user_col: Name of the column containing user identifiers.
        item_col: Name of the column containing item identifiers.
        rating_col: Name of the column containing rating values.

    Returns:
        DataFrame with columns ``user_id``, ``item_id`` and ``rating``.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or is empty.
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading ratings from {csv_path}")
    df = pd.read_csv(csv_path)
    validate_ratings_frame(df, user_col, item_col, rating_col)

    df = df.rename(columns={user_col: USER_COL, item_col: ITEM_COL, rating_col: RATING_COL})
    df[RATING_COL] = df[RATING_COL].astype(np.float64)
    logger.info(f"Loaded {len(df)} rating records")
    return df[[USER_COL, ITEM_COL, RATING_COL]]


def build_snapshot(df: pd.DataFrame) -> RatingSnapshot:
    """Build a rating snapshot from a ratings DataFrame.

    Users and items are indexed in sorted id order. When a user rated the
    same item more than once, only the last rating is kept.

    Args:
        df: DataFrame with ``user_id``, ``item_id`` and ``rating`` columns.

    Returns:
        RatingSnapshot over the de-duplicated ratings, in input order.

    Raises:
        ValueError: If the frame is empty or malformed.
    """
    validate_ratings_frame(df)

    deduped = df.drop_duplicates(subset=[USER_COL, ITEM_COL], keep="last")
    if len(deduped) < len(df):
        logger.warning(f"Dropped {len(df) - len(deduped)} duplicate user-item ratings")

    index = Index(
        sorted(deduped[USER_COL].unique().tolist()),
        sorted(deduped[ITEM_COL].unique().tolist()),
    )

    user_indices = deduped[USER_COL].map(index.user_id_to_idx).to_numpy(dtype=np.int64)
    item_indices = deduped[ITEM_COL].map(index.item_id_to_idx).to_numpy(dtype=np.int64)
    values = deduped[RATING_COL].to_numpy(dtype=np.float64)

    user_ratings = csr_matrix(
        (values, (user_indices, item_indices)),
        shape=(index.n_users, index.n_items),
        dtype=np.float64,
    )
    user_ratings.sort_indices()

    logger.info(f"Unique users: {index.n_users}")
    logger.info(f"Unique items: {index.n_items}")
    logger.info(f"Matrix density: {len(values) / (index.n_users * index.n_items):.4%}")

    return RatingSnapshot(
        index=index,
        user_indices=user_indices,
        item_indices=item_indices,
        values=values,
        user_ratings=user_ratings,
    )


def snapshot_from_events(events: Iterable[RatingEvent]) -> RatingSnapshot:
    """Build a snapshot from rating events."""
    df = pd.DataFrame(list(events), columns=[USER_COL, ITEM_COL, RATING_COL])
    return build_snapshot(df)
