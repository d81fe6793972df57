"""SVD++ model container.

Holds the user, item and implicit feedback feature matrices together with
the index that maps ids to their rows.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Hashable, Iterable, Iterator, Optional, Tuple

import numpy as np

from src.svdpp.exceptions import InvalidModelState
from src.svdpp.index import Index

# Configure module logger
logger = logging.getLogger(__name__)


class RowLocks:
    """Per-row exclusive locks for the user and implicit feature matrices.

    Locks are created lazily. ``hold`` always acquires the user row first and
    then item rows in ascending index order, so two callers can never wait
    on each other in a cycle.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, int], threading.Lock] = {}

    def _lock_for(self, kind: str, row: int) -> threading.Lock:
        key = (kind, int(row))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, user_idx: Optional[int], item_idxs: Iterable[int]) -> Iterator[None]:
        with ExitStack() as stack:
            if user_idx is not None:
                stack.enter_context(self._lock_for("user", user_idx))
            for item_idx in sorted(set(int(i) for i in item_idxs)):
                stack.enter_context(self._lock_for("item", item_idx))
            yield


class SVDppModel:
    """Trained SVD++ latent factor model.

    Attributes:
        user_features: (n_users, K) user latent vectors.
        item_features: (n_items, K) item latent vectors.
        implicit_features: (n_items, K) implicit feedback vectors, one per
            item, capturing the signal of having rated that item.
        index: Id<->row mapping for users and items.
        row_locks: Locks serializing runtime updates of user and implicit rows.
    """

    def __init__(
        self,
        user_features: np.ndarray,
        item_features: np.ndarray,
        implicit_features: np.ndarray,
        index: Index,
    ):
        self.user_features = np.ascontiguousarray(user_features, dtype=np.float64)
        self.item_features = np.ascontiguousarray(item_features, dtype=np.float64)
        self.implicit_features = np.ascontiguousarray(implicit_features, dtype=np.float64)
        self.index = index
        self.row_locks = RowLocks()
        self._validate()

    def _validate(self) -> None:
        shapes = {
            "user_features": self.user_features.shape,
            "item_features": self.item_features.shape,
            "implicit_features": self.implicit_features.shape,
        }
        for name, shape in shapes.items():
            if len(shape) != 2:
                raise InvalidModelState(f"{name} must be 2-dimensional", {"shape": shape})

        feature_count = self.user_features.shape[1]
        if feature_count <= 0:
            raise InvalidModelState("feature count must be positive", shapes)
        if any(shape[1] != feature_count for shape in shapes.values()):
            raise InvalidModelState("feature matrices disagree on feature count", shapes)
        if self.user_features.shape[0] != self.index.n_users:
            raise InvalidModelState(
                "user_features rows do not match the number of indexed users",
                {"rows": self.user_features.shape[0], "n_users": self.index.n_users},
            )
        if self.item_features.shape[0] != self.index.n_items or (
            self.implicit_features.shape[0] != self.index.n_items
        ):
            raise InvalidModelState(
                "item matrices rows do not match the number of indexed items",
                {**shapes, "n_items": self.index.n_items},
            )

    @property
    def feature_count(self) -> int:
        return self.user_features.shape[1]

    @property
    def n_users(self) -> int:
        return self.index.n_users

    @property
    def n_items(self) -> int:
        return self.index.n_items

    def get_user_vector(self, user_id: Hashable) -> Optional[np.ndarray]:
        """Copy of the user's latent vector, or None for an unknown user."""
        idx = self.index.user_index(user_id)
        return None if idx is None else self.user_features[idx].copy()

    def get_item_vector(self, item_id: Hashable) -> Optional[np.ndarray]:
        idx = self.index.item_index(item_id)
        return None if idx is None else self.item_features[idx].copy()

    def get_implicit_vector(self, item_id: Hashable) -> Optional[np.ndarray]:
        idx = self.index.item_index(item_id)
        return None if idx is None else self.implicit_features[idx].copy()

    def __repr__(self) -> str:
        return (
            f"SVDppModel(feature_count={self.feature_count}, "
            f"n_users={self.n_users}, n_items={self.n_items})"
        )
