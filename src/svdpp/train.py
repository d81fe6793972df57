"""SVD++ model training module.

This module trains an SVD++ latent factor model from explicit ratings by
stochastic gradient descent. Each epoch visits every rating once; each
rating moves the user vector, the item vector and the implicit feedback
vectors of every item the user rated, so ratings are processed strictly one
after another.
"""

import logging
import math
import threading
import time
from typing import Dict, List, NamedTuple, Optional

import numpy as np

from src.svdpp.baseline import BaselineProvider, create_baseline
from src.svdpp.config import ConvergencePolicy, TrainingConfig
from src.svdpp.exceptions import DivergenceError
from src.svdpp.index import RatingSnapshot, build_snapshot, load_ratings_csv
from src.svdpp.model import SVDppModel
from src.svdpp.update import SVDppUpdateRule
from src.svdpp.utils import save_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_BASELINE = "user-item"


class TrainingResult(NamedTuple):
    """Output of the end-to-end training pipeline."""

    model: SVDppModel
    baseline: BaselineProvider
    rmse_history: List[float]
    stop_reason: str


class SVDppTrainer:
    """Builds an SVD++ model from a rating snapshot.

    Args:
        baseline: Provider of the baseline estimate added to every
            prediction. The model learns the residual on top of it.
        config: Training hyperparameters. Defaults to ``TrainingConfig()``.

    After ``train`` returns or raises, ``rmse_history`` holds the RMSE of
    every completed epoch and ``stop_reason`` one of ``"converged"``,
    ``"max_epochs"``, ``"cancelled"`` or ``"diverged"``.
    """

    def __init__(self, baseline: BaselineProvider, config: Optional[TrainingConfig] = None):
        self.baseline = baseline
        self.config = config or TrainingConfig()
        self.config.validate()
        self.update_rule = SVDppUpdateRule.from_config(self.config)
        self.rmse_history: List[float] = []
        self.stop_reason: Optional[str] = None

    def _initial_features(self, rng: np.random.Generator, snapshot: RatingSnapshot):
        cfg = self.config
        shape_users = (snapshot.n_users, cfg.feature_count)
        shape_items = (snapshot.n_items, cfg.feature_count)

        user_features = rng.uniform(cfg.init_min, cfg.init_max, size=shape_users)
        item_features = rng.uniform(cfg.init_min, cfg.init_max, size=shape_items)
        if cfg.zero_implicit_init:
            implicit_features = np.zeros(shape_items, dtype=np.float64)
        else:
            implicit_features = rng.uniform(cfg.init_min, cfg.init_max, size=shape_items)
        return user_features, item_features, implicit_features

    def _training_baselines(self, snapshot: RatingSnapshot) -> np.ndarray:
        """Baseline estimate for every rating, aligned with snapshot order.

        Baselines are fixed during training, so each user's rated items are
        scored once up front.
        """
        user_ids, item_ids = snapshot.index.user_ids, snapshot.index.item_ids
        per_pair: Dict[tuple, float] = {}
        for user_idx in range(snapshot.n_users):
            rated = snapshot.rated_items(user_idx)
            if len(rated) == 0:
                continue
            scores = self.baseline.score(user_ids[user_idx], [item_ids[i] for i in rated])
            for item_idx in rated:
                per_pair[(user_idx, int(item_idx))] = float(scores[item_ids[item_idx]])

        return np.array(
            [
                per_pair[(int(u), int(i))]
                for u, i in zip(snapshot.user_indices, snapshot.item_indices)
            ],
            dtype=np.float64,
        )

    def _run_epoch(
        self,
        snapshot: RatingSnapshot,
        order: np.ndarray,
        baselines: np.ndarray,
        rated_by_user: List[np.ndarray],
        user_features: np.ndarray,
        item_features: np.ndarray,
        implicit_features: np.ndarray,
    ) -> float:
        squared_error = 0.0
        user_indices, item_indices, values = (
            snapshot.user_indices,
            snapshot.item_indices,
            snapshot.values,
        )
        # A diverging run overflows before it is detected; report it via RMSE.
        with np.errstate(over="ignore", invalid="ignore"):
            for k in order:
                user_idx = user_indices[k]
                error = self.update_rule.train_rating(
                    user_features,
                    item_features,
                    implicit_features,
                    user_idx,
                    item_indices[k],
                    rated_by_user[user_idx],
                    values[k],
                    baselines[k],
                )
                squared_error += error * error
        return math.sqrt(squared_error / len(order))

    def train(
        self,
        snapshot: RatingSnapshot,
        stop_event: Optional[threading.Event] = None,
    ) -> SVDppModel:
        """Train an SVD++ model.

        Args:
            snapshot: Ratings to learn from.
            stop_event: When set, training stops before the next epoch and
                the model of the last completed epoch is returned.

        Returns:
            Trained SVDppModel.

        Raises:
            ValueError: If the snapshot holds no ratings.
            DivergenceError: If an epoch RMSE is non-finite or grows past the
                convergence policy's divergence ratio.
        """
        if snapshot.n_ratings == 0:
            raise ValueError("Cannot train on an empty rating snapshot")

        cfg = self.config
        policy: ConvergencePolicy = cfg.convergence

        logger.debug(f"Learning rate is {cfg.learning_rate}")
        logger.debug(f"Regularization term is {cfg.regularization}")
        logger.info(
            f"Building SVD++ with {cfg.feature_count} features for "
            f"{snapshot.n_ratings} ratings ({snapshot.n_users} users, {snapshot.n_items} items)"
        )

        rng = np.random.default_rng(cfg.random_state)
        user_features, item_features, implicit_features = self._initial_features(rng, snapshot)
        baselines = self._training_baselines(snapshot)
        rated_by_user = [
            snapshot.rated_items(user_idx).astype(np.int64) for user_idx in range(snapshot.n_users)
        ]

        self.rmse_history = []
        self.stop_reason = None
        previous: Optional[float] = None
        train_start = time.time()

        for epoch in range(1, policy.max_epochs + 1):
            if stop_event is not None and stop_event.is_set():
                self.stop_reason = "cancelled"
                logger.warning(f"Training cancelled before epoch {epoch}")
                break

            epoch_start = time.time()
            if cfg.shuffle:
                order = rng.permutation(snapshot.n_ratings)
            else:
                order = np.arange(snapshot.n_ratings)

            rmse = self._run_epoch(
                snapshot,
                order,
                baselines,
                rated_by_user,
                user_features,
                item_features,
                implicit_features,
            )
            self.rmse_history.append(rmse)

            if policy.is_diverged(rmse, previous):
                self.stop_reason = "diverged"
                logger.error(
                    f"Training diverged at epoch {epoch}: RMSE={rmse}, previous={previous}"
                )
                raise DivergenceError(epoch, rmse, self.rmse_history)

            logger.info(
                f"Epoch {epoch}/{policy.max_epochs} | RMSE = {rmse:.6f} | "
                f"{time.time() - epoch_start:.3f}s"
            )

            self.stop_reason = policy.should_stop(epoch, rmse, previous)
            previous = rmse
            if self.stop_reason is not None:
                break

        logger.info(
            f"Training finished after {len(self.rmse_history)} epochs "
            f"({self.stop_reason}) in {time.time() - train_start:.2f}s"
        )

        return SVDppModel(user_features, item_features, implicit_features, snapshot.index)


def train_svdpp_model(
    snapshot: RatingSnapshot,
    baseline: BaselineProvider,
    config: Optional[TrainingConfig] = None,
    stop_event: Optional[threading.Event] = None,
) -> SVDppModel:
    """Train an SVD++ model; see ``SVDppTrainer.train``."""
    return SVDppTrainer(baseline, config).train(snapshot, stop_event=stop_event)


def train_from_csv(
    csv_path: str,
    output_dir: Optional[str] = "models",
    config: Optional[TrainingConfig] = None,
    baseline_kind: str = DEFAULT_BASELINE,
    damping: float = 5.0,
) -> TrainingResult:
    """Train an SVD++ model from a ratings CSV and save its artifacts.

    This is the main entry point for training. It loads the ratings, builds
    the snapshot, fits the baseline, trains the model and saves everything
    needed for scoring.

    Args:
        csv_path: Path to CSV file with columns: user_id, item_id, rating.
        output_dir: Directory where model artifacts will be saved. None
            skips saving.
        config: Training hyperparameters.
        baseline_kind: "global", "item" or "user-item".
        damping: Damping for the mean baselines.

    Returns:
        TrainingResult with the model, the fitted baseline, the epoch RMSE
        trajectory and the stop reason.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If data is invalid or training parameters are incorrect.
        DivergenceError: If training diverges.

    Example:
        >>> result = train_from_csv("data/ratings.csv", output_dir="models")
        >>> print(f"Final RMSE: {result.rmse_history[-1]:.4f}")
    """
    logger.info("=" * 60)
    logger.info("Starting SVD++ model training")
    logger.info("=" * 60)

    try:
        ratings = load_ratings_csv(csv_path)
        snapshot = build_snapshot(ratings)
        baseline = create_baseline(baseline_kind, ratings, damping=damping)

        trainer = SVDppTrainer(baseline, config)
        model = trainer.train(snapshot)

        if output_dir is not None:
            save_model_artifacts(model, output_dir, baseline=baseline)

        logger.info("=" * 60)
        logger.info("Training completed successfully!")
        logger.info("=" * 60)

        return TrainingResult(model, baseline, list(trainer.rmse_history), trainer.stop_reason)

    except Exception as e:
        logger.error(f"Training failed: {e}", exc_info=True)
        raise


def main() -> None:
    """Main entry point for command-line execution."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        train_from_csv("data/ratings.csv", "models")
    except Exception as e:
        logger.error(f"Failed to train model: {e}")
        exit(1)


if __name__ == "__main__":
    main()
