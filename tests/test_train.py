"""Tests for the SVD++ training module.

This module contains unit tests for the SGD trainer, its convergence
policy and the end-to-end CSV training pipeline.
"""

import math
import threading
from pathlib import Path

import numpy as np
import pytest

from src.svdpp.config import ConvergencePolicy, TrainingConfig
from src.svdpp.exceptions import DivergenceError, InvalidConfiguration
from src.svdpp.model import SVDppModel
from src.svdpp.train import SVDppTrainer, train_from_csv, train_svdpp_model
from src.svdpp.utils import (
    BASELINE_FILENAME,
    ITEM_MAPPING_FILENAME,
    MODEL_FILENAME,
    USER_MAPPING_FILENAME,
    check_model_exists,
    load_model_artifacts,
)


def make_config(**overrides) -> TrainingConfig:
    params = dict(
        feature_count=3,
        learning_rate=0.05,
        regularization=0.02,
        random_state=7,
        convergence=ConvergencePolicy(max_epochs=20),
    )
    params.update(overrides)
    return TrainingConfig(**params)


class StopAfterEpochs(threading.Event):
    """Event that reports set once ``epochs`` epochs have started."""

    def __init__(self, epochs: int):
        super().__init__()
        self.remaining = epochs

    def is_set(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def test_train_returns_model_with_snapshot_dimensions(small_snapshot, global_baseline):
    model = train_svdpp_model(small_snapshot, global_baseline, make_config())

    assert isinstance(model, SVDppModel)
    assert model.feature_count == 3
    assert model.user_features.shape == (5, 3)
    assert model.item_features.shape == (5, 3)
    assert model.implicit_features.shape == (5, 3)
    assert model.index == small_snapshot.index
    assert np.all(np.isfinite(model.user_features))


def test_training_rmse_decreases(small_snapshot, global_baseline):
    """RMSE after epoch 20 is lower than after epoch 1."""
    trainer = SVDppTrainer(global_baseline, make_config())
    trainer.train(small_snapshot)

    assert len(trainer.rmse_history) == 20
    assert trainer.rmse_history[19] < trainer.rmse_history[0]
    assert trainer.stop_reason == "max_epochs"


def test_training_is_deterministic(small_snapshot, global_baseline):
    """Same seed, config and input order give bit-identical models."""
    model1 = train_svdpp_model(small_snapshot, global_baseline, make_config())
    model2 = train_svdpp_model(small_snapshot, global_baseline, make_config())

    assert model1.user_features.tobytes() == model2.user_features.tobytes()
    assert model1.item_features.tobytes() == model2.item_features.tobytes()
    assert model1.implicit_features.tobytes() == model2.implicit_features.tobytes()


def test_different_seeds_give_different_models(small_snapshot, global_baseline):
    model1 = train_svdpp_model(small_snapshot, global_baseline, make_config(random_state=1))
    model2 = train_svdpp_model(small_snapshot, global_baseline, make_config(random_state=2))

    assert not np.array_equal(model1.user_features, model2.user_features)


def test_unshuffled_training_is_deterministic(small_snapshot, global_baseline):
    config = make_config(shuffle=False)

    model1 = train_svdpp_model(small_snapshot, global_baseline, config)
    model2 = train_svdpp_model(small_snapshot, global_baseline, config)

    np.testing.assert_array_equal(model1.item_features, model2.item_features)


def test_large_learning_rate_diverges(small_snapshot, global_baseline):
    trainer = SVDppTrainer(global_baseline, make_config(learning_rate=100.0))

    with pytest.raises(DivergenceError) as exc_info:
        trainer.train(small_snapshot)

    error = exc_info.value
    assert 1 <= error.epoch <= 20
    assert len(error.rmse_history) == error.epoch
    assert not math.isfinite(error.rmse) or error.rmse > error.rmse_history[-2]
    assert trainer.stop_reason == "diverged"


def test_threshold_stops_training_early(small_snapshot, global_baseline):
    config = make_config(convergence=ConvergencePolicy(max_epochs=20, threshold=10.0))
    trainer = SVDppTrainer(global_baseline, config)

    trainer.train(small_snapshot)

    assert len(trainer.rmse_history) == 2
    assert trainer.stop_reason == "converged"


def test_min_epochs_delays_convergence(small_snapshot, global_baseline):
    policy = ConvergencePolicy(max_epochs=20, min_epochs=5, threshold=10.0)
    trainer = SVDppTrainer(global_baseline, make_config(convergence=policy))

    trainer.train(small_snapshot)

    assert len(trainer.rmse_history) == 5


def test_cancellation_keeps_last_completed_epoch(small_snapshot, global_baseline):
    """Stopping before epoch 4 yields the model a 3-epoch run produces."""
    trainer = SVDppTrainer(global_baseline, make_config())
    cancelled = trainer.train(small_snapshot, stop_event=StopAfterEpochs(3))

    three_epochs = train_svdpp_model(
        small_snapshot,
        global_baseline,
        make_config(convergence=ConvergencePolicy(max_epochs=3)),
    )

    assert trainer.stop_reason == "cancelled"
    assert len(trainer.rmse_history) == 3
    np.testing.assert_array_equal(cancelled.user_features, three_epochs.user_features)
    np.testing.assert_array_equal(cancelled.implicit_features, three_epochs.implicit_features)


def test_zero_implicit_initialization(small_snapshot, global_baseline):
    config = make_config(zero_implicit_init=True, convergence=ConvergencePolicy(max_epochs=1))
    trainer = SVDppTrainer(global_baseline, config)

    model = trainer.train(small_snapshot, stop_event=StopAfterEpochs(0))

    assert np.all(model.implicit_features == 0.0)
    assert np.all((model.user_features >= 1e-4) & (model.user_features <= 0.1))


@pytest.mark.parametrize(
    "overrides",
    [
        {"feature_count": 0},
        {"learning_rate": 0.0},
        {"learning_rate": -0.01},
        {"regularization": -1.0},
        {"init_min": 0.5, "init_max": 0.1},
        {"init_min": -0.1},
        {"init_max": float("inf")},
        {"convergence": ConvergencePolicy(max_epochs=0)},
        {"convergence": ConvergencePolicy(divergence_ratio=1.0)},
    ],
)
def test_invalid_configuration_rejected_before_training(overrides, global_baseline):
    with pytest.raises(InvalidConfiguration):
        SVDppTrainer(global_baseline, make_config(**overrides))


def test_empty_snapshot_rejected(small_snapshot, global_baseline):
    empty = small_snapshot.__class__(
        index=small_snapshot.index,
        user_indices=small_snapshot.user_indices[:0],
        item_indices=small_snapshot.item_indices[:0],
        values=small_snapshot.values[:0],
        user_ratings=small_snapshot.user_ratings,
    )

    with pytest.raises(ValueError, match="empty"):
        train_svdpp_model(empty, global_baseline, make_config())


def test_train_from_csv_creates_artifacts(synthetic_ratings_csv: Path, tmp_path: Path):
    output_dir = tmp_path / "model"

    result = train_from_csv(
        str(synthetic_ratings_csv),
        output_dir=str(output_dir),
        config=make_config(feature_count=4, learning_rate=0.01),
    )

    assert result.stop_reason == "max_epochs"
    assert len(result.rmse_history) == 20
    for filename in (MODEL_FILENAME, USER_MAPPING_FILENAME, ITEM_MAPPING_FILENAME, BASELINE_FILENAME):
        assert (output_dir / filename).exists(), f"Missing artifact: {filename}"
    assert check_model_exists(str(output_dir))

    loaded_model, loaded_baseline = load_model_artifacts(str(output_dir))
    np.testing.assert_array_equal(loaded_model.item_features, result.model.item_features)
    assert loaded_baseline.score(1, [1]) == result.baseline.score(1, [1])


def test_train_from_csv_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        train_from_csv(str(tmp_path / "nonexistent.csv"), output_dir=str(tmp_path))


def test_train_from_csv_without_output_dir(synthetic_ratings_csv: Path, tmp_path: Path):
    result = train_from_csv(
        str(synthetic_ratings_csv),
        output_dir=None,
        config=make_config(convergence=ConvergencePolicy(max_epochs=2)),
        baseline_kind="global",
    )

    assert result.model.n_users == 20
    assert list(tmp_path.iterdir()) == [synthetic_ratings_csv]
