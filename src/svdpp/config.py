"""Training configuration for the SVD++ trainer.

Holds the hyperparameters and the convergence policy, with defaults used by
both the library and the command-line scripts.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from src.svdpp.exceptions import InvalidConfiguration

# Model configuration constants
DEFAULT_FEATURE_COUNT = 25
DEFAULT_LEARNING_RATE = 0.007
DEFAULT_REGULARIZATION = 0.015
DEFAULT_INIT_MIN = 1e-4
DEFAULT_INIT_MAX = 0.1
DEFAULT_RANDOM_STATE = 42

# Convergence constants
DEFAULT_MAX_EPOCHS = 40
DEFAULT_THRESHOLD = 0.0
DEFAULT_DIVERGENCE_RATIO = 1.5


@dataclass(frozen=True)
class ConvergencePolicy:
    """Decides after each epoch whether training should continue.

    Attributes:
        max_epochs: Hard upper bound on the number of epochs.
        min_epochs: Epochs to run before the threshold test applies.
        threshold: Stop once the RMSE improvement between two epochs falls
            below this value. 0 disables the test.
        divergence_ratio: An epoch RMSE above ``divergence_ratio`` times the
            previous epoch's RMSE counts as divergence.
    """

    max_epochs: int = DEFAULT_MAX_EPOCHS
    min_epochs: int = 0
    threshold: float = DEFAULT_THRESHOLD
    divergence_ratio: float = DEFAULT_DIVERGENCE_RATIO

    def validate(self) -> None:
        if not isinstance(self.max_epochs, int) or self.max_epochs <= 0:
            raise InvalidConfiguration("max_epochs", self.max_epochs, "must be a positive integer")
        if self.min_epochs < 0 or self.min_epochs > self.max_epochs:
            raise InvalidConfiguration(
                "min_epochs", self.min_epochs, "must be between 0 and max_epochs"
            )
        if not math.isfinite(self.threshold) or self.threshold < 0:
            raise InvalidConfiguration("threshold", self.threshold, "must be >= 0")
        if not self.divergence_ratio > 1.0:
            raise InvalidConfiguration(
                "divergence_ratio", self.divergence_ratio, "must be greater than 1"
            )

    def is_diverged(self, rmse: float, previous: Optional[float]) -> bool:
        if not math.isfinite(rmse):
            return True
        return previous is not None and rmse > previous * self.divergence_ratio

    def should_stop(self, epoch: int, rmse: float, previous: Optional[float]) -> Optional[str]:
        """Return the stop reason after ``epoch`` (1-based), or None to continue."""
        if epoch >= self.max_epochs:
            return "max_epochs"
        if (
            self.threshold > 0
            and previous is not None
            and epoch >= self.min_epochs
            and previous - rmse < self.threshold
        ):
            return "converged"
        return None


@dataclass(frozen=True)
class TrainingConfig:
    """Hyperparameters for SVD++ training.

    Attributes:
        feature_count: Number of latent features K.
        learning_rate: SGD step size (eta).
        regularization: L2 regularization term (lambda).
        init_min: Lower bound of the uniform initial feature values.
        init_max: Upper bound of the uniform initial feature values.
        zero_implicit_init: Start the implicit feedback matrix at zero
            instead of drawing it from the initial range.
        shuffle: Visit ratings in a fresh seeded order every epoch.
        random_state: Seed for initialization and shuffling.
        convergence: Epoch stopping policy.
    """

    feature_count: int = DEFAULT_FEATURE_COUNT
    learning_rate: float = DEFAULT_LEARNING_RATE
    regularization: float = DEFAULT_REGULARIZATION
    init_min: float = DEFAULT_INIT_MIN
    init_max: float = DEFAULT_INIT_MAX
    zero_implicit_init: bool = False
    shuffle: bool = True
    random_state: int = DEFAULT_RANDOM_STATE
    convergence: ConvergencePolicy = field(default_factory=ConvergencePolicy)

    def validate(self) -> None:
        """Check every parameter.

        Raises:
            InvalidConfiguration: On the first parameter that is out of range.
        """
        if not isinstance(self.feature_count, int) or self.feature_count <= 0:
            raise InvalidConfiguration(
                "feature_count", self.feature_count, "must be a positive integer"
            )
        if not math.isfinite(self.learning_rate) or self.learning_rate <= 0:
            raise InvalidConfiguration("learning_rate", self.learning_rate, "must be > 0")
        if not math.isfinite(self.regularization) or self.regularization < 0:
            raise InvalidConfiguration("regularization", self.regularization, "must be >= 0")
        if not (math.isfinite(self.init_min) and math.isfinite(self.init_max)):
            raise InvalidConfiguration(
                "init_range", (self.init_min, self.init_max), "bounds must be finite"
            )
        if self.init_min < 0 or self.init_min > self.init_max:
            raise InvalidConfiguration(
                "init_range",
                (self.init_min, self.init_max),
                "expected 0 <= init_min <= init_max",
            )
        self.convergence.validate()


@dataclass(frozen=True)
class RatingDomain:
    """Valid rating range, used to clamp predicted scores."""

    min_rating: float
    max_rating: float

    def __post_init__(self) -> None:
        if self.min_rating > self.max_rating:
            raise InvalidConfiguration(
                "rating_domain",
                (self.min_rating, self.max_rating),
                "min_rating must not exceed max_rating",
            )

    def clamp(self, value: float) -> float:
        return min(max(value, self.min_rating), self.max_rating)
