"""Tests for training configuration and the convergence policy."""

import math

import pytest

from src.svdpp.config import ConvergencePolicy, RatingDomain, TrainingConfig
from src.svdpp.exceptions import InvalidConfiguration


def test_default_config_is_valid():
    TrainingConfig().validate()


def test_invalid_configuration_details():
    with pytest.raises(InvalidConfiguration) as exc_info:
        TrainingConfig(feature_count=-2).validate()

    assert exc_info.value.parameter == "feature_count"
    assert exc_info.value.details["value"] == -2
    assert isinstance(exc_info.value, ValueError)


def test_policy_stops_at_max_epochs():
    policy = ConvergencePolicy(max_epochs=3)

    assert policy.should_stop(2, 0.5, 0.6) is None
    assert policy.should_stop(3, 0.5, 0.6) == "max_epochs"


def test_policy_threshold():
    policy = ConvergencePolicy(max_epochs=100, threshold=0.01)

    assert policy.should_stop(1, 1.0, None) is None
    assert policy.should_stop(2, 0.95, 1.0) is None
    assert policy.should_stop(3, 0.945, 0.95) == "converged"


def test_policy_divergence():
    policy = ConvergencePolicy(divergence_ratio=1.5)

    assert policy.is_diverged(math.nan, None)
    assert policy.is_diverged(math.inf, 1.0)
    assert policy.is_diverged(1.6, 1.0)
    assert not policy.is_diverged(1.4, 1.0)
    assert not policy.is_diverged(100.0, None)


def test_policy_min_epochs_bounds():
    with pytest.raises(InvalidConfiguration):
        ConvergencePolicy(max_epochs=5, min_epochs=6).validate()


def test_rating_domain_clamp():
    domain = RatingDomain(1.0, 5.0)

    assert domain.clamp(0.2) == 1.0
    assert domain.clamp(3.3) == 3.3
    assert domain.clamp(7.0) == 5.0


def test_rating_domain_rejects_inverted_range():
    with pytest.raises(InvalidConfiguration):
        RatingDomain(5.0, 1.0)
