"""Tests for the fold-in item scorer."""

import math
import threading

import numpy as np
import pytest

from src.svdpp.config import RatingDomain
from src.svdpp.history import InMemoryRatingHistory
from src.svdpp.index import Index
from src.svdpp.infer import UNSCORED, SVDppItemScorer, Unscored, score_items
from src.svdpp.model import SVDppModel
from src.svdpp.update import SVDppUpdateRule

BASELINES = {"a": 3.0, "b": 3.5, "c": 4.0, "x": 2.5, "zzz": 2.0}


class FixedBaseline:
    """Baseline returning a fixed value per item and recording its calls."""

    def __init__(self):
        self.calls = []

    def score(self, user_id, item_ids):
        item_ids = list(item_ids)
        self.calls.append((user_id, item_ids))
        return {item_id: BASELINES[item_id] for item_id in item_ids}


@pytest.fixture
def model() -> SVDppModel:
    """Hand-written K=2 model over users u1, u2 and items a, b, c."""
    index = Index(["u1", "u2"], ["a", "b", "c"])
    return SVDppModel(
        np.array([[0.1, 0.2], [0.3, -0.1]]),
        np.array([[0.5, 0.4], [-0.2, 0.3], [0.1, 0.1]]),
        np.array([[0.05, 0.02], [0.01, -0.03], [0.2, 0.1]]),
        index,
    )


@pytest.fixture
def baseline() -> FixedBaseline:
    return FixedBaseline()


def test_fold_in_matches_hand_computation(model, baseline):
    scores = score_items("u1", ["c", "a"], model, baseline, {"a": 4.0, "b": 3.0})

    # implicit = (y_a + y_b) / sqrt(2); profile = p_u1 + implicit
    implicit = [(0.05 + 0.01) / math.sqrt(2), (0.02 - 0.03) / math.sqrt(2)]
    profile = [0.1 + implicit[0], 0.2 + implicit[1]]
    expected_c = 4.0 + 0.1 * profile[0] + 0.1 * profile[1]
    expected_a = 3.0 + 0.5 * profile[0] + 0.4 * profile[1]

    assert abs(scores["c"] - expected_c) < 1e-9
    assert abs(scores["a"] - expected_a) < 1e-9


def test_baselines_requested_for_targets_and_rated_items(model, baseline):
    score_items("u1", ["c"], model, baseline, {"a": 4.0})

    assert baseline.calls == [("u1", ["c", "a"])]


def test_no_history_returns_baselines_exactly(model, baseline):
    scores = score_items("u1", ["a", "b"], model, baseline, {})

    assert scores == {"a": 3.0, "b": 3.5}


@pytest.mark.parametrize(
    "policy, expected",
    [
        ("mark", {"a": 3.0, "x": UNSCORED}),
        ("baseline", {"a": 3.0, "x": 2.5}),
        ("omit", {"a": 3.0}),
    ],
)
def test_no_history_unknown_items_follow_unscored_policy(model, baseline, policy, expected):
    scores = SVDppItemScorer(model, baseline).score("u1", ["a", "x"], ratings={}, unscored=policy)

    assert scores == expected


def test_unknown_item_is_marked_unscored(model, baseline):
    scores = score_items("u1", ["a", "x", "c"], model, baseline, {"b": 4.0})

    assert scores["x"] is UNSCORED
    assert isinstance(scores["a"], float)
    assert isinstance(scores["c"], float)


@pytest.mark.parametrize(
    "policy, expected",
    [
        ("baseline", {"x": 2.5}),
        ("omit", {}),
    ],
)
def test_unscored_policies(model, baseline, policy, expected):
    scorer = SVDppItemScorer(model, baseline)

    scores = scorer.score("u1", ["x"], ratings={"a": 5.0}, unscored=policy)

    assert scores == expected


def test_invalid_unscored_policy(model, baseline):
    with pytest.raises(ValueError, match="unscored"):
        SVDppItemScorer(model, baseline).score("u1", ["a"], ratings={}, unscored="drop")


def test_unknown_rated_items_contribute_zero_but_count(model, baseline):
    scores = score_items("u1", ["c"], model, baseline, {"a": 4.0, "zzz": 1.0})

    # n = 2 even though only item a is known
    profile = [0.1 + 0.05 / math.sqrt(2), 0.2 + 0.02 / math.sqrt(2)]
    expected = 4.0 + 0.1 * profile[0] + 0.1 * profile[1]
    assert abs(scores["c"] - expected) < 1e-9


def test_unknown_user_uses_zero_vector(model, baseline):
    scores = score_items("stranger", ["c"], model, baseline, {"a": 4.0})

    expected = 4.0 + 0.1 * 0.05 + 0.1 * 0.02
    assert abs(scores["c"] - expected) < 1e-9


def test_unknown_user_with_unknown_history_gets_baseline(model, baseline):
    scores = score_items("stranger", ["a", "c"], model, baseline, {"zzz": 4.0})

    assert scores == {"a": 3.0, "c": 4.0}


def test_scorer_reads_history_source(model, baseline):
    history = InMemoryRatingHistory()
    history.add_rating("u1", "a", 4.0)
    history.add_rating("u1", "b", 3.0)
    scorer = SVDppItemScorer(model, baseline, history=history)

    from_history = scorer.score("u1", ["c"])
    explicit = scorer.score("u1", ["c"], ratings={"a": 4.0, "b": 3.0})

    assert from_history == explicit


def test_scoring_does_not_mutate_model(model, baseline):
    before = [m.copy() for m in (model.user_features, model.item_features, model.implicit_features)]

    SVDppItemScorer(model, baseline).score("u1", ["a", "b", "c"], ratings={"a": 1.0})

    for original, current in zip(before, (model.user_features, model.item_features, model.implicit_features)):
        np.testing.assert_array_equal(original, current)


def test_personalization_refreshes_user_before_scoring(model, baseline):
    plain = SVDppItemScorer(model, baseline).score("u1", ["c"], ratings={"a": 5.0, "b": 5.0})
    items_before = model.item_features.copy()

    rule = SVDppUpdateRule(learning_rate=0.1, regularization=0.0, passes=5)
    personalized = SVDppItemScorer(model, baseline, update_rule=rule).score(
        "u1", ["c"], ratings={"a": 5.0, "b": 5.0}
    )

    # both ratings sit above their baselines, so the refreshed profile moves up
    assert personalized["c"] > plain["c"]
    np.testing.assert_array_equal(model.item_features, items_before)


def test_personalization_skipped_for_unknown_user(model, baseline):
    users_before = model.user_features.copy()
    rule = SVDppUpdateRule(passes=2)

    scores = SVDppItemScorer(model, baseline, update_rule=rule).score(
        "stranger", ["c"], ratings={"a": 4.0}
    )

    np.testing.assert_array_equal(model.user_features, users_before)
    assert isinstance(scores["c"], float)


def test_domain_clamps_latent_scores(model, baseline):
    scorer = SVDppItemScorer(model, baseline, domain=RatingDomain(1.0, 3.2))

    scores = scorer.score("u1", ["a", "c"], ratings={"b": 4.0})

    assert scores["c"] == 3.2
    assert scores["a"] <= 3.2


def test_recommend_ranks_unrated_items(model, baseline):
    scorer = SVDppItemScorer(model, baseline)

    ranked = scorer.recommend("u1", top_n=5, ratings={"a": 4.0})

    assert [item_id for item_id, _ in ranked] == ["c", "b"]
    assert ranked[0][1] >= ranked[1][1]


def test_recommend_skips_unscored_candidates(model, baseline):
    scorer = SVDppItemScorer(model, baseline)

    ranked = scorer.recommend("u1", top_n=3, candidates=["x", "b"], ratings={"a": 4.0})

    assert [item_id for item_id, _ in ranked] == ["b"]


def test_recommend_without_history_skips_unknown_candidates(model, baseline):
    scorer = SVDppItemScorer(model, baseline)

    ranked = scorer.recommend("stranger", top_n=5, candidates=["a", "x"], ratings={})

    assert ranked == [("a", 3.0)]


def test_recommend_zero_top_n(model, baseline):
    assert SVDppItemScorer(model, baseline).recommend("u1", top_n=0) == []


def test_unscored_marker_is_singleton():
    assert Unscored() is UNSCORED
    assert repr(UNSCORED) == "UNSCORED"
    assert not UNSCORED


class PausingUpdateRule(SVDppUpdateRule):
    """Update rule that stops inside its first step until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = threading.Event()
        self.resume = threading.Event()

    def train_rating(self, *args, **kwargs):
        self.entered.set()
        self.resume.wait(timeout=5)
        return super().train_rating(*args, **kwargs)


def test_plain_scorer_waits_for_running_personalization(model, baseline):
    rule = PausingUpdateRule(learning_rate=0.1, regularization=0.0)
    ratings = {"a": 5.0, "b": 5.0}
    scorer = SVDppItemScorer(model, baseline)
    seen = {}

    writer = threading.Thread(
        target=rule.personalize, args=(model, 0, [0, 1], [5.0, 5.0], [3.0, 3.5])
    )
    reader = threading.Thread(
        target=lambda: seen.update(scorer.score("u1", ["c"], ratings=ratings))
    )

    writer.start()
    assert rule.entered.wait(timeout=5)
    reader.start()
    reader.join(timeout=0.2)
    blocked = reader.is_alive()

    rule.resume.set()
    writer.join(timeout=5)
    reader.join(timeout=5)

    assert blocked
    # the read happened after every row of the update was written
    assert seen == scorer.score("u1", ["c"], ratings=ratings)
