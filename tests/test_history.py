"""Tests for the in-memory rating history."""

import threading
from pathlib import Path

import pytest

from src.svdpp.history import InMemoryRatingHistory


def test_from_dataframe_groups_by_user(small_ratings):
    history = InMemoryRatingHistory.from_dataframe(small_ratings)

    assert history.ratings_of(1) == {10: 5.0, 11: 4.0, 13: 1.0}
    assert len(history) == 15


def test_unknown_user_has_empty_history(small_ratings):
    history = InMemoryRatingHistory.from_dataframe(small_ratings)

    assert history.ratings_of(404) == {}


def test_later_rating_replaces_earlier():
    history = InMemoryRatingHistory()
    history.add_rating("u", "i", 2.0)
    history.add_rating("u", "i", 4.0)

    assert history.ratings_of("u") == {"i": 4.0}


def test_returned_ratings_are_a_copy():
    history = InMemoryRatingHistory()
    history.add_rating("u", "i", 2.0)

    history.ratings_of("u")["j"] = 1.0

    assert history.ratings_of("u") == {"i": 2.0}


def test_concurrent_adds():
    history = InMemoryRatingHistory()

    def add(user):
        for item in range(100):
            history.add_rating(user, item, 3.0)

    threads = [threading.Thread(target=add, args=(user,)) for user in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(history) == 800


def test_from_csv(tmp_path: Path):
    csv_path = tmp_path / "ratings.csv"
    csv_path.write_text("user_id,item_id,rating\n1,2,3.5\n")

    history = InMemoryRatingHistory.from_csv(str(csv_path))

    assert history.ratings_of(1) == {2: 3.5}


def test_from_csv_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        InMemoryRatingHistory.from_csv(str(tmp_path / "missing.csv"))
