"""Scoring endpoints for the SVD++ API.

This module provides API endpoints that predict ratings for a user against
a set of items, and rank items for a user, from a trained SVD++ model.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from src import __version__
from src.api.exceptions import ModelLoadError, ModelNotFoundError, ScoringError
from src.api.metrics import metrics_service
from src.svdpp.history import InMemoryRatingHistory
from src.svdpp.infer import UNSCORED, SVDppItemScorer
from src.svdpp.utils import check_model_exists, load_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(tags=["scoring"])

# Default artifact locations
DEFAULT_MODEL_DIR = "models"
DEFAULT_RATINGS_CSV = "data/ratings.csv"

# Loaded scorers keyed by (model_dir, ratings_csv)
_model_cache: Dict[tuple, Dict[str, Any]] = {}
_cache_lock = threading.Lock()


class ScoreResponse(BaseModel):
    """Response model for scoring requests.

    Attributes:
        user_id: The user the items were scored for.
        scores: Predicted rating per scored item.
        unscored: Items unknown to the model.
        model_version: Version of the service that produced the scores.
    """

    user_id: int = Field(..., description="User ID the items were scored for")
    scores: Dict[int, float] = Field(..., description="Predicted rating per item")
    unscored: List[int] = Field(default_factory=list, description="Items the model cannot score")
    model_version: str = Field(default=__version__, description="Model version")


class RecommendationResponse(BaseModel):
    """Response model for recommendation requests."""

    user_id: int = Field(..., description="User ID for recommendations")
    recommendations: List[int] = Field(..., description="Recommended item IDs, best first")
    scores: List[float] = Field(..., description="Predicted rating of each recommendation")
    model_version: str = Field(default=__version__, description="Model version")


def load_model_if_needed(
    model_dir: str = DEFAULT_MODEL_DIR,
    ratings_csv: str = DEFAULT_RATINGS_CSV,
) -> Dict[str, Any]:
    """Load a scorer for the given artifacts, reusing a cached one.

    Args:
        model_dir: Directory containing model artifacts.
        ratings_csv: Ratings CSV used as the users' rating history. A
            missing file means every user is scored without history.

    Returns:
        Dictionary containing the scorer, the model and the load time.

    Raises:
        ModelNotFoundError: If model files are not found.
        ModelLoadError: If the artifacts cannot be loaded.
    """
    key = (model_dir, ratings_csv)
    with _cache_lock:
        if key in _model_cache:
            logger.debug("Using cached model")
            return _model_cache[key]

        if not check_model_exists(model_dir):
            logger.error(f"Model not found in {model_dir}")
            raise ModelNotFoundError(model_dir)

        try:
            logger.info(f"Loading model from {model_dir}")
            model, baseline = load_model_artifacts(model_dir)
            if baseline is None:
                raise FileNotFoundError(f"No baseline saved in {model_dir}")

            if Path(ratings_csv).exists():
                history = InMemoryRatingHistory.from_csv(ratings_csv)
            else:
                logger.warning(f"Ratings file {ratings_csv} not found, scoring without history")
                history = InMemoryRatingHistory()

            entry = {
                "model": model,
                "scorer": SVDppItemScorer(model, baseline, history=history),
                "loaded_at": datetime.now(timezone.utc).isoformat(),
            }
        except Exception as e:
            logger.error(f"Failed to load model: {e}", exc_info=True)
            raise ModelLoadError(model_dir, e) from e

        _model_cache[key] = entry
        logger.info("Model loaded successfully")
        return entry


def get_cache_status() -> Dict[str, Any]:
    """Summary of the most recently loaded model, for the status endpoint."""
    with _cache_lock:
        if not _model_cache:
            return {
                "model_loaded": False,
                "timestamp_last_loaded": None,
                "num_users": 0,
                "num_items": 0,
                "feature_count": 0,
            }
        entry = max(_model_cache.values(), key=lambda e: e["loaded_at"])
        model = entry["model"]
        return {
            "model_loaded": True,
            "timestamp_last_loaded": entry["loaded_at"],
            "num_users": model.n_users,
            "num_items": model.n_items,
            "feature_count": model.feature_count,
        }


def clear_model_cache() -> None:
    with _cache_lock:
        _model_cache.clear()


@router.get("/score/{user_id}", response_model=ScoreResponse)
def score_items_for_user(
    user_id: int,
    items: List[int] = Query(..., description="Item IDs to score"),
    model_dir: str = DEFAULT_MODEL_DIR,
    ratings_csv: str = DEFAULT_RATINGS_CSV,
) -> ScoreResponse:
    """Predict the user's rating for each requested item.

    Example:
        GET /score/42?items=3&items=7
        Returns predicted ratings of items 3 and 7 for user 42.
    """
    logger.info(f"Scoring {len(items)} items for user {user_id}")
    entry = load_model_if_needed(model_dir, ratings_csv)

    start_time = time.time()
    try:
        results = entry["scorer"].score(user_id, items)
    except Exception as e:
        logger.error(f"Error scoring items for user {user_id}: {e}", exc_info=True)
        raise ScoringError(user_id, e) from e

    scores = {item_id: value for item_id, value in results.items() if value is not UNSCORED}
    unscored = [item_id for item_id, value in results.items() if value is UNSCORED]
    metrics_service.record_scoring(
        (time.time() - start_time) * 1000, n_scored=len(scores), n_unscored=len(unscored)
    )

    return ScoreResponse(user_id=user_id, scores=scores, unscored=unscored)


@router.get("/recommend/{user_id}", response_model=RecommendationResponse)
def recommend_items_for_user(
    user_id: int,
    top_n: int = Query(10, ge=0, description="Number of recommendations"),
    model_dir: str = DEFAULT_MODEL_DIR,
    ratings_csv: str = DEFAULT_RATINGS_CSV,
) -> RecommendationResponse:
    """Recommend the items with the highest predicted rating.

    Items the user has already rated are excluded.

    Example:
        GET /recommend/42?top_n=5
    """
    logger.info(f"Generating recommendations for user {user_id}, top_n={top_n}")
    entry = load_model_if_needed(model_dir, ratings_csv)

    try:
        ranked = entry["scorer"].recommend(user_id, top_n=top_n)
    except Exception as e:
        logger.error(f"Error generating recommendations for user {user_id}: {e}", exc_info=True)
        raise ScoringError(user_id, e) from e

    return RecommendationResponse(
        user_id=user_id,
        recommendations=[item_id for item_id, _ in ranked],
        scores=[score for _, score in ranked],
    )


@router.post("/reload-model")
def reload_model(
    model_dir: str = DEFAULT_MODEL_DIR,
    ratings_csv: Optional[str] = None,
) -> Dict[str, str]:
    """Drop cached models and load the given artifacts again.

    Useful when a new model has been trained and needs to be served
    without restarting the server.
    """
    logger.info("Reloading model...")
    clear_model_cache()
    load_model_if_needed(model_dir, ratings_csv or DEFAULT_RATINGS_CSV)
    return {"status": "Model reloaded successfully"}
