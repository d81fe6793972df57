"""Model artifact persistence.

This module saves and loads trained SVD++ models, their id mappings and
the fitted baseline as joblib files.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import joblib
import numpy as np

from src.svdpp.exceptions import InvalidModelState
from src.svdpp.index import Index
from src.svdpp.model import SVDppModel

# Configure module logger
logger = logging.getLogger(__name__)

# Model artifact filenames
MODEL_FILENAME = "svdpp_model.joblib"
USER_MAPPING_FILENAME = "user_id_mapping.joblib"
ITEM_MAPPING_FILENAME = "item_id_mapping.joblib"
BASELINE_FILENAME = "baseline.joblib"


def model_to_payload(model: SVDppModel) -> Dict[str, Any]:
    """Serializable form of a model.

    The header comes first, then the three matrices in row-major order
    (users, items, implicit), then the ids in index order.
    """
    return {
        "header": {
            "feature_count": model.feature_count,
            "n_users": model.n_users,
            "n_items": model.n_items,
        },
        "user_features": np.ascontiguousarray(model.user_features),
        "item_features": np.ascontiguousarray(model.item_features),
        "implicit_features": np.ascontiguousarray(model.implicit_features),
        "user_ids": list(model.index.user_ids),
        "item_ids": list(model.index.item_ids),
    }


def model_from_payload(payload: Dict[str, Any]) -> SVDppModel:
    """Rebuild a model from ``model_to_payload`` output.

    Raises:
        InvalidModelState: If the header disagrees with the stored data.
    """
    try:
        header = payload["header"]
        index = Index(payload["user_ids"], payload["item_ids"])
        model = SVDppModel(
            payload["user_features"],
            payload["item_features"],
            payload["implicit_features"],
            index,
        )
    except KeyError as e:
        raise InvalidModelState(f"model artifact is missing field {e}") from e

    expected = (header["feature_count"], header["n_users"], header["n_items"])
    actual = (model.feature_count, model.n_users, model.n_items)
    if expected != actual:
        raise InvalidModelState(
            "model header does not match stored matrices",
            {"header": header, "actual": actual},
        )
    return model


def save_model_artifacts(
    model: SVDppModel,
    output_dir: str,
    baseline: Optional[Any] = None,
    model_filename: str = MODEL_FILENAME,
    user_mapping_filename: str = USER_MAPPING_FILENAME,
    item_mapping_filename: str = ITEM_MAPPING_FILENAME,
    baseline_filename: str = BASELINE_FILENAME,
) -> None:
    """Save a trained model, its id mappings and optionally its baseline.

    Creates the directory if it doesn't exist.

    Args:
        model: Trained SVDppModel to save.
        output_dir: Directory path where artifacts will be saved.
        baseline: Fitted baseline provider used to train the model.
        model_filename: Filename for the model (default: "svdpp_model.joblib").
        user_mapping_filename: Filename for the user id mapping.
        item_mapping_filename: Filename for the item id mapping.
        baseline_filename: Filename for the baseline (default: "baseline.joblib").

    Raises:
        OSError: If unable to create output directory or save files.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving model artifacts to {output_dir}")

    model_path = output_path / model_filename
    joblib.dump(model_to_payload(model), model_path)
    logger.info(f"Saved model to {model_path}")

    user_mapping_path = output_path / user_mapping_filename
    joblib.dump(dict(model.index.user_id_to_idx), user_mapping_path)
    logger.info(f"Saved user mapping to {user_mapping_path}")

    item_mapping_path = output_path / item_mapping_filename
    joblib.dump(dict(model.index.item_id_to_idx), item_mapping_path)
    logger.info(f"Saved item mapping to {item_mapping_path}")

    if baseline is not None:
        baseline_path = output_path / baseline_filename
        joblib.dump(baseline, baseline_path)
        logger.info(f"Saved baseline to {baseline_path}")


def load_model_artifacts(
    model_dir: str,
    model_filename: str = MODEL_FILENAME,
    user_mapping_filename: str = USER_MAPPING_FILENAME,
    item_mapping_filename: str = ITEM_MAPPING_FILENAME,
    baseline_filename: str = BASELINE_FILENAME,
) -> Tuple[SVDppModel, Optional[Any]]:
    """Load a trained model and its baseline from disk.

    Args:
        model_dir: Directory path where artifacts are stored.
        model_filename: Filename for the model (default: "svdpp_model.joblib").
        user_mapping_filename: Filename for the user id mapping.
        item_mapping_filename: Filename for the item id mapping.
        baseline_filename: Filename for the baseline.

    Returns:
        A tuple containing:
            - Loaded SVDppModel
            - Loaded baseline provider, or None if none was saved

    Raises:
        FileNotFoundError: If any required artifact file is missing.
        InvalidModelState: If the stored matrices, header and id mappings
            disagree.

    Example:
        >>> model, baseline = load_model_artifacts("models")
        >>> print(f"Model has {model.feature_count} features")
    """
    model_path = Path(model_dir)

    if not model_path.exists():
        raise FileNotFoundError(f"Model directory does not exist: {model_dir}")

    logger.info(f"Loading model artifacts from {model_dir}")

    model_file = model_path / model_filename
    if not model_file.exists():
        raise FileNotFoundError(f"Model file not found: {model_file}")
    model = model_from_payload(joblib.load(model_file))
    logger.info(f"Loaded model from {model_file}")
    logger.info(f"Model features: {model.feature_count}")

    user_mapping_file = model_path / user_mapping_filename
    if not user_mapping_file.exists():
        raise FileNotFoundError(f"User mapping file not found: {user_mapping_file}")
    user_id_to_idx = joblib.load(user_mapping_file)

    item_mapping_file = model_path / item_mapping_filename
    if not item_mapping_file.exists():
        raise FileNotFoundError(f"Item mapping file not found: {item_mapping_file}")
    item_id_to_idx = joblib.load(item_mapping_file)

    if (
        user_id_to_idx != model.index.user_id_to_idx
        or item_id_to_idx != model.index.item_id_to_idx
    ):
        raise InvalidModelState("id mappings do not match the model index")
    logger.info(f"Number of users: {model.n_users}")
    logger.info(f"Number of items: {model.n_items}")

    baseline = None
    baseline_file = model_path / baseline_filename
    if baseline_file.exists():
        baseline = joblib.load(baseline_file)
        logger.info(f"Loaded baseline from {baseline_file}")
    else:
        logger.warning(f"No baseline found at {baseline_file}")

    return model, baseline


def get_model_paths(
    model_dir: str,
    model_filename: str = MODEL_FILENAME,
    user_mapping_filename: str = USER_MAPPING_FILENAME,
    item_mapping_filename: str = ITEM_MAPPING_FILENAME,
) -> Tuple[Path, Path, Path]:
    """Get file paths for the required model artifacts without loading them."""
    model_path = Path(model_dir)
    return (
        model_path / model_filename,
        model_path / user_mapping_filename,
        model_path / item_mapping_filename,
    )


def check_model_exists(model_dir: str) -> bool:
    """Check if all required model artifacts exist.

    Args:
        model_dir: Directory path where artifacts should be stored.

    Returns:
        True if all model files exist, False otherwise.
    """
    return all(path.exists() for path in get_model_paths(model_dir))
