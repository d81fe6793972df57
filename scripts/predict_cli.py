"""CLI script for scoring items and getting recommendations.

Useful for testing and evaluation. Loads a trained model, folds in the
user's ratings from a CSV file and prints predicted ratings.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.svdpp.config import RatingDomain
from src.svdpp.history import InMemoryRatingHistory
from src.svdpp.infer import UNSCORED, SVDppItemScorer
from src.svdpp.update import SVDppUpdateRule
from src.svdpp.utils import load_model_artifacts

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def build_scorer(
    model_dir: str = "models",
    ratings_csv: Optional[str] = None,
    personalize_passes: int = 0,
    domain: Optional[RatingDomain] = None,
) -> SVDppItemScorer:
    """Load a model and wrap it in a scorer.

    Args:
        model_dir: Directory with model files
        ratings_csv: Ratings CSV used as rating history, or None
        personalize_passes: Runtime update passes per request (0 disables)
        domain: Optional rating range to clamp scores to

    Raises:
        FileNotFoundError: If the model or its baseline is missing.
    """
    model, baseline = load_model_artifacts(model_dir)
    if baseline is None:
        raise FileNotFoundError(f"No baseline saved in {model_dir}")

    history = InMemoryRatingHistory.from_csv(ratings_csv) if ratings_csv else None
    update_rule = SVDppUpdateRule(passes=personalize_passes) if personalize_passes > 0 else None
    return SVDppItemScorer(model, baseline, history=history, update_rule=update_rule, domain=domain)


def format_scores(scores) -> List[str]:
    lines = []
    for item_id, value in scores.items():
        if value is UNSCORED:
            lines.append(f"  {item_id}: unscored (unknown to model)")
        else:
            lines.append(f"  {item_id}: {value:.4f}")
    return lines


def main(argv=None) -> int:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Predict ratings or recommend items for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/predict_cli.py 42 --ratings data/ratings.csv
  python scripts/predict_cli.py 42 --ratings data/ratings.csv --items 3 7 11
  python scripts/predict_cli.py 42 --ratings data/ratings.csv --top-n 5 --clamp 1 5
        """
    )

    parser.add_argument("user_id", type=int, help="User ID to score for")
    parser.add_argument(
        "--items",
        type=int,
        nargs="+",
        help="Item IDs to score; without this the top-N items are recommended",
    )
    parser.add_argument(
        "--top-n",
        type=int,
        default=10,
        help="Number of recommendations to return (default: 10)"
    )
    parser.add_argument(
        "--model-dir",
        type=str,
        default="models",
        help="Directory containing model files (default: models)"
    )
    parser.add_argument(
        "--ratings",
        type=str,
        default=None,
        help="Ratings CSV providing the user's rating history"
    )
    parser.add_argument(
        "--personalize",
        type=int,
        default=0,
        metavar="PASSES",
        help="Refresh the user's vectors with this many SGD passes before scoring"
    )
    parser.add_argument(
        "--clamp",
        type=float,
        nargs=2,
        metavar=("MIN", "MAX"),
        help="Clamp predicted ratings to this range"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        domain = RatingDomain(*args.clamp) if args.clamp else None
        scorer = build_scorer(args.model_dir, args.ratings, args.personalize, domain)

        if args.items:
            scores = scorer.score(args.user_id, args.items)
            print(f"\nPredicted ratings for user {args.user_id}:")
            print("\n".join(format_scores(scores)))
        else:
            ranked = scorer.recommend(args.user_id, top_n=args.top_n)
            print(f"\nRecommendations for user {args.user_id}:")
            for item_id, score in ranked:
                print(f"  {item_id}: {score:.4f}")
        print()
        return 0

    except FileNotFoundError as e:
        print(f"Error: Model not found in {args.model_dir}", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
