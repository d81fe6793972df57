"""Command-line interface for training the SVD++ model.

This script trains an SVD++ rating prediction model from ratings stored in
CSV format and saves the model artifacts for the scoring service.

Example:
    Train a model with default settings:
        $ python scripts/train_model.py data/ratings.csv

    Train with custom parameters:
        $ python scripts/train_model.py data/ratings.csv \\
            --output-dir models/production \\
            --features 40 \\
            --epochs 60 \\
            --threshold 1e-4
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.svdpp.baseline import BASELINES, DEFAULT_DAMPING, create_baseline
from src.svdpp.config import (
    DEFAULT_FEATURE_COUNT,
    DEFAULT_INIT_MAX,
    DEFAULT_INIT_MIN,
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_EPOCHS,
    DEFAULT_RANDOM_STATE,
    DEFAULT_REGULARIZATION,
    DEFAULT_THRESHOLD,
    ConvergencePolicy,
    TrainingConfig,
)
from src.svdpp.evaluate import evaluate_model, split_ratings
from src.svdpp.exceptions import DivergenceError
from src.svdpp.history import InMemoryRatingHistory
from src.svdpp.index import build_snapshot, load_ratings_csv
from src.svdpp.infer import SVDppItemScorer
from src.svdpp.train import DEFAULT_BASELINE, SVDppTrainer, train_from_csv


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Train an SVD++ rating prediction model from CSV data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train with default settings
  python scripts/train_model.py data/ratings.csv

  # Train with custom output directory and feature count
  python scripts/train_model.py data/ratings.csv --output-dir models/prod --features 40

  # Report hold-out error instead of training on everything
  python scripts/train_model.py data/ratings.csv --evaluate 0.2
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        help="Path to CSV file containing ratings with columns: user_id, item_id, rating",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="models",
        help="Directory where model artifacts will be saved (default: models)",
    )
    parser.add_argument(
        "--features",
        type=int,
        default=DEFAULT_FEATURE_COUNT,
        help=f"Number of latent features (default: {DEFAULT_FEATURE_COUNT})",
    )
    parser.add_argument(
        "--learning-rate",
        type=float,
        default=DEFAULT_LEARNING_RATE,
        help=f"SGD learning rate (default: {DEFAULT_LEARNING_RATE})",
    )
    parser.add_argument(
        "--regularization",
        type=float,
        default=DEFAULT_REGULARIZATION,
        help=f"Regularization term (default: {DEFAULT_REGULARIZATION})",
    )
    parser.add_argument(
        "--epochs",
        type=int,
        default=DEFAULT_MAX_EPOCHS,
        help=f"Maximum number of epochs (default: {DEFAULT_MAX_EPOCHS})",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help="Stop when the epoch RMSE improves by less than this (default: 0, disabled)",
    )
    parser.add_argument("--init-min", type=float, default=DEFAULT_INIT_MIN)
    parser.add_argument("--init-max", type=float, default=DEFAULT_INIT_MAX)
    parser.add_argument(
        "--zero-implicit",
        action="store_true",
        help="Start implicit feedback vectors at zero",
    )
    parser.add_argument(
        "--no-shuffle",
        action="store_true",
        help="Visit ratings in file order every epoch",
    )
    parser.add_argument(
        "--baseline",
        choices=sorted(BASELINES),
        default=DEFAULT_BASELINE,
        help=f"Baseline estimate the model learns on top of (default: {DEFAULT_BASELINE})",
    )
    parser.add_argument(
        "--damping",
        type=float,
        default=DEFAULT_DAMPING,
        help=f"Damping for the mean baselines (default: {DEFAULT_DAMPING})",
    )
    parser.add_argument(
        "--random-state",
        type=int,
        default=DEFAULT_RANDOM_STATE,
        help=f"Random seed for reproducibility (default: {DEFAULT_RANDOM_STATE})",
    )
    parser.add_argument(
        "--evaluate",
        type=float,
        metavar="TEST_SIZE",
        default=None,
        help="Hold out this fraction of ratings and report RMSE/MAE; nothing is saved",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> TrainingConfig:
    return TrainingConfig(
        feature_count=args.features,
        learning_rate=args.learning_rate,
        regularization=args.regularization,
        init_min=args.init_min,
        init_max=args.init_max,
        zero_implicit_init=args.zero_implicit,
        shuffle=not args.no_shuffle,
        random_state=args.random_state,
        convergence=ConvergencePolicy(max_epochs=args.epochs, threshold=args.threshold),
    )


def run_evaluation(args: argparse.Namespace, config: TrainingConfig) -> None:
    """Train on a random split and log hold-out error."""
    logger = logging.getLogger(__name__)
    ratings = load_ratings_csv(args.csv_path)
    train_df, test_df = split_ratings(ratings, args.evaluate, args.random_state)

    baseline = create_baseline(args.baseline, train_df, damping=args.damping)
    model = SVDppTrainer(baseline, config).train(build_snapshot(train_df))
    scorer = SVDppItemScorer(model, baseline, history=InMemoryRatingHistory.from_dataframe(train_df))

    results = evaluate_model(scorer, test_df)
    logger.info("=" * 70)
    logger.info(f"Hold-out RMSE: {results['rmse']:.4f}")
    logger.info(f"Hold-out MAE:  {results['mae']:.4f}")
    logger.info(f"Scored: {results['n_scored']}, unscored: {results['n_unscored']}")
    logger.info("=" * 70)


def main(argv=None) -> int:
    """Main entry point for the training script.

    Returns:
        Exit code: 0 on success, 1 on error, 2 if training diverged.
    """
    try:
        args = parse_arguments(argv)
        setup_logging(verbose=args.verbose)
        logger = logging.getLogger(__name__)

        config = build_config(args)
        config.validate()

        logger.info("=" * 70)
        logger.info("Training Configuration")
        logger.info("=" * 70)
        logger.info(f"CSV path:         {args.csv_path}")
        logger.info(f"Output directory: {args.output_dir}")
        logger.info(f"Features:         {config.feature_count}")
        logger.info(f"Learning rate:    {config.learning_rate}")
        logger.info(f"Regularization:   {config.regularization}")
        logger.info(f"Max epochs:       {config.convergence.max_epochs}")
        logger.info(f"Baseline:         {args.baseline}")
        logger.info(f"Random state:     {config.random_state}")
        logger.info("=" * 70)

        if args.evaluate is not None:
            run_evaluation(args, config)
            return 0

        result = train_from_csv(
            csv_path=args.csv_path,
            output_dir=args.output_dir,
            config=config,
            baseline_kind=args.baseline,
            damping=args.damping,
        )

        logger.info("=" * 70)
        logger.info("Training Summary")
        logger.info("=" * 70)
        logger.info(f"Number of users:  {result.model.n_users}")
        logger.info(f"Number of items:  {result.model.n_items}")
        logger.info(f"Epochs run:       {len(result.rmse_history)} ({result.stop_reason})")
        logger.info(f"Final RMSE:       {result.rmse_history[-1]:.4f}")
        logger.info(f"Model saved to: {Path(args.output_dir).absolute()}")
        logger.info("=" * 70)
        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except DivergenceError as e:
        logging.error(f"{e} RMSE trajectory: {e.rmse_history}")
        return 2
    except ValueError as e:
        logging.error(f"Validation error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Training interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
