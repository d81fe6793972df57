"""Generate fake explicit rating data for testing and development.

Ratings are drawn from a hidden low-rank model so that a latent factor
model has real structure to learn. Each user rates a random subset of items
on a 1-5 star scale.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_ratings.py

    Or import and use programmatically:
        from scripts.generate_fake_ratings import generate_fake_ratings
        df = generate_fake_ratings(num_users=100, num_items=200)
"""

from pathlib import Path

import numpy as np
import pandas as pd

# Default configuration constants
DEFAULT_NUM_USERS = 50
DEFAULT_NUM_ITEMS = 100
DEFAULT_RATINGS_PER_USER = 20
DEFAULT_LATENT_DIM = 3
DEFAULT_NOISE = 0.5
MIN_RATING, MAX_RATING = 1, 5


def generate_fake_ratings(
    num_users: int = DEFAULT_NUM_USERS,
    num_items: int = DEFAULT_NUM_ITEMS,
    ratings_per_user: int = DEFAULT_RATINGS_PER_USER,
    latent_dim: int = DEFAULT_LATENT_DIM,
    noise: float = DEFAULT_NOISE,
    random_state: int = 42,
) -> pd.DataFrame:
    """Generate synthetic star ratings.

    Args:
        num_users: Number of unique users to simulate. Must be positive.
        num_items: Number of unique items available. Must be positive.
        ratings_per_user: Items rated by each user. Must not exceed
            num_items.
        latent_dim: Rank of the hidden preference model.
        noise: Standard deviation of the Gaussian rating noise.
        random_state: Random seed for reproducibility.

    Returns:
        A pandas DataFrame with columns user_id (1..num_users), item_id
        (1..num_items) and rating (integer stars 1-5), in random order.

    Raises:
        ValueError: If any numeric parameter is out of range.
    """
    if num_users <= 0 or num_items <= 0 or ratings_per_user <= 0 or latent_dim <= 0:
        raise ValueError("num_users, num_items, ratings_per_user and latent_dim must be positive")
    if ratings_per_user > num_items:
        raise ValueError("ratings_per_user cannot exceed num_items")

    rng = np.random.default_rng(random_state)
    user_factors = rng.normal(0.0, 1.0, size=(num_users, latent_dim))
    item_factors = rng.normal(0.0, 1.0, size=(num_items, latent_dim))
    item_bias = rng.normal(0.0, 0.5, size=num_items)

    rows = []
    for user in range(num_users):
        items = rng.choice(num_items, size=ratings_per_user, replace=False)
        raw = (
            3.0
            + item_bias[items]
            + item_factors[items] @ user_factors[user] / np.sqrt(latent_dim)
            + rng.normal(0.0, noise, size=ratings_per_user)
        )
        stars = np.clip(np.rint(raw), MIN_RATING, MAX_RATING)
        rows.extend(zip([user + 1] * ratings_per_user, items + 1, stars))

    df = pd.DataFrame(rows, columns=["user_id", "item_id", "rating"])
    df = df.astype({"user_id": int, "item_id": int, "rating": float})
    return df.sample(frac=1.0, random_state=random_state).reset_index(drop=True)


def main() -> None:
    """Generate default data and save it to data/ratings.csv."""
    print(f"Generating ratings for {DEFAULT_NUM_USERS} users and {DEFAULT_NUM_ITEMS} items...")

    try:
        df = generate_fake_ratings()
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    output_path = data_dir / "ratings.csv"
    df.to_csv(output_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Saved to: {output_path}")
    print(f"\nData preview:")
    print(df.head(10))
    print(f"\nData summary:")
    print(f"  Total ratings: {len(df)}")
    print(f"  Unique users: {df['user_id'].nunique()}")
    print(f"  Unique items: {df['item_id'].nunique()}")
    print(f"  Mean rating: {df['rating'].mean():.3f}")


if __name__ == "__main__":
    main()
