"""SVD++ rating prediction engine.

This package trains SVD++ latent-factor models from explicit user-item
ratings and serves fold-in rating predictions for users against item sets.

Modules:
    api: FastAPI application and scoring endpoints
    svdpp: Model training, persistence and scoring logic
"""

__version__ = "0.1.0"
