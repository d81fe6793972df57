"""Custom exceptions for the SVD++ engine.

Defines specific exception types for configuration, training and model
state failures.
"""

from typing import Any, Dict, List, Optional


class SVDppError(Exception):
    """Base exception for SVD++ engine errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidConfiguration(SVDppError, ValueError):
    """Raised when training parameters are rejected before training starts."""

    def __init__(self, parameter: str, value: Any, reason: str):
        message = f"Invalid value for '{parameter}' ({value!r}): {reason}"
        super().__init__(
            message=message,
            details={"parameter": parameter, "value": value, "reason": reason},
        )
        self.parameter = parameter


class DivergenceError(SVDppError):
    """Raised when training RMSE becomes non-finite or grows past the bound.

    Usually means the learning rate or regularization term is badly chosen.
    The RMSE trajectory up to and including the failing epoch is kept on
    ``rmse_history``.
    """

    def __init__(self, epoch: int, rmse: float, rmse_history: List[float]):
        message = (
            f"Training diverged at epoch {epoch}: RMSE={rmse}. "
            "Try a smaller learning rate or a larger regularization term."
        )
        super().__init__(
            message=message,
            details={
                "epoch": epoch,
                "rmse": rmse,
                "rmse_history": list(rmse_history),
            },
        )
        self.epoch = epoch
        self.rmse = rmse
        self.rmse_history = list(rmse_history)


class InvalidModelState(SVDppError):
    """Raised when model matrices disagree with each other or with the index."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=f"Invalid model state: {reason}", details=details)
