"""API module for the SVD++ scoring service.

This module contains the FastAPI application, the scoring endpoints and
their supporting logging, metrics and error types.
"""
