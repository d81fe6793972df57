"""Machine learning module for the SVD++ engine.

This module contains the SVD++ model, the stochastic gradient descent
trainer, the fold-in item scorer and the collaborators they consume
(rating index, baseline estimates and rating history).
"""
