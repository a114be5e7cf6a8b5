"""Heuristic price prediction."""

from .estimator import PredictionEstimator, classify_trend, project_target

__all__ = [
    'PredictionEstimator',
    'classify_trend',
    'project_target',
]
