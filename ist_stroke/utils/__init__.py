"""Utility modules for the ML pipeline."""

from .data_io import load_raw_trial_data, save_normalized, load_normalized
from .experiment_tracking import ExperimentTracker
from .model_utils import (
    ThresholdOptimizer,
    ModelEvaluator,
    ModelComparator
)

__all__ = [
    'load_raw_trial_data',
    'save_normalized',
    'load_normalized',
    'ExperimentTracker',
    'ThresholdOptimizer',
    'ModelEvaluator',
    'ModelComparator'
]
