"""
IST Stroke Outcome Analysis

Normalization of International Stroke Trial records into an analysis-ready
set, descriptive reporting, and comparison of outcome models.
"""

__version__ = "1.0.0"

from .data_generation import TrialDataGenerator
from .pipeline import (
    normalize,
    normalize_for_eda,
    normalize_frame,
    CategoricalEncoder,
    MissingValueHandler,
    DataValidator
)
from .utils import (
    ExperimentTracker,
    ThresholdOptimizer,
    ModelEvaluator
)

__all__ = [
    'TrialDataGenerator',
    'normalize',
    'normalize_for_eda',
    'normalize_frame',
    'CategoricalEncoder',
    'MissingValueHandler',
    'DataValidator',
    'ExperimentTracker',
    'ThresholdOptimizer',
    'ModelEvaluator'
]
