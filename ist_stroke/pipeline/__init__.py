"""Normalization, preprocessing and training components."""

from .normalizer import (
    SchemaError,
    UnmappedValueWarning,
    normalize,
    normalize_record,
    normalize_for_eda,
    normalize_frame,
    normalize_frame_for_eda,
    coerce_categoricals,
)
from .labels import VARIABLE_LABELS, labels_for

from .feature_engineering import (
    CategoricalEncoder,
    create_preprocessing_pipeline
)

from .preprocessing import (
    MissingValueHandler,
    DataValidator,
    DataScaler,
)

__all__ = [
    'SchemaError',
    'UnmappedValueWarning',
    'normalize',
    'normalize_record',
    'normalize_for_eda',
    'normalize_frame',
    'normalize_frame_for_eda',
    'coerce_categoricals',
    'VARIABLE_LABELS',
    'labels_for',
    'CategoricalEncoder',
    'create_preprocessing_pipeline',
    'MissingValueHandler',
    'DataValidator',
    'DataScaler',
]
