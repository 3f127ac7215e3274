"""
Feature Engineering Pipeline

This module handles categorical encoding and assembles the per-algorithm
preprocessing steps applied to the normalized stroke trial records before
model fitting.
"""

import pandas as pd
import numpy as np
import logging
import time
from typing import Dict, List, Optional, Any
from sklearn.base import BaseEstimator, TransformerMixin

logger = logging.getLogger(__name__)

# Algorithms that need numeric inputs on a common scale
SCALED_ALGORITHMS = {'neural_network'}

class CategoricalEncoder(BaseEstimator, TransformerMixin):
    """Handle categorical feature encoding with multiple strategies."""

    def __init__(self,
                 method: str = 'one_hot',
                 handle_unknown: str = 'ignore',
                 min_samples_leaf: int = 20):
        """
        Initialize categorical encoder.

        Args:
            method: Encoding method ('one_hot', 'label_encoding', 'target_encoding')
            handle_unknown: 'ignore' encodes unseen levels as all zeros / -1,
                'error' raises on unseen levels
            min_samples_leaf: Minimum samples for target encoding smoothing
        """
        self.method = method
        self.handle_unknown = handle_unknown
        self.min_samples_leaf = min_samples_leaf

    def fit(self, X: pd.DataFrame, y: Optional[pd.Series] = None):
        """Fit the categorical encoder."""
        start_time = time.time()
        logger.info(f"Fitting categorical encoder with method: {self.method}")

        if self.method not in ('one_hot', 'label_encoding', 'target_encoding'):
            raise ValueError(f"Unknown encoding method: {self.method}")
        if self.method == 'target_encoding' and y is None:
            raise ValueError("Target encoding requires y to be provided")

        self.categorical_features_ = X.select_dtypes(include=['object', 'category', 'string']).columns.tolist()
        self.categories_ = {}
        self.encoders_ = {}
        self.global_means_ = {}

        for feature in self.categorical_features_:
            self.categories_[feature] = self._levels(X[feature])

            if self.method == 'label_encoding':
                self.encoders_[feature] = {level: code for code, level in enumerate(self.categories_[feature])}

            elif self.method == 'target_encoding':
                target = pd.Series(np.asarray(y, dtype=float), index=X.index)
                self.global_means_[feature] = float(target.mean())
                self.encoders_[feature] = self._calculate_target_encoding(X[feature], target)

        elapsed_time = time.time() - start_time
        logger.info(f"Fitted categorical encoder for {len(self.categorical_features_)} features in {elapsed_time:.2f} seconds")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Transform categorical features."""
        X_transformed = X.copy()
        encoded_blocks = {}

        for feature in self.categorical_features_:
            if feature not in X_transformed.columns:
                continue

            values = X_transformed[feature].astype(object).map(lambda v: None if pd.isna(v) else str(v))
            self._check_unknown(feature, values)

            if self.method == 'one_hot':
                for level in self.categories_[feature]:
                    encoded_blocks[f'{feature}_{level}'] = (values == level).astype(int)
                X_transformed = X_transformed.drop(columns=[feature])

            elif self.method == 'label_encoding':
                X_transformed[feature] = values.map(self.encoders_[feature]).fillna(-1).astype(int)

            elif self.method == 'target_encoding':
                encoding_map = self.encoders_[feature]
                X_transformed[feature] = values.map(encoding_map).fillna(self.global_means_[feature]).astype(float)

        # Add all dummy columns at once to avoid DataFrame fragmentation
        if encoded_blocks:
            X_transformed = pd.concat([X_transformed, pd.DataFrame(encoded_blocks, index=X_transformed.index)], axis=1)

        return X_transformed

    def get_feature_names_out(self, input_features=None):
        """Get output feature names."""
        if self.method != 'one_hot':
            return list(input_features) if input_features is not None else list(self.categorical_features_)
        names = []
        for feature in self.categorical_features_:
            names.extend(f'{feature}_{level}' for level in self.categories_[feature])
        return names

    @staticmethod
    def _levels(series: pd.Series) -> List[str]:
        """Category levels in declared order for categoricals, sorted otherwise."""
        if isinstance(series.dtype, pd.CategoricalDtype):
            return [str(level) for level in series.cat.categories]
        return sorted(series.dropna().astype(str).unique())

    def _check_unknown(self, feature: str, values: pd.Series):
        unknown = set(values.dropna()) - set(self.categories_[feature])
        if not unknown:
            return
        if self.handle_unknown == 'error':
            raise ValueError(f"Unknown categories {sorted(unknown)} in feature {feature}")
        logger.warning(f"Feature {feature} has unseen categories {sorted(unknown)}; encoding as unknown")

    def _calculate_target_encoding(self, feature_series: pd.Series, target: pd.Series) -> Dict:
        """Calculate target encoding with smoothing."""
        global_mean = target.mean()

        stats = pd.DataFrame({
            'feature': feature_series.astype(str).where(feature_series.notna()),
            'target': target
        }).groupby('feature')['target'].agg(['count', 'mean']).reset_index()

        # Apply smoothing (empirical Bayes)
        lambda_reg = 1 / (1 + np.exp(-(stats['count'] - self.min_samples_leaf) / self.min_samples_leaf))
        stats['smoothed_mean'] = lambda_reg * stats['mean'] + (1 - lambda_reg) * global_mean

        return dict(zip(stats['feature'], stats['smoothed_mean']))

def create_preprocessing_pipeline(config: Dict, algorithm: str) -> List[Any]:
    """Create the preprocessing steps for one algorithm from configuration."""
    from .preprocessing import MissingValueHandler, DataScaler

    fe_config = config.get('feature_engineering', {})
    pipeline_steps = []

    # Missing value handling (must come first)
    missing_config = fe_config.get('missing_values', {})
    pipeline_steps.append(MissingValueHandler(
        numeric_strategy=missing_config.get('numeric_strategy', 'median'),
        categorical_strategy=missing_config.get('categorical_strategy', 'most_frequent'),
        add_indicator=missing_config.get('add_indicator', False)
    ))

    encoding_config = fe_config.get('categorical_encoding', {})
    pipeline_steps.append(CategoricalEncoder(
        method=encoding_config.get('method', 'one_hot'),
        handle_unknown=encoding_config.get('handle_unknown', 'ignore')
    ))

    # Scaling AFTER encoding so dummies share the numeric scale
    scaling_config = fe_config.get('scaling', {})
    if scaling_config.get('enabled', algorithm in SCALED_ALGORITHMS):
        pipeline_steps.append(DataScaler(method=scaling_config.get('method', 'standard')))

    logger.info(f"Created preprocessing pipeline for {algorithm} with {len(pipeline_steps)} steps")
    return pipeline_steps
