"""
Data preprocessing utilities for handling missing values, scaling, and validation.
"""

import pandas as pd
import numpy as np
import logging
import time
from typing import Dict, List
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.preprocessing import StandardScaler, MinMaxScaler, RobustScaler
from sklearn.impute import SimpleImputer

from .normalizer import DEAD_OR_DEP_LEVELS, DEFICIT_FIELDS, TREATMENT_LEVELS

logger = logging.getLogger(__name__)

YES_NO = ['Y', 'N']


def _as_object(frame: pd.DataFrame) -> pd.DataFrame:
    """Object frame with every missing marker (None, pd.NA) as NaN."""
    return frame.astype(object).where(frame.notna(), np.nan)


class MissingValueHandler(BaseEstimator, TransformerMixin):
    """Handle missing values with different strategies for numeric and categorical features."""

    def __init__(self,
                 numeric_strategy: str = 'median',
                 categorical_strategy: str = 'most_frequent',
                 add_indicator: bool = False):
        """
        Initialize missing value handler.

        Args:
            numeric_strategy: Strategy for numeric features ('mean', 'median', 'constant')
            categorical_strategy: Strategy for categorical features ('most_frequent', 'constant')
            add_indicator: Whether to add binary indicator for missing values
        """
        self.numeric_strategy = numeric_strategy
        self.categorical_strategy = categorical_strategy
        self.add_indicator = add_indicator

    def fit(self, X: pd.DataFrame, y=None):
        """Fit the missing value handler."""
        start_time = time.time()
        logger.info("Fitting missing value handler...")

        self.numeric_features_ = X.select_dtypes(include=[np.number]).columns.tolist()
        self.categorical_features_ = X.select_dtypes(include=['object', 'category', 'string']).columns.tolist()
        self.numeric_imputer_ = None
        self.categorical_imputer_ = None

        if self.numeric_features_:
            self.numeric_imputer_ = SimpleImputer(strategy=self.numeric_strategy)
            self.numeric_imputer_.fit(X[self.numeric_features_])

        # Categoricals are imputed as plain objects so sklearn sees NaN, not a category code
        if self.categorical_features_:
            self.categorical_imputer_ = SimpleImputer(strategy=self.categorical_strategy)
            self.categorical_imputer_.fit(_as_object(X[self.categorical_features_]))

        self.missing_indicators_ = []
        if self.add_indicator:
            self.missing_indicators_ = [col for col in X.columns if X[col].isnull().any()]

        elapsed_time = time.time() - start_time
        logger.info(f"Fitted missing value handler for {len(self.numeric_features_)} numeric "
                   f"and {len(self.categorical_features_)} categorical features in {elapsed_time:.2f} seconds")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Transform by handling missing values."""
        start_time = time.time()

        X_transformed = X.copy()

        if self.add_indicator:
            for col in self.missing_indicators_:
                if col in X_transformed.columns:
                    X_transformed[f'{col}_was_missing'] = X_transformed[col].isnull().astype(int)

        if self.numeric_imputer_ is not None:
            X_transformed[self.numeric_features_] = self.numeric_imputer_.transform(
                X_transformed[self.numeric_features_]
            )

        if self.categorical_imputer_ is not None:
            imputed = self.categorical_imputer_.transform(
                _as_object(X_transformed[self.categorical_features_])
            )
            for i, col in enumerate(self.categorical_features_):
                X_transformed[col] = imputed[:, i]

        elapsed_time = time.time() - start_time
        logger.debug(f"Missing value transformation completed in {elapsed_time:.2f} seconds")
        return X_transformed

class DataValidator:
    """Validate data quality and consistency."""

    def __init__(self):
        self.validation_rules = {}

    def add_rule(self, feature: str, rule_type: str, **kwargs):
        """Add validation rule for a feature."""
        if feature not in self.validation_rules:
            self.validation_rules[feature] = []

        self.validation_rules[feature].append({
            'type': rule_type,
            'params': kwargs
        })

    def validate(self, df: pd.DataFrame) -> Dict[str, List[str]]:
        """Validate dataframe against rules."""
        violations = {}

        for feature, rules in self.validation_rules.items():
            if feature not in df.columns:
                continue

            feature_violations = []

            for rule in rules:
                if rule['type'] == 'range':
                    min_val = rule['params'].get('min')
                    max_val = rule['params'].get('max')

                    if min_val is not None:
                        violation_count = (df[feature] < min_val).sum()
                        if violation_count > 0:
                            feature_violations.append(f"{violation_count} values below minimum {min_val}")

                    if max_val is not None:
                        violation_count = (df[feature] > max_val).sum()
                        if violation_count > 0:
                            feature_violations.append(f"{violation_count} values above maximum {max_val}")

                elif rule['type'] == 'categorical':
                    allowed_values = rule['params'].get('allowed_values', [])
                    values = df[feature].astype(object)
                    invalid_mask = values.notna() & ~values.isin(allowed_values)
                    violation_count = invalid_mask.sum()

                    if violation_count > 0:
                        invalid = sorted(values[invalid_mask].astype(str).unique())
                        feature_violations.append(f"{violation_count} invalid categorical values: {invalid}")

                elif rule['type'] == 'missing_rate':
                    max_missing_rate = rule['params'].get('max_rate', 0.1)
                    missing_rate = df[feature].isnull().mean()

                    if missing_rate > max_missing_rate:
                        feature_violations.append(f"Missing rate {missing_rate:.2%} exceeds {max_missing_rate:.2%}")

            if feature_violations:
                violations[feature] = feature_violations

        return violations

    def setup_trial_rules(self):
        """Setup validation rules for the normalized stroke trial records."""
        self.add_rule('AGE', 'range', min=16, max=110)
        self.add_rule('RSBP', 'range', min=60, max=300)
        self.add_rule('RDELAY', 'range', min=0, max=48)

        self.add_rule('SEX', 'categorical', allowed_values=['M', 'F'])
        self.add_rule('RCONSC', 'categorical', allowed_values=['F', 'D', 'U'])
        self.add_rule('STYPE', 'categorical',
                     allowed_values=['TACS', 'PACS', 'POCS', 'LACS', 'OTH'])
        for feature in ['RSLEEP', 'RATRIAL', 'RCT', 'RVISINF', 'RHEP24', 'RASP3']:
            self.add_rule(feature, 'categorical', allowed_values=YES_NO)
        for feature in DEFICIT_FIELDS:
            self.add_rule(feature, 'categorical', allowed_values=YES_NO + ['C'])
        self.add_rule('treatment', 'categorical', allowed_values=TREATMENT_LEVELS)
        self.add_rule('dead_or_dep', 'categorical', allowed_values=DEAD_OR_DEP_LEVELS)

        for feature in ['AGE', 'SEX', 'RATRIAL', 'treatment', 'dead_or_dep']:
            self.add_rule(feature, 'missing_rate', max_rate=0.0)
        for feature in ['RSBP', 'RDELAY', 'RCONSC', 'STYPE']:
            self.add_rule(feature, 'missing_rate', max_rate=0.05)

class DataScaler(BaseEstimator, TransformerMixin):
    """Scale numeric features while preserving categorical features."""

    def __init__(self, method: str = 'standard'):
        """
        Initialize scaler.

        Args:
            method: Scaling method ('standard', 'robust', 'minmax')
        """
        self.method = method

    def fit(self, X: pd.DataFrame, y=None):
        """Fit the scaler."""
        start_time = time.time()
        logger.info(f"Fitting data scaler with method: {self.method}")

        self.numeric_features_ = X.select_dtypes(include=[np.number]).columns.tolist()

        if self.method == 'standard':
            self.scaler_ = StandardScaler()
        elif self.method == 'robust':
            self.scaler_ = RobustScaler()
        elif self.method == 'minmax':
            self.scaler_ = MinMaxScaler()
        else:
            raise ValueError(f"Unknown scaling method: {self.method}")

        if self.numeric_features_:
            self.scaler_.fit(X[self.numeric_features_])

        elapsed_time = time.time() - start_time
        logger.info(f"Fitted scaler for {len(self.numeric_features_)} numeric features in {elapsed_time:.2f} seconds")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Transform by scaling numeric features."""
        X_transformed = X.copy()

        if self.numeric_features_:
            X_transformed[self.numeric_features_] = self.scaler_.transform(
                X_transformed[self.numeric_features_]
            ).astype(float)

        return X_transformed
