"""Test configuration and fixtures."""

import pytest
import pandas as pd
import numpy as np
import tempfile
from pathlib import Path

from ist_stroke.data_generation import TrialDataGenerator


@pytest.fixture
def raw_record():
    """A single raw trial record that survives normalization."""
    return {
        'RDELAY': 17, 'RCONSC': 'F', 'SEX': 'M', 'AGE': 69,
        'RSLEEP': 'N', 'RATRIAL': 'N', 'RCT': 'Y', 'RVISINF': 'N',
        'RHEP24': 'N', 'RASP3': 'N', 'RSBP': 140,
        'RDEF1': 'Y', 'RDEF2': 'Y', 'RDEF3': 'N', 'RDEF4': 'N',
        'RDEF5': 'N', 'RDEF6': 'N', 'RDEF7': 'N', 'RDEF8': 'C',
        'STYPE': 'PACS', 'RXASP': 'Y', 'RXHEP': 'L', 'OCCODE': 2,
        'HOSPNUM': 12, 'CNTRYNUM': 3,
    }


@pytest.fixture
def raw_trial_data():
    """Synthetic raw IST export with pilot rows, legacy heparin codes and missing outcomes."""
    generator = TrialDataGenerator(seed=42)
    return generator.generate_dataset(
        num_patients=400,
        pilot_fraction=0.1,
        missing_outcome_rate=0.05,
        legacy_heparin_rate=0.05,
    )


@pytest.fixture
def raw_trial_csv(raw_trial_data, temp_directory):
    """The synthetic export written the way the trial distributes it."""
    path = temp_directory / "IST_corrected.csv"
    raw_trial_data.to_csv(path, index=False)
    return path


@pytest.fixture
def normalized_data(raw_trial_data):
    """Normalized analysis record set."""
    from ist_stroke.pipeline.normalizer import normalize_frame
    return normalize_frame(raw_trial_data)


@pytest.fixture
def temp_directory():
    """Create temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def sample_config(temp_directory):
    """Small, fast configuration for pipeline tests."""
    return {
        'random_seed': 42,
        'data': {'test_size': 0.25},
        'feature_engineering': {
            'categorical_encoding': {
                'method': 'one_hot',
                'handle_unknown': 'ignore'
            },
            'missing_values': {
                'numeric_strategy': 'median',
                'categorical_strategy': 'most_frequent'
            }
        },
        'models': {
            'algorithms': ['random_forest', 'lightgbm'],
            'random_forest': {'n_estimators': 20, 'max_depth': 4},
            'neural_network': {'hidden_layer_sizes': [8], 'max_iter': 200},
            'xgboost': {'n_estimators': 20, 'max_depth': 3},
            'lightgbm': {'n_estimators': 20, 'num_leaves': 8},
        },
        'hpo': {'enabled': False},
        'imbalance': {'method': 'none'},
        'cross_validation': {'n_splits': 2},
        'threshold': {'method': 'youden_j'},
        'interpretation': {
            'n_repeats': 2,
            'top_n': 5,
            'pdp_features': ['AGE', 'RSBP'],
        },
        'mlflow': {
            'experiment_name': 'test_experiment',
            'tracking_uri': f'sqlite:///{temp_directory}/mlflow.db',
            'artifact_location': str(temp_directory / 'mlartifacts'),
            'log_models': False
        }
    }
