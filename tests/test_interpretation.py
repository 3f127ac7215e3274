"""
Tests for permutation importance, partial dependence, SHAP and the plots.
"""

import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pytest
import pandas as pd
import numpy as np

from ist_stroke.interpretation import (
    partial_dependence_profiles,
    permutation_importance_table,
    plot_pdp,
    plot_roc_curves,
    plot_vip,
    shap_summary,
)
from ist_stroke.interpretation.explain import BASELINE, FULL_MODEL
from ist_stroke.pipeline.training_pipeline import StrokeOutcomePipeline


@pytest.fixture
def fitted(sample_config, normalized_data):
    """A small fitted random forest pipeline and its held-out data."""
    pipeline = StrokeOutcomePipeline(sample_config)
    X, y = pipeline.prepare_features(normalized_data)
    X_train, X_test, y_train, y_test = pipeline.split_data(X, y)
    model = pipeline.build_pipeline('random_forest')
    model.fit(X_train, y_train)
    return model, X_test, y_test


class TestPermutationImportance:
    """Test the dropout-loss importance table."""

    def test_table(self, fitted):
        model, X, y = fitted
        table = permutation_importance_table(model, X, y, label='random_forest', n_repeats=3)

        assert list(table.columns) == ['variable', 'permutation', 'dropout_loss', 'label']
        assert (table['label'] == 'random_forest').all()
        assert {FULL_MODEL, BASELINE} <= set(table['variable'])
        # one mean row plus one row per repeat for every input variable
        assert len(table) == 2 + len(X.columns) * 4
        assert set(table['permutation']) == {0, 1, 2, 3}

    def test_mean_row_matches_repeats(self, fitted):
        model, X, y = fitted
        table = permutation_importance_table(model, X, y, label='rf', n_repeats=3)
        age = table[table['variable'] == 'AGE']

        mean_loss = age.loc[age['permutation'] == 0, 'dropout_loss'].iloc[0]
        assert mean_loss == pytest.approx(age.loc[age['permutation'] > 0, 'dropout_loss'].mean())

    def test_full_model_loss(self, fitted):
        from sklearn.metrics import roc_auc_score
        model, X, y = fitted
        table = permutation_importance_table(model, X, y, label='rf', n_repeats=2)

        full = table.loc[table['variable'] == FULL_MODEL, 'dropout_loss'].iloc[0]
        assert full == pytest.approx(1 - roc_auc_score(y, model.predict_proba(X)[:, 1]))


class TestPartialDependence:
    """Test partial dependence profiles."""

    def test_long_format(self, fitted):
        model, X, _ = fitted
        profiles = partial_dependence_profiles(model, X, ['AGE', 'RDELAY'], label='rf', grid_resolution=5)

        assert list(profiles.columns) == ['_vname_', '_x_', '_yhat_', '_label_']
        assert set(profiles['_vname_']) == {'AGE', 'RDELAY'}
        assert (profiles['_label_'] == 'rf').all()
        assert profiles['_yhat_'].between(0, 1).all()
        assert len(profiles[profiles['_vname_'] == 'AGE']) <= 5

    def test_unknown_feature_skipped(self, fitted):
        model, X, _ = fitted
        profiles = partial_dependence_profiles(model, X, ['HOSPNUM'], label='rf')
        assert profiles.empty
        assert list(profiles.columns) == ['_vname_', '_x_', '_yhat_', '_label_']


class TestShap:
    """Test SHAP summaries."""

    def test_tree_model(self, fitted, temp_directory):
        model, X, _ = fitted
        importance = shap_summary(model, X, label='rf', out_dir=temp_directory, nsample=30)

        assert list(importance.columns) == ['feature', 'mean_abs_shap', 'label']
        assert importance['mean_abs_shap'].is_monotonic_decreasing
        assert (temp_directory / "shap_beeswarm_rf.png").exists()
        assert (temp_directory / "shap_bar_rf.png").exists()
        assert (temp_directory / "shap_importance_rf.csv").exists()

    def test_kernel_explainer_for_neural_network(self, sample_config, normalized_data, temp_directory):
        pipeline = StrokeOutcomePipeline(sample_config)
        X, y = pipeline.prepare_features(normalized_data)
        X_train, X_test, y_train, _ = pipeline.split_data(X, y)
        model = pipeline.build_pipeline('neural_network')
        model.fit(X_train, y_train)

        importance = shap_summary(model, X_test, label='nn', out_dir=temp_directory, nsample=10)

        n_features = len(model.named_steps['model'].coefs_[0])
        assert list(importance.columns) == ['feature', 'mean_abs_shap', 'label']
        assert len(importance) == n_features
        assert (importance['mean_abs_shap'] >= 0).all()
        assert (temp_directory / "shap_beeswarm_nn.png").exists()
        assert (temp_directory / "shap_bar_nn.png").exists()
        assert (temp_directory / "shap_importance_nn.csv").exists()


class TestPlots:
    """Test that the comparison plots render."""

    def test_plot_vip(self, fitted):
        model, X, y = fitted
        tables = [permutation_importance_table(model, X, y, label=name, n_repeats=2)
                  for name in ['rf_a', 'rf_b']]
        fig = plot_vip(*tables, top_n=5)

        assert len(fig.axes) == 2
        assert fig.axes[0].get_title() == 'rf_a'
        assert len(fig.axes[0].get_yticklabels()) == 5
        # one permutation boxplot per plotted variable
        assert len(fig.axes[0].patches) == 5
        assert fig.axes[0].get_xlabel() == 'One minus AUC loss after permutations'
        plt.close(fig)

    def test_plot_pdp(self, fitted):
        model, X, _ = fitted
        profiles = partial_dependence_profiles(model, X, ['AGE', 'RSBP'], label='rf', grid_resolution=5)
        fig = plot_pdp(profiles)

        visible = [ax for ax in fig.axes if ax.get_visible()]
        assert [ax.get_title() for ax in visible] == ['AGE', 'RSBP']
        assert fig.legends[0].get_title().get_text() == 'Model'
        plt.close(fig)

    def test_plot_roc_curves(self):
        curves = pd.DataFrame({
            'model': ['a', 'a', 'a', 'b', 'b', 'b'],
            'false_positive_rate': [0.0, 0.5, 1.0, 0.0, 0.2, 1.0],
            'true_positive_rate': [0.0, 0.7, 1.0, 0.0, 0.6, 1.0],
            'threshold': [np.inf, 0.5, 0.1, np.inf, 0.4, 0.2],
        })
        fig = plot_roc_curves(curves)
        assert len(fig.axes[0].get_lines()) == 3
        plt.close(fig)
