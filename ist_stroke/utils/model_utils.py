"""
Model utilities for threshold optimization, evaluation and model comparison.
"""

import numpy as np
import pandas as pd
from typing import Dict, Optional
from sklearn.metrics import (
    roc_auc_score, average_precision_score, f1_score,
    precision_score, recall_score, accuracy_score,
    precision_recall_curve, roc_curve, confusion_matrix,
    brier_score_loss
)
import logging

logger = logging.getLogger(__name__)

class ThresholdOptimizer:
    """Optimize classification threshold based on different strategies."""

    def __init__(self, method: str = 'youden_j'):
        """
        Initialize threshold optimizer.

        Args:
            method: Optimization method ('f1_optimal', 'precision_recall_curve',
                'youden_j', 'fixed')
        """
        self.method = method

    def optimize(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """
        Find optimal threshold.

        Args:
            y_true: True binary labels
            y_proba: Predicted probabilities

        Returns:
            Optimal threshold value
        """
        if self.method == 'f1_optimal':
            return self._optimize_f1(y_true, y_proba)
        elif self.method == 'precision_recall_curve':
            return self._optimize_precision_recall(y_true, y_proba)
        elif self.method == 'youden_j':
            return self._optimize_youden_j(y_true, y_proba)
        elif self.method == 'fixed':
            return 0.5
        else:
            raise ValueError(f"Unknown optimization method: {self.method}")

    def _optimize_f1(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Find threshold that maximizes F1 score."""
        thresholds = np.linspace(0.1, 0.9, 81)
        best_f1 = 0
        best_threshold = 0.5

        for threshold in thresholds:
            y_pred = (y_proba >= threshold).astype(int)
            f1 = f1_score(y_true, y_pred, zero_division=0)

            if f1 > best_f1:
                best_f1 = f1
                best_threshold = float(threshold)

        logger.info(f"Optimal threshold for F1: {best_threshold:.3f} (F1: {best_f1:.3f})")
        return best_threshold

    def _optimize_precision_recall(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Find threshold using precision-recall curve."""
        precision, recall, thresholds = precision_recall_curve(y_true, y_proba)

        f1_scores = 2 * (precision * recall) / (precision + recall + 1e-8)
        best_idx = np.argmax(f1_scores)

        best_threshold = float(thresholds[best_idx]) if best_idx < len(thresholds) else 0.5
        logger.info(f"Optimal threshold from PR curve: {best_threshold:.3f}")
        return best_threshold

    def _optimize_youden_j(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Find threshold using Youden's J statistic (sensitivity + specificity - 1)."""
        fpr, tpr, thresholds = roc_curve(y_true, y_proba)

        j_scores = tpr - fpr
        best_idx = np.argmax(j_scores)

        # roc_curve prepends an infinite threshold
        best_threshold = float(min(thresholds[best_idx], 1.0))
        logger.info(f"Optimal threshold from Youden's J: {best_threshold:.3f}")
        return best_threshold

class ModelEvaluator:
    """Binary classification evaluation for the dead-or-dependent outcome."""

    def calculate_metrics(self,
                         y_true: np.ndarray,
                         y_pred: np.ndarray,
                         y_proba: np.ndarray) -> Dict[str, float]:
        """
        Calculate evaluation metrics.

        Args:
            y_true: True binary labels
            y_pred: Predicted binary labels
            y_proba: Predicted probabilities

        Returns:
            Dictionary of metrics
        """
        metrics = {}

        metrics['accuracy'] = float(accuracy_score(y_true, y_pred))
        metrics['precision'] = float(precision_score(y_true, y_pred, zero_division=0))
        metrics['recall'] = float(recall_score(y_true, y_pred, zero_division=0))
        metrics['f1_score'] = float(f1_score(y_true, y_pred, zero_division=0))

        metrics['roc_auc'] = float(roc_auc_score(y_true, y_proba))
        metrics['pr_auc'] = float(average_precision_score(y_true, y_proba))
        metrics['brier_score'] = float(brier_score_loss(y_true, y_proba))

        tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
        metrics['true_negatives'] = int(tn)
        metrics['false_positives'] = int(fp)
        metrics['false_negatives'] = int(fn)
        metrics['true_positives'] = int(tp)

        metrics['specificity'] = tn / (tn + fp) if (tn + fp) > 0 else 0.0
        metrics['sensitivity'] = tp / (tp + fn) if (tp + fn) > 0 else 0.0
        metrics['npv'] = tn / (tn + fn) if (tn + fn) > 0 else 0.0  # Negative Predictive Value
        metrics['ppv'] = tp / (tp + fp) if (tp + fp) > 0 else 0.0  # Positive Predictive Value

        return {k: float(v) if isinstance(v, np.floating) else v for k, v in metrics.items()}

    def roc_curve_points(self, y_true: np.ndarray, y_proba: np.ndarray, label: str) -> pd.DataFrame:
        """ROC curve coordinates in long format for plotting."""
        fpr, tpr, thresholds = roc_curve(y_true, y_proba)
        return pd.DataFrame({
            'model': label,
            'false_positive_rate': fpr,
            'true_positive_rate': tpr,
            'threshold': thresholds,
        })

    def slice_analysis(self,
                      y_true: np.ndarray,
                      y_pred: np.ndarray,
                      y_proba: np.ndarray,
                      slice_feature: np.ndarray,
                      min_size: int = 10) -> Dict[str, Dict[str, float]]:
        """
        Metrics per subgroup (e.g. per treatment arm).

        Slices smaller than ``min_size`` or with a single outcome class are
        skipped since ROC-AUC is undefined for them.
        """
        slice_results = {}
        slice_feature = np.asarray(slice_feature, dtype=object)

        for value in pd.unique(slice_feature):
            if pd.isna(value):
                continue
            mask = slice_feature == value

            if np.sum(mask) < min_size or len(np.unique(y_true[mask])) < 2:
                continue

            slice_metrics = self.calculate_metrics(
                y_true[mask], y_pred[mask], y_proba[mask]
            )
            slice_metrics['sample_size'] = int(np.sum(mask))
            slice_results[str(value)] = slice_metrics

        return slice_results

class ModelComparator:
    """Compare multiple models."""

    def __init__(self):
        """Initialize comparator."""
        self.results = {}

    def add_model(self,
                  name: str,
                  y_true: np.ndarray,
                  y_pred: np.ndarray,
                  y_proba: np.ndarray):
        """Add model results for comparison."""
        evaluator = ModelEvaluator()
        self.results[name] = evaluator.calculate_metrics(y_true, y_pred, y_proba)

    def compare_models(self, metric: str = 'roc_auc') -> pd.DataFrame:
        """Create comparison table sorted by ``metric``."""
        if not self.results:
            return pd.DataFrame()

        comparison_df = pd.DataFrame(self.results).T
        comparison_df.index.name = 'model'

        if metric in comparison_df.columns:
            comparison_df = comparison_df.sort_values(metric, ascending=False)

        return comparison_df

    def get_best_model(self, metric: str = 'roc_auc') -> Optional[str]:
        """Get name of best performing model."""
        if not self.results:
            return None

        best_score = -np.inf
        best_model = None

        for model_name, metrics in self.results.items():
            if metric in metrics and metrics[metric] > best_score:
                best_score = metrics[metric]
                best_model = model_name

        return best_model
