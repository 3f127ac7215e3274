"""
Model-agnostic explanations for fitted outcome models.

Permutation variable importance is reported as a dropout loss (one minus
ROC-AUC after permuting a variable) so the full-model loss is the natural
lower bound of every bar. Partial dependence profiles are returned in long
format so profiles of several models can be stacked and plotted together.
"""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import shap
from sklearn.inspection import partial_dependence, permutation_importance
from sklearn.metrics import roc_auc_score

logger = logging.getLogger(__name__)

FULL_MODEL = '_full_model_'
BASELINE = '_baseline_'


def permutation_importance_table(model, X: pd.DataFrame, y: pd.Series,
                                 label: str,
                                 n_repeats: int = 10,
                                 random_state: int = 42) -> pd.DataFrame:
    """
    Permutation importance as one-minus-AUC dropout loss.

    Returns one row per (variable, permutation). ``permutation == 0`` holds
    the mean over repeats; ``_full_model_`` is the unpermuted loss and
    ``_baseline_`` the loss with the outcome itself permuted.
    """
    start_time = time.time()
    y_arr = np.asarray(y)
    proba = model.predict_proba(X)[:, 1]
    full_auc = roc_auc_score(y_arr, proba)
    full_loss = 1 - full_auc

    rng = np.random.RandomState(random_state)
    baseline_loss = 1 - roc_auc_score(rng.permutation(y_arr), proba)

    result = permutation_importance(
        model, X, y_arr,
        scoring='roc_auc',
        n_repeats=n_repeats,
        random_state=random_state,
    )

    rows = [
        {'variable': FULL_MODEL, 'permutation': 0, 'dropout_loss': full_loss},
        {'variable': BASELINE, 'permutation': 0, 'dropout_loss': baseline_loss},
    ]
    for i, variable in enumerate(X.columns):
        # importance = full AUC - permuted AUC, so loss = full loss + importance
        rows.append({'variable': variable, 'permutation': 0,
                     'dropout_loss': full_loss + result.importances_mean[i]})
        for repeat, importance in enumerate(result.importances[i], 1):
            rows.append({'variable': variable, 'permutation': repeat,
                         'dropout_loss': full_loss + importance})

    table = pd.DataFrame(rows)
    table['label'] = label

    elapsed_time = time.time() - start_time
    logger.info(f"Permutation importance for {label}: {len(X.columns)} variables x "
                f"{n_repeats} repeats in {elapsed_time:.2f} seconds")
    return table


def partial_dependence_profiles(model, X: pd.DataFrame, features: Sequence[str],
                                label: str,
                                grid_resolution: int = 20) -> pd.DataFrame:
    """Average partial dependence profiles in long format."""
    # grid values are floats; integer columns would reject them on assignment
    X = X.astype({f: float for f in features if f in X.columns and pd.api.types.is_integer_dtype(X[f])})
    frames = []
    for feature in features:
        if feature not in X.columns:
            logger.warning(f"Feature {feature} not in data; skipping partial dependence")
            continue

        pdp = partial_dependence(model, X, [feature], kind='average',
                                 grid_resolution=grid_resolution)
        grid = pdp.get('grid_values', pdp.get('values'))[0]
        frames.append(pd.DataFrame({
            '_vname_': feature,
            '_x_': np.asarray(grid, dtype=float).ravel(),
            '_yhat_': np.asarray(pdp['average'][0], dtype=float).ravel(),
            '_label_': label,
        }))

    if not frames:
        return pd.DataFrame(columns=['_vname_', '_x_', '_yhat_', '_label_'])
    return pd.concat(frames, ignore_index=True)


def _transform_features(model, X: pd.DataFrame) -> pd.DataFrame:
    """Run X through every pipeline step that has a transform (samplers have none)."""
    Xt = X
    for _, step in model.steps[:-1]:
        if hasattr(step, 'transform'):
            Xt = step.transform(Xt)
    return Xt.astype(float)


def _positive_class(values: Any) -> np.ndarray:
    """Normalize the SHAP output shapes of different explainers to (n, features)."""
    if isinstance(values, list):
        values = values[1]
    values = np.asarray(values)
    if values.ndim == 3:
        values = values[:, :, 1]
    return values


def shap_summary(model, X: pd.DataFrame, label: str,
                 out_dir: Optional[Path] = None,
                 nsample: int = 200,
                 random_state: int = 42) -> pd.DataFrame:
    """
    SHAP attribution on a sample of X for a fitted pipeline.

    Tree ensembles use ``TreeExplainer`` on the final estimator; other models
    fall back to ``KernelExplainer`` on the positive-class probability with a
    small background sample. Writes beeswarm/bar plots and the mean |SHAP|
    table to ``out_dir`` when given.
    """
    start_time = time.time()
    estimator = model.steps[-1][1]
    sample = X.sample(min(nsample, len(X)), random_state=random_state)
    Xt = _transform_features(model, sample)

    if hasattr(estimator, 'estimators_') or hasattr(estimator, 'get_booster') or hasattr(estimator, 'booster_'):
        explainer = shap.TreeExplainer(estimator)
        shap_values = explainer.shap_values(Xt, check_additivity=False)
    else:
        background = shap.sample(Xt, min(50, len(Xt)), random_state=random_state)
        explainer = shap.KernelExplainer(lambda data: estimator.predict_proba(data)[:, 1], background)
        shap_values = explainer.shap_values(Xt, nsamples=100, silent=True)

    shap_values = _positive_class(shap_values)
    importance = pd.DataFrame({
        'feature': list(Xt.columns),
        'mean_abs_shap': np.abs(shap_values).mean(axis=0),
        'label': label,
    }).sort_values('mean_abs_shap', ascending=False).reset_index(drop=True)

    if out_dir is not None:
        out = Path(out_dir)
        out.mkdir(parents=True, exist_ok=True)

        plt.figure(figsize=(10, 6))
        shap.summary_plot(shap_values, Xt, feature_names=list(Xt.columns), show=False)
        plt.tight_layout(); plt.savefig(out / f"shap_beeswarm_{label}.png", dpi=150); plt.close()

        plt.figure(figsize=(10, 6))
        shap.summary_plot(shap_values, Xt, feature_names=list(Xt.columns), plot_type="bar", show=False)
        plt.tight_layout(); plt.savefig(out / f"shap_bar_{label}.png", dpi=150); plt.close()

        importance.to_csv(out / f"shap_importance_{label}.csv", index=False)

    elapsed_time = time.time() - start_time
    logger.info(f"SHAP summary for {label} on {len(Xt)} rows in {elapsed_time:.2f} seconds")
    return importance
