"""Model interpretation: permutation importance, partial dependence, SHAP."""

from .explain import (
    permutation_importance_table,
    partial_dependence_profiles,
    shap_summary
)
from .plots import plot_vip, plot_pdp, plot_roc_curves

__all__ = [
    'permutation_importance_table',
    'partial_dependence_profiles',
    'shap_summary',
    'plot_vip',
    'plot_pdp',
    'plot_roc_curves'
]
