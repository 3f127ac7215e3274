"""
Plot helpers for comparing several fitted models side by side.
"""

from itertools import cycle
from typing import List

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .explain import BASELINE, FULL_MODEL

# DrWhy discrete palette (three models)
MODEL_COLORS = ['#8bdcbe', '#f05a71', '#371ea3']


def _model_colors(labels: List[str]) -> dict:
    return dict(zip(labels, cycle(MODEL_COLORS)))


def plot_vip(*tables: pd.DataFrame, top_n: int = 10):
    """
    Faceted variable-importance plot, one panel per model.

    Each bar runs from the full-model loss to the mean dropout loss of the
    variable; a boxplot over it shows the spread of the individual permutations.
    """
    vip = pd.concat(tables, ignore_index=True)
    labels = list(dict.fromkeys(vip['label']))
    colors = _model_colors(labels)

    loss_min = (
        vip[(vip['variable'] == FULL_MODEL) & (vip['permutation'] == 0)]
        .set_index('label')['dropout_loss']
    )
    means = vip[~vip['variable'].isin([FULL_MODEL, BASELINE]) & (vip['permutation'] == 0)]

    fig, axes = plt.subplots(1, len(labels), figsize=(5 * len(labels), 0.5 * top_n + 1.5), squeeze=False)
    for ax, label in zip(axes[0], labels):
        top = means[means['label'] == label].nlargest(top_n, 'dropout_loss').iloc[::-1]
        positions = np.arange(len(top))
        ax.hlines(positions, loss_min[label], top['dropout_loss'],
                  color=colors[label], linewidth=8, alpha=0.8)

        perms = vip[(vip['label'] == label) & (vip['permutation'] > 0)]
        spread = [perms.loc[perms['variable'] == variable, 'dropout_loss'].to_numpy()
                  for variable in top['variable']]
        ax.boxplot(spread, positions=positions, orientation='horizontal', widths=0.35,
                   patch_artist=True, manage_ticks=False, showfliers=False,
                   boxprops={'facecolor': 'white', 'edgecolor': 'black'},
                   medianprops={'color': 'black'})

        ax.set_yticks(positions)
        ax.set_yticklabels(top['variable'])
        ax.set_title(label)
        ax.set_xlabel('One minus AUC loss after permutations')

    fig.tight_layout()
    return fig


def plot_pdp(*profiles: pd.DataFrame):
    """Partial dependence profiles faceted by variable, one line per model."""
    df = pd.concat(profiles, ignore_index=True)
    variables = list(dict.fromkeys(df['_vname_']))
    labels = list(dict.fromkeys(df['_label_']))
    colors = _model_colors(labels)

    ncols = min(3, len(variables))
    nrows = int(np.ceil(len(variables) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(5 * ncols, 4 * nrows), squeeze=False)

    for ax, variable in zip(axes.ravel(), variables):
        subset = df[df['_vname_'] == variable]
        for label in labels:
            line = subset[subset['_label_'] == label]
            ax.plot(line['_x_'], line['_yhat_'], color=colors[label], linewidth=1.2, alpha=0.8, label=label)
        ax.set_title(variable)
        ax.set_ylabel('Average prediction')

    for ax in axes.ravel()[len(variables):]:
        ax.set_visible(False)

    handles, legend_labels = axes[0][0].get_legend_handles_labels()
    fig.legend(handles, legend_labels, title='Model', loc='lower center', ncol=len(labels))
    fig.tight_layout(rect=(0, 0.08, 1, 1))
    return fig


def plot_roc_curves(curves: pd.DataFrame):
    """ROC curves of several models on the test set."""
    labels = list(dict.fromkeys(curves['model']))
    colors = _model_colors(labels)

    fig, ax = plt.subplots(figsize=(6, 6))
    for label in labels:
        curve = curves[curves['model'] == label]
        ax.plot(curve['false_positive_rate'], curve['true_positive_rate'], color=colors[label], label=label)
    ax.plot([0, 1], [0, 1], linestyle='--', color='grey')
    ax.set_xlabel('1 - specificity')
    ax.set_ylabel('Sensitivity')
    ax.legend(title='Model')
    fig.tight_layout()
    return fig
