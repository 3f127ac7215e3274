"""
Descriptive statistics tables and the exploratory data report.

``summary_table`` mirrors the usual "Table 1" layout of a trial report:
numeric variables as median (Q1, Q3), categorical variables as n (%) per
level, with one column per treatment arm plus an overall column.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)

OVERALL = 'Overall'
UNKNOWN = 'Unknown'


def _is_numeric(series: pd.Series) -> bool:
    return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)


def _levels(series: pd.Series) -> List:
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)
    return sorted(series.dropna().unique())


def _format_continuous(series: pd.Series) -> str:
    values = series.dropna()
    if values.empty:
        return ''
    q1, median, q3 = values.quantile([0.25, 0.5, 0.75])
    return f"{median:.1f} ({q1:.1f}, {q3:.1f})"


def _format_level(series: pd.Series, level) -> str:
    observed = series.dropna()
    count = int((observed == level).sum())
    pct = 100 * count / len(observed) if len(observed) else 0.0
    return f"{count} ({pct:.1f}%)"


def summary_table(df: pd.DataFrame, by: str = 'treatment',
                  labels: Optional[Dict[str, str]] = None,
                  variables: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Summary statistics per group of ``by`` plus an overall column.

    Args:
        df: Normalized trial records
        by: Grouping column (treatment arm by default)
        labels: Optional variable -> label mapping
        variables: Variables to summarise (all but ``by`` when omitted)

    Returns:
        Table with ``variable``, ``label``, ``level`` and one column per group
    """
    start_time = time.time()
    labels = labels or {}
    variables = list(variables) if variables is not None else [c for c in df.columns if c != by]
    groups = _levels(df[by])

    subsets = [(str(group), df[df[by] == group]) for group in groups] + [(OVERALL, df)]

    rows = [{'variable': 'N', 'label': 'N', 'level': '',
             **{name: str(len(subset)) for name, subset in subsets}}]

    for variable in variables:
        label = labels.get(variable, variable)
        column = df[variable]

        if _is_numeric(column):
            rows.append({'variable': variable, 'label': label, 'level': 'Median (Q1, Q3)',
                         **{name: _format_continuous(subset[variable]) for name, subset in subsets}})
        else:
            for level in _levels(column):
                rows.append({'variable': variable, 'label': label, 'level': str(level),
                             **{name: _format_level(subset[variable], level) for name, subset in subsets}})

        if column.isna().any():
            rows.append({'variable': variable, 'label': label, 'level': UNKNOWN,
                         **{name: str(int(subset[variable].isna().sum())) for name, subset in subsets}})

    table = pd.DataFrame(rows, columns=['variable', 'label', 'level'] + [name for name, _ in subsets])

    elapsed_time = time.time() - start_time
    logger.info(f"Built summary table for {len(variables)} variables by {by} in {elapsed_time:.2f} seconds")
    return table


def outcome_by_treatment(df: pd.DataFrame, treatment_col: str = 'treatment',
                         outcome_col: str = 'dead_or_dep') -> pd.DataFrame:
    """Number of patients and dead-or-dependent proportion per treatment arm."""
    is_yes = (df[outcome_col] == 'yes').astype(int)
    table = is_yes.groupby(df[treatment_col], observed=False).agg(['size', 'sum'])
    table.columns = ['n', 'dead_or_dep_yes']
    table['proportion_yes'] = table['dead_or_dep_yes'] / table['n'].replace(0, np.nan)
    table.index = table.index.astype(str)
    table.index.name = treatment_col
    return table.reset_index()


def eda_report(df: pd.DataFrame, columns: Sequence[str],
               sample_percent: float = 10,
               random_state: int = 42) -> pd.DataFrame:
    """
    Univariate statistics on a random sample of the exploratory frame.

    Numeric columns get location/spread/shape statistics and a Shapiro-Wilk
    normality p-value; categorical columns get their level counts.
    """
    sample = df[list(columns)].sample(frac=sample_percent / 100, random_state=random_state)
    logger.info(f"EDA report on {len(sample)} of {len(df)} records ({sample_percent}% sample)")

    rows = []
    for col in columns:
        series = sample[col]
        observed = series.dropna()
        row = {'variable': col, 'n': int(observed.size), 'missing': int(series.isna().sum())}

        if _is_numeric(series):
            row.update({
                'mean': observed.mean(),
                'sd': observed.std(),
                'min': observed.min(),
                'q1': observed.quantile(0.25),
                'median': observed.median(),
                'q3': observed.quantile(0.75),
                'max': observed.max(),
                'skewness': observed.skew(),
                'kurtosis': observed.kurt(),
                'shapiro_p_value': stats.shapiro(observed).pvalue if 3 <= observed.size <= 5000 else np.nan,
            })
        else:
            counts = observed.astype(str).value_counts()
            row['levels'] = ', '.join(f"{level}: {count}" for level, count in counts.items())

        rows.append(row)

    return pd.DataFrame(rows)


def write_table(table: pd.DataFrame, out_dir: Path, name: str,
                title: Optional[str] = None, subtitle: Optional[str] = None) -> Dict[str, Path]:
    """Write a table as CSV and a plain HTML page."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    csv_path = out / f"{name}.csv"
    html_path = out / f"{name}.html"
    table.to_csv(csv_path, index=False)

    header = f"<h1>{title or name}</h1>\n"
    if subtitle:
        header += f"<h2>{subtitle}</h2>\n"
    html_path.write_text(
        f"<html><body>\n{header}{table.to_html(index=False, na_rep='')}\n</body></html>\n",
        encoding='utf-8'
    )
    logger.info(f"Wrote {name} to {csv_path} and {html_path}")
    return {'csv': csv_path, 'html': html_path}
