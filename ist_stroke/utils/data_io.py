"""
Reading the raw trial export and caching the normalized record set.
"""

import logging
import time
from pathlib import Path
from typing import Union

import pandas as pd

from ist_stroke.pipeline.normalizer import coerce_categoricals

logger = logging.getLogger(__name__)

# Strings the trial export uses for "no value"
NA_STRINGS = ['', 'NA']

PathLike = Union[str, Path]


def load_raw_trial_data(data_path: PathLike) -> pd.DataFrame:
    """Load the raw IST export (CSV) with explicit missing-value strings."""
    start_time = time.time()
    p = Path(data_path)
    logger.info(f"Loading raw trial data from {p}")

    if not p.exists():
        raise FileNotFoundError(f"Raw data file not found: {p}")

    df = pd.read_csv(p, na_values=NA_STRINGS, keep_default_na=False, low_memory=False)

    elapsed_time = time.time() - start_time
    logger.info(f"Loaded raw data shape: {df.shape} in {elapsed_time:.2f} seconds")
    return df


def save_normalized(df: pd.DataFrame, output_path: PathLike) -> Path:
    """Write the normalized record set as a flat parquet or CSV file."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    if out.suffix.lower() == '.csv':
        df.to_csv(out, index=False)
    else:
        df.to_parquet(out, index=False)

    logger.info(f"Saved {len(df)} normalized records to {out}")
    return out


def load_normalized(input_path: PathLike) -> pd.DataFrame:
    """Read a cached normalized record set and restore categorical levels."""
    p = Path(input_path)
    if p.suffix.lower() == '.csv':
        df = pd.read_csv(p, na_values=NA_STRINGS, keep_default_na=False)
    else:
        df = pd.read_parquet(p)

    logger.info(f"Loaded normalized data shape: {df.shape} from {p}")
    return coerce_categoricals(df)
