"""
Trial record normalization for the International Stroke Trial (IST) data.

Turns raw per-patient trial rows into the smaller, re-coded and filtered
record set used by the descriptive tables and the model training workflow:

1. project the source columns of interest
2. collapse the legacy heparin code ``H`` into ``M``
3. derive the aspirin x heparin ``treatment`` arm
4. recode the six-month outcome (``OCCODE``)
5. derive the binary ``dead_or_dep`` outcome
6. coerce text fields to categoricals (frame adapter only)
7. drop pilot-phase rows, rows without an outcome and rows without an arm

The record functions are pure and keep input order. ``normalize_frame`` is
the pandas adapter used by the rest of the package.
"""

import logging
import time
import warnings
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import CategoricalDtype

logger = logging.getLogger(__name__)

DEFICIT_FIELDS = [f'RDEF{i}' for i in range(1, 9)]

# Baseline covariates in source column order (RDELAY through STYPE)
BASELINE_FIELDS = [
    'RDELAY', 'RCONSC', 'SEX', 'AGE', 'RSLEEP', 'RATRIAL', 'RCT', 'RVISINF',
    'RHEP24', 'RASP3', 'RSBP', *DEFICIT_FIELDS, 'STYPE'
]
ALLOCATION_FIELDS = ['RXASP', 'RXHEP']
OUTCOME_FIELD = 'OCCODE'
SOURCE_FIELDS = BASELINE_FIELDS + ALLOCATION_FIELDS + [OUTCOME_FIELD]
NUMERIC_FIELDS = ['RDELAY', 'AGE', 'RSBP']

ASPIRIN_CODES = ('N', 'Y')
HEPARIN_CODES = ('N', 'L', 'M', 'H')
HEPARIN_COLLAPSE = {'H': 'M'}

TREATMENT_ARMS = {
    ('N', 'N'): 'no_asp_no_hep',
    ('N', 'L'): 'no_asp_low_hep',
    ('N', 'M'): 'no_asp_med_hep',
    ('Y', 'N'): 'yes_asp_no_hep',
    ('Y', 'L'): 'yes_asp_low_hep',
    ('Y', 'M'): 'yes_asp_med_hep',
}
# Reference arm first, aspirin-only arm right after the three no-aspirin arms
TREATMENT_LEVELS = [
    'no_asp_no_hep', 'no_asp_low_hep', 'no_asp_med_hep',
    'yes_asp_no_hep', 'yes_asp_low_hep', 'yes_asp_med_hep',
]

MISSING = 'missing'
OUTCOME_LEVELS = {1: 'dead', 2: 'dependent', 3: 'not_recovered', 4: 'recovered'}
DEAD_OR_DEP = {
    'dead': 'yes',
    'dependent': 'yes',
    'not_recovered': 'no',
    'recovered': 'no',
}
DEAD_OR_DEP_LEVELS = ['no', 'yes']

NORMALIZED_FIELDS = BASELINE_FIELDS + ['treatment', 'dead_or_dep']
EDA_FIELDS = BASELINE_FIELDS + ALLOCATION_FIELDS + [OUTCOME_FIELD, 'treatment']

TREATMENT_DTYPE = CategoricalDtype(categories=TREATMENT_LEVELS)
DEAD_OR_DEP_DTYPE = CategoricalDtype(categories=DEAD_OR_DEP_LEVELS)


class SchemaError(ValueError):
    """Raised when input records lack one of the required source fields."""


class UnmappedValueWarning(UserWarning):
    """A categorical value outside its documented domain was coerced."""


def is_missing(value: Any) -> bool:
    """True for None and the pandas/numpy missing markers (NaN, NA, NaT)."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _clean(value: Any) -> Any:
    """Map missing markers to None and numpy scalars to builtins."""
    if is_missing(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def collapse_heparin(code: Any) -> Any:
    """Merge the legacy heparin code ``H`` into ``M``; other codes pass through."""
    if is_missing(code):
        return None
    return HEPARIN_COLLAPSE.get(code, code)


def derive_treatment(aspirin: Any, heparin: Any) -> Optional[str]:
    """Treatment arm for an aspirin code and an already collapsed heparin code."""
    if is_missing(aspirin) or is_missing(heparin):
        return None
    return TREATMENT_ARMS.get((aspirin, heparin))


def _parse_outcome_code(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    return int(number)


def recode_outcome(occode: Any) -> str:
    """Six-month outcome label for a numeric ``OCCODE`` (``missing`` otherwise)."""
    if is_missing(occode):
        return MISSING
    return OUTCOME_LEVELS.get(_parse_outcome_code(occode), MISSING)


def derive_dead_or_dep(outcome: str) -> str:
    """Collapse the four-level outcome into ``yes``/``no``/``missing``."""
    return DEAD_OR_DEP.get(outcome, MISSING)


def check_schema(records: Sequence[Mapping[str, Any]]) -> None:
    """Raise SchemaError if any record lacks a required source field."""
    problems = []
    for position, record in enumerate(records):
        absent = [field for field in SOURCE_FIELDS if field not in record]
        if absent:
            problems.append((position, absent))

    if problems:
        position, absent = problems[0]
        raise SchemaError(
            f"{len(problems)} record(s) missing required fields; "
            f"first at position {position}: {absent}"
        )


def check_frame_schema(df: pd.DataFrame) -> None:
    """Raise SchemaError if the frame lacks a required source column."""
    absent = [field for field in SOURCE_FIELDS if field not in df.columns]
    if absent:
        raise SchemaError(f"Input data is missing required columns: {absent}")


def _collect_unmapped(row: Dict[str, Any], unmapped: Dict[str, Counter]) -> None:
    aspirin = row['RXASP']
    if not is_missing(aspirin) and aspirin not in ASPIRIN_CODES:
        unmapped['RXASP'][str(aspirin)] += 1

    heparin = row['RXHEP']
    if not is_missing(heparin) and heparin not in HEPARIN_CODES:
        unmapped['RXHEP'][str(heparin)] += 1

    occode = row[OUTCOME_FIELD]
    if not is_missing(occode) and _parse_outcome_code(occode) not in OUTCOME_LEVELS:
        unmapped[OUTCOME_FIELD][str(occode)] += 1


def _warn_unmapped(unmapped: Dict[str, Counter]) -> None:
    for field in sorted(unmapped):
        counts = dict(unmapped[field])
        action = 'passed through' if field == 'RXHEP' else 'treated as missing'
        warnings.warn(
            f"{field}: {sum(counts.values())} value(s) outside the documented "
            f"domain were {action}: {counts}",
            UnmappedValueWarning,
            stacklevel=3,
        )


def _project_and_derive_arm(record: Mapping[str, Any],
                            unmapped: Dict[str, Counter]) -> Dict[str, Any]:
    """Steps 1-3: projection, heparin collapse and treatment arm."""
    row = {field: _clean(record[field]) for field in SOURCE_FIELDS}
    _collect_unmapped(row, unmapped)
    row['RXHEP'] = collapse_heparin(row['RXHEP'])
    row['treatment'] = derive_treatment(row['RXASP'], row['RXHEP'])
    return row


def _recode(record: Mapping[str, Any], unmapped: Dict[str, Counter]) -> Dict[str, Any]:
    """Steps 1-5, with the superseded allocation and outcome fields dropped."""
    row = _project_and_derive_arm(record, unmapped)
    outcome = recode_outcome(row[OUTCOME_FIELD])
    row['dead_or_dep'] = derive_dead_or_dep(outcome)
    return {field: row[field] for field in NORMALIZED_FIELDS}


def exclusion_reason(row: Mapping[str, Any]) -> Optional[str]:
    """Why a recoded row is filtered out, or None if it is kept."""
    if is_missing(row['RATRIAL']):
        return 'pilot_phase'
    if row['dead_or_dep'] == MISSING:
        return 'missing_outcome'
    if row['treatment'] is None:
        return 'missing_treatment'
    return None


def normalize(records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Normalize raw trial records.

    Args:
        records: Raw patient records keyed by source column name

    Returns:
        Normalized records (``NORMALIZED_FIELDS``) in input order, with
        pilot-phase rows and rows lacking an outcome or treatment arm removed

    Raises:
        SchemaError: If any record lacks a required source field
    """
    start_time = time.time()
    records = list(records)
    check_schema(records)

    unmapped: Dict[str, Counter] = defaultdict(Counter)
    excluded: Counter = Counter()
    normalized = []
    for record in records:
        row = _recode(record, unmapped)
        reason = exclusion_reason(row)
        if reason:
            excluded[reason] += 1
        else:
            normalized.append(row)

    _warn_unmapped(unmapped)

    elapsed_time = time.time() - start_time
    logger.info(f"Normalized {len(records)} trial records -> {len(normalized)} kept "
                f"(excluded: {dict(excluded)}) in {elapsed_time:.2f} seconds")
    return normalized


def normalize_record(record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Normalize a single record; None when the record is filtered out."""
    check_schema([record])
    unmapped: Dict[str, Counter] = defaultdict(Counter)
    row = _recode(record, unmapped)
    _warn_unmapped(unmapped)
    return None if exclusion_reason(row) else row


def normalize_for_eda(records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Projection, heparin collapse and treatment arm only.

    No outcome recoding and no filtering, so the full record count is kept
    for exploratory sampling. Allocation and raw outcome fields are retained.
    """
    records = list(records)
    check_schema(records)

    unmapped: Dict[str, Counter] = defaultdict(Counter)
    rows = []
    for record in records:
        row = _project_and_derive_arm(record, unmapped)
        rows.append({field: row[field] for field in EDA_FIELDS})

    _warn_unmapped(unmapped)
    logger.info(f"Prepared {len(rows)} trial records for exploratory analysis")
    return rows


def coerce_categoricals(df: pd.DataFrame) -> pd.DataFrame:
    """
    Turn text fields into categoricals so repeated values share a category.

    ``treatment`` and ``dead_or_dep`` get their fixed level orderings; other
    text fields use the sorted set of observed values.
    """
    coerced = df.copy()
    for col in coerced.columns:
        if col == 'treatment':
            coerced[col] = coerced[col].astype(object).astype(TREATMENT_DTYPE)
        elif col == 'dead_or_dep':
            coerced[col] = coerced[col].astype(object).astype(DEAD_OR_DEP_DTYPE)
        elif col in NUMERIC_FIELDS or col == OUTCOME_FIELD:
            coerced[col] = pd.to_numeric(coerced[col], errors='coerce')
        elif not pd.api.types.is_numeric_dtype(coerced[col]):
            coerced[col] = coerced[col].astype('category')
    return coerced


def _source_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    check_frame_schema(df)
    return df[SOURCE_FIELDS].to_dict('records')


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Apply :func:`normalize` to a raw frame and coerce categoricals."""
    normalized = normalize(_source_records(df))
    return coerce_categoricals(pd.DataFrame(normalized, columns=NORMALIZED_FIELDS))


def normalize_frame_for_eda(df: pd.DataFrame) -> pd.DataFrame:
    """Apply :func:`normalize_for_eda` to a raw frame and coerce categoricals."""
    rows = normalize_for_eda(_source_records(df))
    return coerce_categoricals(pd.DataFrame(rows, columns=EDA_FIELDS))
