"""
Human-readable variable labels for report rendering.

Keys must track the fields emitted by the normalizer (``NORMALIZED_FIELDS``
and ``EDA_FIELDS``).
"""

from typing import Dict, Iterable

from .normalizer import EDA_FIELDS

VARIABLE_LABELS: Dict[str, str] = {
    'RDELAY': 'Delay between stroke and randomisation (hours)',
    'RCONSC': 'Conscious state at randomisation',
    'SEX': 'Sex',
    'AGE': 'Age (years)',
    'RSLEEP': 'Symptoms noted on waking',
    'RATRIAL': 'Atrial fibrillation',
    'RCT': 'CT before randomisation',
    'RVISINF': 'Infarct visible on CT',
    'RHEP24': 'Heparin within 24 hours prior to randomisation',
    'RASP3': 'Aspirin within 3 days prior to randomisation',
    'RSBP': 'Systolic blood pressure at randomisation (mmHg)',
    'RDEF1': 'Face deficit',
    'RDEF2': 'Arm/hand deficit',
    'RDEF3': 'Leg/foot deficit',
    'RDEF4': 'Dysphasia',
    'RDEF5': 'Hemianopia',
    'RDEF6': 'Visuospatial disorder',
    'RDEF7': 'Brainstem/cerebellar signs',
    'RDEF8': 'Other deficit',
    'STYPE': 'Stroke subtype',
    'treatment': 'Treatment (aspirin x heparin dose)',
    'dead_or_dep': 'Dead or dependent at six months',
}

ALLOCATION_LABELS: Dict[str, str] = {
    'RXASP': 'Trial aspirin allocated',
    'RXHEP': 'Trial heparin allocated',
    'OCCODE': 'Six-month outcome',
}

# the EDA variant keeps the allocation fields and raw outcome but never emits dead_or_dep
EDA_LABELS: Dict[str, str] = {
    field: {**VARIABLE_LABELS, **ALLOCATION_LABELS}[field] for field in EDA_FIELDS
}


def labels_for(columns: Iterable[str], eda: bool = False) -> Dict[str, str]:
    """Labels for the given columns; KeyError lists any unlabelled column."""
    source = EDA_LABELS if eda else VARIABLE_LABELS
    columns = list(columns)
    unknown = [col for col in columns if col not in source]
    if unknown:
        raise KeyError(f"No variable label for: {unknown}")
    return {col: source[col] for col in columns}


def get_label(column: str) -> str:
    """Label for a single column, falling back to the column name."""
    return {**VARIABLE_LABELS, **EDA_LABELS}.get(column, column)
