"""
Synthetic International Stroke Trial data generator.

The IST export is not redistributed with this project. This module writes a
CSV with the same column names and code sets, including the quirks the
normalizer has to deal with: pilot-phase rows without ``RATRIAL``, the legacy
heparin code ``H``, missing six-month outcomes and a few extra columns that
are not used downstream. The outcome depends on age, consciousness, deficits
and treatment so that models have some signal to learn.
"""

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STROKE_SUBTYPES = ['TACS', 'PACS', 'POCS', 'LACS', 'OTH']

class TrialDataGenerator:
    """Generate synthetic raw IST records."""

    def __init__(self, seed: int = 42, missing_value_rates: Optional[Dict[str, float]] = None):
        """Initialize the generator with a random seed and missing value configuration.

        Args:
            seed: Random seed for reproducibility
            missing_value_rates: Dict of column -> fraction of values blanked out.
                Default: {'RVISINF': 0.02, 'RSBP': 0.0}
        """
        self.seed = seed
        self.random = np.random.RandomState(seed)
        self.missing_value_rates = missing_value_rates or {
            'RVISINF': 0.02,
            'RSBP': 0.0,
        }

    def _yes_no(self, n: int, p_yes: float) -> np.ndarray:
        return self.random.choice(['Y', 'N'], size=n, p=[p_yes, 1 - p_yes])

    def generate_dataset(self, num_patients: int,
                         pilot_fraction: float = 0.05,
                         missing_outcome_rate: float = 0.02,
                         legacy_heparin_rate: float = 0.02,
                         unknown_outcome_rate: float = 0.0) -> pd.DataFrame:
        """
        Generate raw trial records.

        Args:
            num_patients: Number of rows
            pilot_fraction: Fraction of rows with missing RATRIAL (pilot phase)
            missing_outcome_rate: Fraction of rows with missing OCCODE
            legacy_heparin_rate: Fraction of heparin allocations coded 'H'
            unknown_outcome_rate: Fraction of rows with an out-of-domain OCCODE (9)

        Returns:
            DataFrame in the column layout of the trial export
        """
        n = num_patients
        rnd = self.random

        age = np.clip(rnd.normal(72, 11, n), 16, 99).round()
        rconsc = rnd.choice(['F', 'D', 'U'], size=n, p=[0.77, 0.21, 0.02])
        deficits = {f'RDEF{i}': rnd.choice(['Y', 'N', 'C'], size=n, p=[p, 0.95 - p, 0.05])
                    for i, p in enumerate([0.7, 0.85, 0.75, 0.45, 0.2, 0.25, 0.1, 0.1], 1)}

        rxasp = self._yes_no(n, 0.5)
        heparin_p_h = legacy_heparin_rate
        rxhep = rnd.choice(['N', 'L', 'M', 'H'], size=n,
                           p=[0.5, 0.25, 0.25 - heparin_p_h, heparin_p_h])

        df = pd.DataFrame({
            'HOSPNUM': rnd.randint(1, 400, n),
            'RDELAY': rnd.randint(1, 49, n),
            'RCONSC': rconsc,
            'SEX': rnd.choice(['M', 'F'], size=n, p=[0.54, 0.46]),
            'AGE': age.astype(int),
            'RSLEEP': self._yes_no(n, 0.29),
            'RATRIAL': self._yes_no(n, 0.17).astype(object),
            'RCT': self._yes_no(n, 0.67),
            'RVISINF': self._yes_no(n, 0.32).astype(object),
            'RHEP24': self._yes_no(n, 0.03),
            'RASP3': self._yes_no(n, 0.2),
            'RSBP': np.clip(rnd.normal(160, 27, n), 70, 290).round(),
            **deficits,
            'STYPE': rnd.choice(STROKE_SUBTYPES, size=n, p=[0.23, 0.4, 0.11, 0.24, 0.02]),
            'RDATE': rnd.choice(['Jan-93', 'Jun-94', 'Mar-95', 'Oct-96'], size=n),
            'RXASP': rxasp,
            'RXHEP': rxhep,
        })

        df['OCCODE'] = self._generate_outcome(df)

        df.loc[rnd.random_sample(n) < pilot_fraction, 'RATRIAL'] = np.nan
        df.loc[rnd.random_sample(n) < missing_outcome_rate, 'OCCODE'] = pd.NA
        if unknown_outcome_rate:
            df.loc[rnd.random_sample(n) < unknown_outcome_rate, 'OCCODE'] = 9

        for col, rate in self.missing_value_rates.items():
            if rate > 0 and col in df.columns:
                df[col] = df[col].astype(object)
                df.loc[rnd.random_sample(n) < rate, col] = np.nan

        df['CNTRYNUM'] = rnd.randint(1, 37, n)

        logger.info(f"Generated {len(df)} synthetic trial records "
                    f"({df['RATRIAL'].isna().sum()} pilot-phase, {df['OCCODE'].isna().sum()} without outcome)")
        return df

    def _generate_outcome(self, df: pd.DataFrame) -> pd.Series:
        """Six-month outcome code (1-4) from a logistic risk model."""
        logit = (
            -0.8
            + 0.06 * (df['AGE'] - 72)
            + np.where(df['RCONSC'] == 'D', 1.4, 0.0)
            + np.where(df['RCONSC'] == 'U', 3.0, 0.0)
            + np.where(df['RDEF2'] == 'Y', 0.7, 0.0)
            + np.where(df['RDEF4'] == 'Y', 0.5, 0.0)
            + np.where(df['STYPE'] == 'TACS', 1.0, 0.0)
            + np.where(df['STYPE'] == 'LACS', -0.5, 0.0)
            - np.where(df['RXASP'] == 'Y', 0.1, 0.0)
        )
        p_poor = 1 / (1 + np.exp(-logit))
        poor = self.random.random_sample(len(df)) < p_poor

        # poor -> dead (1) or dependent (2), good -> not recovered (3) or recovered (4)
        dead = self.random.random_sample(len(df)) < 0.35
        recovered = self.random.random_sample(len(df)) < 0.4
        codes = np.where(poor, np.where(dead, 1, 2), np.where(recovered, 4, 3))
        return pd.Series(codes, index=df.index, dtype='Int64')

    def generate_and_save(self, num_patients: int, output_path: str, **kwargs) -> Path:
        """Generate records and write them as a CSV export."""
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        df = self.generate_dataset(num_patients, **kwargs)
        df.to_csv(out, index=False)
        logger.info(f"Synthetic trial data saved to {out}")
        return out

def main():
    """Main function for command line usage."""
    parser = argparse.ArgumentParser(description="Generate synthetic International Stroke Trial data")
    parser.add_argument("--num_patients", type=int, default=5000, help="Number of patients")
    parser.add_argument("--output", type=str, default="data/IST_corrected.csv", help="Output CSV path")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--pilot_fraction", type=float, default=0.05, help="Fraction of pilot-phase rows")
    args = parser.parse_args()

    generator = TrialDataGenerator(seed=args.seed)
    generator.generate_and_save(args.num_patients, args.output, pilot_fraction=args.pilot_fraction)

if __name__ == "__main__":
    main()
