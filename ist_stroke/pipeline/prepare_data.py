"""
Data preparation entrypoint.

Loads the raw IST export, normalizes it, caches the analysis record set and
writes the descriptive tables and the exploratory data report.
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict, Optional

import yaml

from ist_stroke.pipeline.labels import labels_for
from ist_stroke.pipeline.normalizer import DEFICIT_FIELDS, normalize_frame, normalize_frame_for_eda
from ist_stroke.reporting import eda_report, outcome_by_treatment, summary_table, write_table
from ist_stroke.utils.data_io import load_raw_trial_data, save_normalized

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_EDA_COLUMNS = ['RDELAY', 'RSBP'] + DEFICIT_FIELDS


def run_preparation(data_path: str, output_dir: str, config: Optional[Dict] = None) -> Dict[str, Path]:
    """
    Normalize the raw export and write the reporting artifacts.

    Args:
        data_path: Raw IST CSV export
        output_dir: Directory for the cache and the tables
        config: Optional configuration (``reporting`` and ``random_seed`` keys)

    Returns:
        Mapping of artifact name to written path
    """
    start_time = time.time()
    config = config or {}
    report_cfg = config.get('reporting', {})
    seed = int(config.get('random_seed', 42))
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    raw = load_raw_trial_data(data_path)
    clean = normalize_frame(raw)

    artifacts: Dict[str, Path] = {}
    artifacts['normalized'] = save_normalized(clean, out / report_cfg.get('cache_name', 'ist_clean.parquet'))

    summary = summary_table(clean, by='treatment', labels=labels_for(clean.columns))
    paths = write_table(summary, out, 'summary_by_treatment',
                        title='Baseline characteristics by treatment arm',
                        subtitle='International Stroke Trial')
    artifacts['summary_csv'], artifacts['summary_html'] = paths['csv'], paths['html']

    outcome = outcome_by_treatment(clean)
    paths = write_table(outcome, out, 'outcome_by_treatment',
                        title='Dead or dependent at six months by treatment arm')
    artifacts['outcome_csv'], artifacts['outcome_html'] = paths['csv'], paths['html']

    eda = normalize_frame_for_eda(raw)
    report = eda_report(eda, report_cfg.get('eda_columns', DEFAULT_EDA_COLUMNS),
                        sample_percent=report_cfg.get('sample_percent', 10),
                        random_state=seed)
    paths = write_table(report, out, 'eda_report', title='Exploratory data report',
                        subtitle=f"{report_cfg.get('sample_percent', 10)}% random sample")
    artifacts['eda_csv'], artifacts['eda_html'] = paths['csv'], paths['html']

    elapsed_time = time.time() - start_time
    logger.info(f"Data preparation finished in {elapsed_time:.2f} seconds: "
                f"{len(raw)} raw records, {len(clean)} analysis records")
    return artifacts


def main():
    """Main function for command line usage."""
    parser = argparse.ArgumentParser(description="Normalize the IST export and write descriptive reports")
    parser.add_argument("--data", type=str, required=True, help="Path to the raw IST CSV export")
    parser.add_argument("--output", type=str, default="./reports", help="Output directory")
    parser.add_argument("--config", type=str, default=None, help="Optional YAML configuration file")
    args = parser.parse_args()

    config = {}
    if args.config:
        with open(args.config, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    artifacts = run_preparation(args.data, args.output, config)
    print("Preparation completed! Artifacts in:", args.output)
    for name, path in artifacts.items():
        print(f"  {name}: {path}")


if __name__ == "__main__":
    main()
