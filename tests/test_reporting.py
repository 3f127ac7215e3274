"""
Tests for descriptive tables, the EDA report and the preparation entrypoint.
"""

import pytest
import pandas as pd
import numpy as np

from ist_stroke.pipeline.labels import labels_for
from ist_stroke.pipeline.normalizer import TREATMENT_LEVELS, normalize_frame_for_eda
from ist_stroke.pipeline.prepare_data import run_preparation
from ist_stroke.reporting import eda_report, outcome_by_treatment, summary_table, write_table


@pytest.fixture
def small_frame():
    return pd.DataFrame({
        'AGE': [60.0, 70.0, 80.0, 90.0],
        'SEX': pd.Categorical(['M', 'F', 'M', None]),
        'group': pd.Categorical(['a', 'a', 'b', 'b']),
    })


class TestSummaryTable:
    """Test the baseline characteristics table."""

    def test_layout(self, small_frame):
        table = summary_table(small_frame, by='group', labels={'AGE': 'Age (years)'})

        assert list(table.columns) == ['variable', 'label', 'level', 'a', 'b', 'Overall']
        assert table.iloc[0]['variable'] == 'N'
        assert table.iloc[0][['a', 'b', 'Overall']].tolist() == ['2', '2', '4']

    def test_numeric_rows(self, small_frame):
        table = summary_table(small_frame, by='group')
        age = table[table['variable'] == 'AGE'].iloc[0]

        assert age['level'] == 'Median (Q1, Q3)'
        assert age['a'] == '65.0 (62.5, 67.5)'
        assert age['Overall'] == '75.0 (67.5, 82.5)'

    def test_categorical_rows_and_unknown(self, small_frame):
        table = summary_table(small_frame, by='group', labels={'SEX': 'Sex'})
        sex = table[table['variable'] == 'SEX'].set_index('level')

        assert list(sex.index) == ['F', 'M', 'Unknown']
        assert (sex['label'] == 'Sex').all()
        assert sex.loc['M', 'b'] == '1 (100.0%)'
        assert sex.loc['M', 'Overall'] == '2 (66.7%)'
        assert sex.loc['Unknown', 'b'] == '1'

    def test_by_treatment(self, normalized_data):
        table = summary_table(normalized_data, labels=labels_for(normalized_data.columns))

        assert list(table.columns[3:-1]) == TREATMENT_LEVELS
        assert 'treatment' not in set(table['variable'])
        n_row = table.iloc[0]
        assert int(n_row['Overall']) == len(normalized_data)
        assert sum(int(n_row[arm]) for arm in TREATMENT_LEVELS) == len(normalized_data)
        assert 'Age (years)' in set(table['label'])


class TestOutcomeByTreatment:
    """Test the outcome proportion table."""

    def test_counts(self, normalized_data):
        table = outcome_by_treatment(normalized_data)

        assert table['treatment'].tolist() == TREATMENT_LEVELS
        assert table['n'].sum() == len(normalized_data)
        assert table['dead_or_dep_yes'].sum() == (normalized_data['dead_or_dep'] == 'yes').sum()
        assert table['proportion_yes'].between(0, 1).all()

    def test_empty_arm(self):
        df = pd.DataFrame({
            'treatment': pd.Categorical(['no_asp_no_hep', 'no_asp_no_hep'], categories=TREATMENT_LEVELS),
            'dead_or_dep': pd.Categorical(['yes', 'no'], categories=['no', 'yes']),
        })
        table = outcome_by_treatment(df).set_index('treatment')

        assert table.loc['no_asp_no_hep', 'proportion_yes'] == 0.5
        assert table.loc['yes_asp_med_hep', 'n'] == 0
        assert np.isnan(table.loc['yes_asp_med_hep', 'proportion_yes'])


class TestEdaReport:
    """Test the exploratory data report."""

    def test_sample_and_statistics(self, raw_trial_data):
        eda = normalize_frame_for_eda(raw_trial_data)
        report = eda_report(eda, ['RDELAY', 'RSBP', 'RDEF1'], sample_percent=10)

        assert report['variable'].tolist() == ['RDELAY', 'RSBP', 'RDEF1']
        assert (report['n'] + report['missing'] == round(0.1 * len(eda))).all()
        rsbp = report.set_index('variable').loc['RSBP']
        assert rsbp['min'] <= rsbp['median'] <= rsbp['max']
        assert 0.0 <= rsbp['shapiro_p_value'] <= 1.0
        assert 'Y:' in report.set_index('variable').loc['RDEF1', 'levels']

    def test_deterministic(self, raw_trial_data):
        eda = normalize_frame_for_eda(raw_trial_data)
        pd.testing.assert_frame_equal(eda_report(eda, ['AGE'], random_state=1),
                                      eda_report(eda, ['AGE'], random_state=1))


class TestWriteTable:
    """Test CSV/HTML output."""

    def test_write(self, small_frame, temp_directory):
        paths = write_table(small_frame, temp_directory / "tables", "demo", title="Demo", subtitle="Sub")

        assert paths['csv'].exists()
        html = paths['html'].read_text(encoding='utf-8')
        assert '<h1>Demo</h1>' in html
        assert '<h2>Sub</h2>' in html
        assert '<table' in html


class TestRunPreparation:
    """Test the data preparation entrypoint."""

    def test_artifacts(self, raw_trial_csv, temp_directory):
        artifacts = run_preparation(str(raw_trial_csv), str(temp_directory / "reports"))

        for name in ['normalized', 'summary_csv', 'summary_html', 'outcome_csv', 'eda_csv', 'eda_html']:
            assert artifacts[name].exists()

        cached = pd.read_parquet(artifacts['normalized'])
        assert cached['RATRIAL'].notna().all()

        eda = pd.read_csv(artifacts['eda_csv'])
        assert eda['variable'].tolist() == ['RDELAY', 'RSBP'] + [f'RDEF{i}' for i in range(1, 9)]

    def test_missing_file(self, temp_directory):
        with pytest.raises(FileNotFoundError):
            run_preparation(str(temp_directory / "absent.csv"), str(temp_directory / "reports"))
