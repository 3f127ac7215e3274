"""Descriptive tables and exploratory reports."""

from .descriptive import summary_table, outcome_by_treatment, eda_report, write_table

__all__ = ['summary_table', 'outcome_by_treatment', 'eda_report', 'write_table']
