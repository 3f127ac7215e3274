"""Synthetic trial data for demos and tests."""

from .generate_trial_data import TrialDataGenerator

__all__ = ['TrialDataGenerator']
