"""Experiment statistics module."""

from .srm import srm_chi_square, check_srm
from .power import sample_size_proportion
from .hypothesis_tests import proportions_z_test, rate_interval

__all__ = [
    "srm_chi_square",
    "check_srm",
    "sample_size_proportion",
    "proportions_z_test",
    "rate_interval",
]
