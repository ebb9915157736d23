"""Tests for SRM chi-square."""
import pytest
from src.abtesting.stats.srm import srm_chi_square, check_srm


def test_srm_perfect_balance():
    """500/500 should pass SRM."""
    passed, _, p = check_srm([500, 500])
    assert passed
    assert p > 0.9


def test_srm_extreme_imbalance():
    """900/100 should fail SRM."""
    passed, _, p = check_srm([900, 100])
    assert not passed
    assert p < 0.01


def test_srm_respects_weights():
    """750/250 matches a 3:1 allocation."""
    passed, _, p = check_srm([750, 250], weights=[3, 1])
    assert passed
    assert p > 0.9


def test_srm_three_arms():
    """400/300/300 under equal weights is a mismatch."""
    passed, chi2, _ = check_srm([400, 300, 300])
    assert chi2 == pytest.approx(20.0)
    assert not passed


def test_srm_chi_square_output():
    """Chi-square returns (stat, pvalue); empty input is neutral."""
    chi2, p = srm_chi_square([50, 50])
    assert chi2 >= 0
    assert 0 <= p <= 1
    assert srm_chi_square([0, 0]) == (0.0, 1.0)
