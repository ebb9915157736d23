"""Tests for sample size planning."""
import pytest
from src.abtesting.stats.power import sample_size_proportion


def test_sample_size_reasonable():
    """10% baseline, +20% relative lift needs a few thousand per variant."""
    n = sample_size_proportion(0.10, 0.20)
    assert 3000 < n < 5000


def test_sample_size_shrinks_with_effect():
    """Bigger effects need fewer impressions."""
    assert sample_size_proportion(0.10, 0.50) < sample_size_proportion(0.10, 0.20)


def test_sample_size_stricter_alpha():
    """Lower alpha needs more impressions."""
    assert sample_size_proportion(0.10, 0.20, alpha=0.01) > sample_size_proportion(0.10, 0.20, alpha=0.05)


def test_sample_size_invalid_inputs():
    with pytest.raises(ValueError):
        sample_size_proportion(0.0, 0.2)
    with pytest.raises(ValueError):
        sample_size_proportion(0.1, 0.0)
