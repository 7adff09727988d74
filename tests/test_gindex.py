"""Tests for strataplan.gindex."""

import numpy as np
import pytest

from strataplan.gindex import generalizability_index


class TestGeneralizabilityIndex:
    def test_identical_distributions(self):
        scores = np.linspace(0.05, 0.95, 200)
        assert generalizability_index(scores, scores) == pytest.approx(1.0)

    def test_disjoint_distributions(self):
        sample = np.full(50, 0.9)
        population = np.full(200, 0.1)
        assert generalizability_index(sample, population, bins=10) == pytest.approx(0.0)

    def test_partial_overlap_in_unit_interval(self):
        rng = np.random.RandomState(1)
        sample = rng.beta(5, 2, 100)
        population = rng.beta(2, 5, 1000)
        b = generalizability_index(sample, population)
        assert 0.0 < b < 1.0

    def test_constant_scores(self):
        assert generalizability_index([0.3, 0.3], [0.3, 0.3, 0.3]) == 1.0

    def test_nan_ignored(self):
        b = generalizability_index([0.2, np.nan, 0.8], [0.2, 0.8])
        assert b == pytest.approx(1.0)

    def test_empty_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            generalizability_index([], [0.5])

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            generalizability_index([1.2], [0.5])
