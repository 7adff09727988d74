"""Tests for strataplan.distance (Gower dissimilarity)."""

import numpy as np
import pandas as pd
import pytest

from strataplan.config import StratifyConfig
from strataplan.distance import gower_distance, gower_matrix
from strataplan.prepare import prepare_table


class TestGowerMatrix:
    def test_known_values(self):
        m = pd.DataFrame({"a": [0.0, 5.0, 10.0], "d": [0.0, 1.0, 1.0]})
        dist = gower_matrix(m, binary_columns=["d"])
        assert dist[0, 1] == pytest.approx(0.75)
        assert dist[0, 2] == pytest.approx(1.0)
        assert dist[1, 2] == pytest.approx(0.25)

    def test_constant_column_contributes_zero(self):
        m = pd.DataFrame({"a": [1.0, 2.0], "c": [3.0, 3.0]})
        dist = gower_matrix(m)
        # (1 + 0) / 2
        assert dist[0, 1] == pytest.approx(0.5)

    def test_missing_values_rejected(self):
        m = pd.DataFrame({"a": [1.0, np.nan]})
        with pytest.raises(ValueError, match="complete matrix"):
            gower_matrix(m)

    def test_binary_mismatch_indicator(self):
        m = pd.DataFrame({"d": [0.0, 1.0, 0.0]})
        dist = gower_matrix(m, binary_columns=["d"])
        assert dist[0, 2] == 0.0
        assert dist[0, 1] == 1.0


class TestDistanceProperties:
    @pytest.fixture
    def distance(self, population):
        cfg = StratifyConfig.build(
            id_col="unitid",
            variables=["pct_female", "pct_black", "pct_frlunch", "total", "region"],
            n_strata=4,
        )
        return gower_distance(prepare_table(population, cfg))

    def test_square(self, distance, population):
        assert distance.values.shape == (len(population), len(population))

    def test_zero_diagonal(self, distance):
        assert np.all(np.diag(distance.values) == 0.0)

    def test_symmetric(self, distance):
        assert np.array_equal(distance.values, distance.values.T)

    def test_bounded(self, distance):
        assert distance.values.min() >= 0.0
        assert distance.values.max() <= 1.0

    def test_labels_are_unit_ids(self, distance, population):
        assert distance.labels.tolist() == population["unitid"].tolist()
        frame = distance.as_frame()
        assert frame.index[0] == population["unitid"].iloc[0]

    def test_bit_identical_on_rerun(self, population):
        cfg = StratifyConfig.build(
            id_col="unitid", variables=["pct_black", "region"], n_strata=2
        )
        first = gower_distance(prepare_table(population, cfg))
        second = gower_distance(prepare_table(population, cfg))
        assert np.array_equal(first.values, second.values)
