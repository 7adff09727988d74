"""Tests for strataplan.config."""

import pandas as pd
import pytest

from strataplan.config import (
    ConfigurationError,
    StratifyConfig,
    validate_config,
    validate_n_strata,
    validate_sample_size,
)


@pytest.fixture
def df_small():
    return pd.DataFrame(
        {
            "id": [1, 2, 3, 4, 5, 6],
            "a": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0],
            "b": ["x", "y", "x", "y", "x", "y"],
        }
    )


def _cfg(**kw):
    base = dict(id_col="id", variables=["a", "b"], n_strata=2)
    base.update(kw)
    return StratifyConfig.build(**base)


class TestBuild:
    def test_lists_become_tuples(self):
        cfg = _cfg(categorical=["b"])
        assert cfg.variables == ("a", "b")
        assert cfg.categorical == ("b",)

    def test_single_variable_string(self):
        cfg = StratifyConfig.build(id_col="id", variables="a", n_strata=2)
        assert cfg.variables == ("a",)

    def test_with_strata_returns_copy(self):
        cfg = _cfg()
        other = cfg.with_strata(4)
        assert other.n_strata == 4
        assert cfg.n_strata == 2

    def test_frozen(self):
        cfg = _cfg()
        with pytest.raises(Exception):
            cfg.n_strata = 3


class TestNStrata:
    @pytest.mark.parametrize("value", [0, 1, -3])
    def test_too_small(self, value):
        with pytest.raises(ConfigurationError, match="greater than 1"):
            validate_n_strata(value, 100)

    def test_not_below_population(self):
        with pytest.raises(ConfigurationError, match="smaller than the population"):
            validate_n_strata(10, 10)

    def test_fractional_rejected(self):
        with pytest.raises(ConfigurationError, match="whole number"):
            validate_n_strata(2.5, 100)

    def test_integral_float_accepted(self):
        assert validate_n_strata(4.0, 100) == 4

    def test_numeric_string_accepted(self):
        assert validate_n_strata(" 3 ", 100) == 3

    def test_text_rejected(self):
        with pytest.raises(ConfigurationError, match="one number"):
            validate_n_strata("four", 100)

    def test_bool_rejected(self):
        with pytest.raises(ConfigurationError, match="must be a number"):
            validate_n_strata(True, 100)

    def test_none_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_n_strata(None, 100)


class TestSampleSize:
    def test_valid(self):
        assert validate_sample_size(40, 350) == 40

    def test_zero(self):
        with pytest.raises(ConfigurationError, match="positive"):
            validate_sample_size(0, 350)

    def test_equal_to_population(self):
        with pytest.raises(ConfigurationError, match="total number"):
            validate_sample_size(350, 350)


class TestValidateConfig:
    def test_valid_config_normalised(self, df_small):
        cfg = validate_config(df_small, _cfg(n_strata=3.0, sample_size="2"))
        assert cfg.n_strata == 3
        assert cfg.sample_size == 2

    def test_missing_id(self, df_small):
        with pytest.raises(ConfigurationError, match="ID column 'nope' not found"):
            validate_config(df_small, _cfg(id_col="nope"))

    def test_missing_variable(self, df_small):
        with pytest.raises(ConfigurationError, match=r"\['zzz'\] not found"):
            validate_config(df_small, _cfg(variables=["a", "zzz"]))

    def test_no_variables(self, df_small):
        with pytest.raises(ConfigurationError, match="select some"):
            validate_config(df_small, _cfg(variables=[]))

    def test_id_as_variable(self, df_small):
        with pytest.raises(ConfigurationError, match="cannot also be"):
            validate_config(df_small, _cfg(variables=["id", "a"]))

    def test_categorical_outside_variables(self, df_small):
        with pytest.raises(ConfigurationError, match="not among"):
            validate_config(df_small, _cfg(variables=["a"], categorical=["b"]))

    def test_duplicate_ids(self, df_small):
        df = df_small.copy()
        df.loc[1, "id"] = 1
        with pytest.raises(ConfigurationError, match="duplicate"):
            validate_config(df, _cfg())

    def test_sample_size_checked_before_work(self, df_small):
        with pytest.raises(ConfigurationError, match="total number"):
            validate_config(df_small, _cfg(sample_size=6))

    def test_is_value_error(self, df_small):
        with pytest.raises(ValueError):
            validate_config(df_small, _cfg(n_strata=1))

    def test_bad_iteration_cap(self, df_small):
        with pytest.raises(ConfigurationError, match="iteration cap"):
            validate_config(df_small, _cfg(max_iter=0))
