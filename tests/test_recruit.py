"""Tests for strataplan.recruit (proportional allocation and queues)."""

import pytest

from strataplan.config import ConfigurationError, StratifyConfig
from strataplan.recruit import PLAN_COLUMNS, allocate, recruit, recruitment_queue
from strataplan.stratify import stratify


@pytest.fixture
def result(population):
    cfg = StratifyConfig.build(
        id_col="unitid",
        variables=["pct_female", "pct_black", "pct_frlunch", "total"],
        n_strata=4,
    )
    return stratify(population, cfg)


class TestAllocate:
    def test_rounded_proportions(self):
        table = allocate({1: 100, 2: 150, 3: 100}, 40)
        assert list(table.columns) == PLAN_COLUMNS
        assert table["proportion"].tolist() == [0.286, 0.429, 0.286]
        assert table["to_recruit"].tolist() == [11, 17, 11]
        # independent rounding is not reconciled
        assert table["to_recruit"].sum() == 39

    def test_exact_mode_adds_up(self):
        table = allocate({1: 100, 2: 150, 3: 100}, 40, exact=True)
        assert table["to_recruit"].tolist() == [12, 17, 11]
        assert table["to_recruit"].sum() == 40

    def test_strata_sorted(self):
        table = allocate({3: 10, 1: 30, 2: 60}, 10)
        assert table["stratum"].tolist() == [1, 2, 3]
        assert table["to_recruit"].tolist() == [3, 6, 1]

    def test_empty_population(self):
        with pytest.raises(ValueError):
            allocate({1: 0, 2: 0}, 5)


class TestRecruit:
    def test_total_close_to_target(self, result):
        plan = recruit(result, 40)
        assert abs(plan.total_to_recruit - 40) <= 3
        assert plan.table["population_units"].sum() == 350
        assert plan.sample_size == 40
        assert plan.population_size == 350

    def test_proportions_sum_to_one(self, result):
        plan = recruit(result, 40)
        # each proportion is rounded to 3 decimals
        assert plan.table["proportion"].sum() == pytest.approx(1.0, abs=0.0005 * len(plan.table))

    def test_each_target_is_rounded_share(self, result):
        plan = recruit(result, 40)
        sizes = result.assignment.sizes()
        for _, row in plan.table.iterrows():
            share = sizes[int(row["stratum"])] / 350
            assert row["proportion"] == pytest.approx(share, abs=0.0005)
            assert row["to_recruit"] == round(40 * row["proportion"])

    def test_targets_never_negative(self, result):
        plan = recruit(result, 40)
        assert (plan.table["to_recruit"] >= 0).all()

    def test_exact(self, result):
        plan = recruit(result, 40, exact=True)
        assert plan.total_to_recruit == 40
        assert plan.exact

    def test_rounding_warning(self, result):
        plan = recruit(result, 40)
        if plan.total_to_recruit != 40:
            assert any("Independent rounding" in w for w in plan.warnings)
        else:
            assert plan.warnings == []

    def test_sample_must_be_below_population(self, result):
        with pytest.raises(ConfigurationError, match="total number"):
            recruit(result, 350)

    def test_sample_must_be_positive(self, result):
        with pytest.raises(ConfigurationError):
            recruit(result, 0)

    def test_partition_untouched(self, result):
        before = result.assignment.labels.copy()
        recruit(result, 25)
        assert (result.assignment.labels == before).all()

    def test_target_lookup(self, result):
        plan = recruit(result, 40)
        assert plan.target(1) == int(plan.table["to_recruit"].iloc[0])
        with pytest.raises(KeyError):
            plan.target(99)


class TestRecruitmentQueue:
    def test_rank_order(self, result):
        plan = recruit(result, 40)
        queue = list(recruitment_queue(plan, 2))
        assert queue == result.recruitment_lists[2]["unitid"].tolist()

    def test_replacement_is_next_in_line(self, result):
        plan = recruit(result, 40)
        queue = recruitment_queue(plan, 1)
        target = plan.target(1)
        approached = [next(queue) for _ in range(target)]
        # one declines; the replacement is rank target + 1
        replacement = next(queue)
        ranked = result.recruitment_lists[1]["unitid"].tolist()
        assert approached == ranked[:target]
        assert replacement == ranked[target]

    def test_unknown_stratum(self, result):
        plan = recruit(result, 40)
        with pytest.raises(KeyError):
            recruitment_queue(plan, 42)
