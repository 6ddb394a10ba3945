import pytest

from src.services.competitive_share import (
    DOMINANT_SELECTIONS_FLOOR,
    recompute_competitive_shares,
    recompute_group,
    reconstruct_test_product_selections,
)
from src.services.insight_models import CompetitiveInsightRow


def _row(variant, competitor_id, count):
    return CompetitiveInsightRow(
        variant=variant, competitor_id=competitor_id, title=f"C{competitor_id}", count=count,
    )


def test_scenario_a_sixty_percent_share():
    rows = [_row("a", 1, 25), _row("a", 2, 15)]
    group = recompute_group("a", rows, 60.0)

    assert group.competitor_selections == 40
    assert group.test_product_selections == 60
    assert group.total_selections == 100
    assert [r.share_of_buy for r in group.rows] == pytest.approx([25.0, 15.0])
    assert group.test_product_share == pytest.approx(60.0)


@pytest.mark.parametrize("share_pct", [99.7, 0.2, 37.0])
def test_shares_sum_to_one_hundred_in_every_branch(share_pct):
    group = recompute_group("a", [_row("a", 1, 7), _row("a", 2, 3), _row("a", 3, 12)], share_pct)

    total = sum(r.share_of_buy for r in group.rows) + group.test_product_share
    assert total == pytest.approx(100.0)


def test_dominant_share_clamps_to_floor():
    assert reconstruct_test_product_selections(3, 99.5) == DOMINANT_SELECTIONS_FLOOR
    assert reconstruct_test_product_selections(50, 100.0) == 5000


def test_negligible_share_never_drops_to_zero():
    assert reconstruct_test_product_selections(10, 0.0) == 1
    assert reconstruct_test_product_selections(10, 0.5) == 1
    assert reconstruct_test_product_selections(1000, 0.5) == 5


def test_middle_branch_rounds_half_up():
    # 0.25 * 6 / 0.75 = 2.0; 0.3 * 5 / 0.7 = 2.142...
    assert reconstruct_test_product_selections(6, 25.0) == 2
    assert reconstruct_test_product_selections(5, 30.0) == 2
    # 0.5 * 5 / 0.5 = 5
    assert reconstruct_test_product_selections(5, 50.0) == 5


def test_zero_selections_yield_zero_share():
    group = recompute_group("b", [_row("b", 1, 0)], 60.0)
    assert group.total_selections == 0
    assert group.rows[0].share_of_buy == 0.0


def test_rows_sorted_by_variant_then_share_and_keys_unique():
    rows = [
        _row("b", 1, 2),
        _row("a", 1, 1),
        _row("a", 2, 9),
        _row("b", 2, 8),
        _row("a", 2, 4),  # duplicate key, ignored
    ]
    groups = recompute_competitive_shares(rows, {"a": 50.0, "b": 50.0})

    assert list(groups) == ["a", "b"]
    assert [r.competitor_id for r in groups["a"].rows] == [2, 1]
    assert [r.competitor_id for r in groups["b"].rows] == [2, 1]
    keys = [r.key for g in groups.values() for r in g.rows]
    assert len(keys) == len(set(keys))
    assert "1-a" in keys and "1-b" in keys


def test_missing_summary_share_uses_negligible_branch():
    groups = recompute_competitive_shares([_row("c", 1, 4)], {})
    assert groups["c"].test_product_selections == 1
    assert groups["c"].rows[0].share_of_buy == pytest.approx(80.0)


@pytest.mark.parametrize("share_pct", [99.49, 99.5, 0.5, 0.51])
@pytest.mark.parametrize("counts", [[1], [4, 3], [25, 15], [300, 150, 50]])
def test_shares_stay_bounded_across_branch_thresholds(share_pct, counts):
    rows = [_row("a", i, count) for i, count in enumerate(counts, start=1)]
    group = recompute_group("a", rows, share_pct)

    shares = [r.share_of_buy for r in group.rows] + [group.test_product_share]
    assert all(0.0 <= share <= 100.0 for share in shares)
    assert sum(shares) == pytest.approx(100.0)
    assert group.test_product_selections >= 1


@pytest.mark.parametrize("counts", [[1], [4, 3], [300, 150, 50]])
def test_crossing_dominant_threshold_switches_to_dominant_count(counts):
    competitor_selections = sum(counts)
    below = reconstruct_test_product_selections(competitor_selections, 99.49)
    at = reconstruct_test_product_selections(competitor_selections, 99.5)

    assert below == round(0.9949 * competitor_selections / (1 - 0.9949))
    assert at == max(competitor_selections * 100, DOMINANT_SELECTIONS_FLOOR)
