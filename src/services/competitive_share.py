"""Reconcile competitor share-of-buy with each variant's own share-of-buy.

Competitive-insight rows only record how many times a competitor was chosen
over the variant.  The variant's own share-of-buy is known from the summary
table, so the number of shoppers who chose the variant is back-solved from it
and 100% of share is redistributed across competitors + the variant.
"""
import logging
import math
from typing import Iterable

from src.services.insight_models import VARIANTS, CompetitiveGroup, CompetitiveInsightRow

logger = logging.getLogger(__name__)

# Empirical clamps; see DESIGN.md before changing any of these.
DOMINANT_SHARE_PCT = 99.5
NEGLIGIBLE_SHARE_PCT = 0.5
DOMINANT_SELECTIONS_FLOOR = 1000
DOMINANT_SELECTIONS_MULTIPLIER = 100


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def reconstruct_test_product_selections(competitor_selections: int, share_pct: float) -> int:
    """Back-solve how many shoppers chose the test product.

    Parameters
    ----------
    competitor_selections : int
        Sum of competitor ``count`` values for the variant.
    share_pct : float
        The variant's summary share-of-buy, 0-100.

    Returns
    -------
    int  Implied test-product selection count.
    """
    if share_pct >= DOMINANT_SHARE_PCT:
        # Near-total dominance: a large synthetic count keeps the variant on
        # top and avoids dividing by (1 - p) ~ 0.
        return max(competitor_selections * DOMINANT_SELECTIONS_MULTIPLIER, DOMINANT_SELECTIONS_FLOOR)
    if share_pct <= NEGLIGIBLE_SHARE_PCT:
        # Never zero, or the variant disappears from the ranking.
        return max(1, _round_half_up(competitor_selections * share_pct / 100))

    fraction = share_pct / 100
    estimated_total = competitor_selections / (1 - fraction)
    return _round_half_up(fraction * estimated_total)


def recompute_group(
    variant: str,
    rows: Iterable[CompetitiveInsightRow],
    share_pct: float,
) -> CompetitiveGroup:
    """Recompute ``share_of_buy`` for one variant's competitor rows.

    Rows are updated in place and returned sorted by share (descending).
    """
    rows = list(rows)
    competitor_selections = sum(r.count for r in rows)
    test_product_selections = reconstruct_test_product_selections(competitor_selections, share_pct)
    total = competitor_selections + test_product_selections

    for row in rows:
        row.share_of_buy = (row.count / total * 100) if total else 0.0

    rows.sort(key=lambda r: r.share_of_buy, reverse=True)

    logger.debug(
        "Variant %s: %d competitor selections, %d test product selections (p=%.1f)",
        variant, competitor_selections, test_product_selections, share_pct,
    )
    return CompetitiveGroup(
        variant=variant,
        rows=rows,
        competitor_selections=competitor_selections,
        test_product_selections=test_product_selections,
    )


def recompute_competitive_shares(
    rows: Iterable[CompetitiveInsightRow],
    share_of_buy_by_variant: dict[str, float],
) -> dict[str, CompetitiveGroup]:
    """Group rows by variant and reconcile each group.

    Returns
    -------
    dict  variant -> CompetitiveGroup, keyed in ascending variant order.
    """
    grouped: dict[str, list[CompetitiveInsightRow]] = {}
    seen: set[str] = set()
    for row in rows:
        if row.key in seen:
            logger.warning("Duplicate competitive insight row %s ignored", row.key)
            continue
        seen.add(row.key)
        grouped.setdefault(row.variant, []).append(row)

    groups: dict[str, CompetitiveGroup] = {}
    for variant in VARIANTS:
        if variant not in grouped:
            continue
        share_pct = share_of_buy_by_variant.get(variant, 0.0)
        groups[variant] = recompute_group(variant, grouped[variant], share_pct)
    return groups
