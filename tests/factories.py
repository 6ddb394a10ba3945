"""Record builders shared by the test modules."""


def make_test_record(
    test_id="t-1",
    name="Bamboo Cutting Board",
    status="active",
    skin="amazon",
    variants=("a", "b"),
    competitors=2,
    demographics=None,
):
    return {
        "id": test_id,
        "name": name,
        "status": status,
        "skin": skin,
        "search_term": "cutting board",
        "objective": None,
        "created_at": None,
        "demographics": demographics or {},
        "variations": [
            {
                "variation_type": v,
                "product": {
                    "id": i + 1,
                    "title": f"Board {v.upper()}",
                    "image_url": None,
                    "price": 19.99 + i,
                },
            }
            for i, v in enumerate(variants)
        ],
        "competitors": [
            {
                "id": 100 + i,
                "title": f"Competitor {i + 1}",
                "image_url": None,
                "price": 24.5,
                "product_url": None,
            }
            for i in range(competitors)
        ],
    }


def competitive_record(variant, competitor_id, count, **dims):
    record = {
        "variant_type": variant,
        "competitor_product_id": competitor_id,
        "count": count,
        "share_of_buy": 99.0,
        "competitor": {"id": competitor_id, "title": f"Competitor {competitor_id}", "price": 24.5},
    }
    record.update(dims)
    return record


def driver_record(variant, count=10, score=4.0):
    return {
        "variant_type": variant,
        "value": score,
        "aesthetics": score,
        "utility": score,
        "trust": score,
        "convenience": score,
        "count": count,
    }


def summary_record(variant, share_of_buy=50.0, share_of_click=40.0, value_score=3.5, win=False):
    return {
        "variant_type": variant,
        "share_of_click": share_of_click,
        "share_of_buy": share_of_buy,
        "value_score": value_score,
        "win": win,
    }
