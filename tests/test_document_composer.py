import pytest

from src.services import document_composer as dc
from src.services.aggregation import build_result
from src.services.insight_models import AIInsight, TestDetails

from tests.factories import competitive_record, driver_record, make_test_record, summary_record


def _result(ai_insight=None, drivers=(), competitive=(), variants=("a", "b", "c"), **kwargs):
    test = TestDetails.from_record(make_test_record(variants=variants))
    return build_result(
        test,
        summary_raw=[summary_record(v) for v in variants],
        drivers_raw=list(drivers),
        competitive_raw=list(competitive),
        ai_insight=ai_insight,
        **kwargs,
    )


def _kinds(sections):
    return [s.kind for s in sections]


def test_inclusion_requires_data_or_narrative():
    result = _result(drivers=[driver_record("a")], competitive=[competitive_record("c", 100, 3)])
    assert dc.included_variants(result) == ["a", "c"]


def test_inclusion_is_idempotent_and_narrative_adds_only_its_variant():
    result = _result(drivers=[driver_record("a")])
    assert dc.included_variants(result) == dc.included_variants(result) == ["a"]
    first = _kinds(dc.compose_sections(result))
    assert first == _kinds(dc.compose_sections(result))

    result.ai_insight = AIInsight(competitive_insights_c="Shoppers preferred the larger board.")
    assert dc.included_variants(result) == ["a", "c"]
    assert result.drivers_for("c") is None


def test_scenario_b_narrative_only_variant_has_no_table():
    result = _result(
        ai_insight=AIInsight(competitive_insights_b="Variant B lost to cheaper boards."),
        drivers=[driver_record("a")],
        competitive=[competitive_record("a", 100, 5)],
    )
    sections = dc.compose_sections(result)

    assert dc.included_variants(result) == ["a", "b"]
    text = next(s for s in sections if s.kind == dc.COMPETITIVE_TEXT)
    assert [v for v, _, _ in text.data["narratives"]] == ["b"]
    tables = [s.variant for s in sections if s.kind == dc.COMPETITIVE_TABLE]
    assert tables == ["a"]


def test_scenario_c_low_confidence_row_still_charted():
    result = _result(drivers=[driver_record("a", count=1), driver_record("b", count=8)])
    chart = next(s for s in dc.compose_sections(result) if s.kind == dc.PURCHASE_DRIVERS_CHART)

    assert [r.variant for r in chart.data["rows"]] == ["a", "b"]
    assert chart.data["low_confidence"] == ["a"]


def test_scenario_d_no_insight_suppresses_narrative_sections():
    result = _result(ai_insight=None, drivers=[driver_record("a")])
    kinds = _kinds(dc.compose_sections(result))

    assert dc.PURCHASE_DRIVERS_TEXT not in kinds
    assert dc.COMPETITIVE_TEXT not in kinds
    assert dc.RECOMMENDATIONS not in kinds
    summary = next(s for s in dc.compose_sections(result) if s.kind == dc.SUMMARY)
    assert summary.data["comparison"] is None


def test_section_order_is_fixed():
    result = _result(
        ai_insight=AIInsight(
            purchase_drivers="Value leads.",
            competitive_insights_a="A beats most.",
            recommendations="Launch A.",
        ),
        drivers=[driver_record("a")],
        competitive=[competitive_record("a", 100, 5), competitive_record("b", 101, 2)],
    )
    kinds = _kinds(dc.compose_sections(result))
    assert kinds == [
        dc.COVER,
        dc.TEST_DESIGN,
        dc.SUMMARY,
        dc.PURCHASE_DRIVERS_TEXT,
        dc.PURCHASE_DRIVERS_CHART,
        dc.COMPETITIVE_TEXT,
        dc.COMPETITIVE_TABLE,
        dc.COMPETITIVE_TABLE,
        dc.RECOMMENDATIONS,
    ]


def test_summary_only_lists_included_variants():
    result = _result(drivers=[driver_record("b")])
    summary = next(s for s in dc.compose_sections(result) if s.kind == dc.SUMMARY)
    assert [r.variant for r in summary.data["rows"]] == ["b"]


def test_missing_prerequisites_raise():
    with pytest.raises(dc.MissingPrerequisiteError):
        dc.compose_sections(None)

    test = TestDetails.from_record(make_test_record())
    empty = build_result(test, summary_raw=[], drivers_raw=[], competitive_raw=[])
    with pytest.raises(dc.MissingPrerequisiteError):
        dc.compose_sections(empty)


@pytest.mark.parametrize(
    "age, bucket",
    [(17, None), (18, "18-24"), (24, "18-24"), (25, "25-29"), (37, "35-39"), (49, "45-49"),
     (50, "50+"), (83, "50+"), ("31", "30-34"), ("n/a", None), (None, None)],
)
def test_bucket_age(age, bucket):
    assert dc.bucket_age(age) == bucket


def test_demographics_from_responses():
    charts = dc.build_demographic_charts([
        {"age": 22, "sex": "female"},
        {"age": 23, "sex": "female"},
        {"age": 61, "sex": "male"},
        {"age": None, "sex": None},
    ])
    assert charts["source"] == "responses"
    assert charts["age"]["18-24"] == 2
    assert charts["age"]["50+"] == 1
    assert list(charts["age"]) == dc.AGE_BUCKETS
    assert charts["gender"] == {"female": 2, "male": 1}


def test_demographics_fall_back_to_test_setup():
    charts = dc.build_demographic_charts(
        [{"age": None, "sex": None}],
        {"age_ranges": ["18-24", "25-34"], "genders": ["Female", "Male"]},
    )
    assert charts == {
        "source": "test_setup",
        "age": {"18-24": 1, "25-34": 1},
        "gender": {"Female": 1, "Male": 1},
    }


def test_pdf_filename_is_sanitized(test_details):
    assert dc.pdf_filename(test_details.name) == "Bamboo_Cutting_Board_report.pdf"
    assert dc.pdf_filename("Q3: Mugs & Cups!") == "Q3__Mugs___Cups__report.pdf"
