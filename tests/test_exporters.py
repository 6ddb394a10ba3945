import io

import pytest
from openpyxl import load_workbook
from reportlab.lib import colors
from reportlab.platypus import Paragraph, Table

from src.services import document_composer as dc
from src.services.aggregation import build_result
from src.services.excel_exporter import (
    COMPETITIVE_SHEET,
    DRIVERS_SHEET,
    SUMMARY_SHEET,
    ExcelExporter,
    comments_sheet_name,
    export_filename,
)
from src.services.insight_models import (
    COMMENT_TYPE_COMPETITOR,
    COMMENT_TYPE_IMPROVEMENT,
    AIInsight,
    TestDetails,
)
from src.services.pdf_renderer import PdfReportExporter, markdown_flowables, rating_colors

from tests.factories import competitive_record, driver_record, make_test_record, summary_record


@pytest.fixture
def full_result():
    test = TestDetails.from_record(make_test_record(
        demographics={"tester_count": 40, "age_ranges": ["25-34"], "genders": ["Female"]},
    ))
    return build_result(
        test,
        summary_raw=[
            summary_record("a", share_of_buy=62.46, share_of_click=48.04, value_score=4.15, win=True),
            summary_record("b", share_of_buy=37.54, share_of_click=51.96, value_score=None),
        ],
        drivers_raw=[driver_record("a", count=14, score=4.25), driver_record("b", count=1, score=3.0)],
        competitive_raw=[
            competitive_record("a", 100, 9, value=3.5, trust=4.0),
            competitive_record("a", 101, 3, value=2.5, trust=3.0),
        ],
        ai_insight=AIInsight(
            comparison_between_variants="**Variant A** wins on value.",
            purchase_drivers="- Value\n- Trust",
            competitive_insights_a="A beats Competitor 101 on price.",
            recommendations="# Next steps\n1. Launch A",
        ),
        surveys_raw=[
            {"variation_type": "a", "improve_suggestions": "Add feet", "tester": {"age": 29, "sex": "female"}},
        ],
        comparisons_raw=[
            {"variation_type": "a", "competitor_title": "Competitor 100", "choose_reason": "Cheaper",
             "tester": {"age": 51, "sex": "male", "country": "US"}},
            {"variation_type": "b", "competitor_title": "Competitor 101", "choose_reason": "null",
             "tester": {}},
        ],
    )


def _workbook(result):
    return load_workbook(io.BytesIO(ExcelExporter().export_bytes(result)))


def test_workbook_sheets_and_empty_sheet_omission(full_result):
    wb = _workbook(full_result)
    assert wb.sheetnames == [SUMMARY_SHEET, DRIVERS_SHEET, COMPETITIVE_SHEET, comments_sheet_name("a")]


def test_comments_sheet_merges_both_types(full_result):
    ws = _workbook(full_result)[comments_sheet_name("a")]
    assert [c.value for c in ws[1]] == ["Comment Type", "Product", "Comment", "Age", "Sex", "Country"]
    types = [ws.cell(row=r, column=1).value for r in range(2, ws.max_row + 1)]
    assert types == [COMMENT_TYPE_IMPROVEMENT, COMMENT_TYPE_COMPETITOR]


def test_competitive_sheet_uses_recomputed_share(full_result):
    ws = _workbook(full_result)[COMPETITIVE_SHEET]
    group = full_result.competitive["a"]
    assert ws.cell(row=2, column=2).value == "Competitor 100"
    assert ws.cell(row=2, column=5).value == round(group.rows[0].share_of_buy, 1)
    assert ws.cell(row=2, column=5).value != 99.0
    assert ws.cell(row=4, column=2).value == "Average"
    assert ws.cell(row=4, column=6).value == 3.0


def test_low_confidence_flag_in_drivers_sheet(full_result):
    ws = _workbook(full_result)[DRIVERS_SHEET]
    headers = [c.value for c in ws[1]]
    flag_col = headers.index("Low Confidence") + 1
    assert ws.cell(row=2, column=flag_col).value == "No"
    assert ws.cell(row=3, column=flag_col).value == "Yes"


def test_pdf_and_workbook_numbers_agree(full_result):
    ws = _workbook(full_result)[SUMMARY_SHEET]
    sections = dc.compose_sections(full_result)
    pdf_rows = next(s for s in sections if s.kind == dc.SUMMARY).data["rows"]

    for row_idx, row in enumerate(pdf_rows, start=2):
        assert ws.cell(row=row_idx, column=1).value == row.label
        share_of_buy = ws.cell(row=row_idx, column=3).value
        value_score = ws.cell(row=row_idx, column=4).value
        assert f"{share_of_buy:.1f}%" == row.share_of_buy_display
        assert f"{value_score:.1f}" == row.value_score_display
        assert ws.cell(row=row_idx, column=5).value == row.win_display


def test_empty_result_still_produces_a_workbook():
    test = TestDetails.from_record(make_test_record())
    result = build_result(test, summary_raw=[], drivers_raw=[], competitive_raw=[])
    wb = _workbook(result)
    assert wb.sheetnames == [SUMMARY_SHEET]


def test_export_writes_file(tmp_path, full_result):
    path = ExcelExporter().export(full_result, str(tmp_path / "out" / "report.xlsx"))
    assert load_workbook(path).sheetnames[0] == SUMMARY_SHEET


@pytest.mark.parametrize(
    "skin, name, expected",
    [
        ("amazon", "Bamboo Board", "Amazon_Bamboo_Board_export.xlsx"),
        ("walmart", "Mugs/Cups v2", "Walmart_Mugs_Cups_v2_export.xlsx"),
        ("amazon", "   ", "Amazon_test_export.xlsx"),
    ],
)
def test_export_filename(skin, name, expected):
    assert export_filename(skin, name) == expected


def test_pdf_renders_full_report(full_result):
    data = PdfReportExporter().render(full_result)
    assert data.startswith(b"%PDF")
    assert len(data) > 2000


def test_pdf_missing_summary_gives_error_document():
    test = TestDetails.from_record(make_test_record())
    result = build_result(test, summary_raw=[], drivers_raw=[], competitive_raw=[])
    data = PdfReportExporter().render(result)
    assert data.startswith(b"%PDF")


def test_pdf_render_failure_gives_error_document(full_result, monkeypatch):
    exporter = PdfReportExporter()

    def explode(sections, title):
        raise RuntimeError("font missing")

    monkeypatch.setattr(exporter, "_build", explode)
    assert exporter.render(full_result).startswith(b"%PDF")
    assert PdfReportExporter().render(None).startswith(b"%PDF")


def _texts(flowables):
    return [f.text for f in flowables if isinstance(f, Paragraph)]


def test_markdown_narrative_is_escaped_and_structured():
    flowables = markdown_flowables("# Heading\n\nPrice < $20 & **bold**\n\n- one\n- two")
    texts = _texts(flowables)
    assert texts[0] == "Heading"
    assert texts[1] == "Price &lt; $20 &amp; <b>bold</b>"
    assert texts[2:] == ["one", "two"]


def test_markdown_keeps_spaced_asterisks_literal():
    texts = _texts(markdown_flowables("Bundle costs 2 * 3 dollars vs 4 * 5 dollars"))
    assert texts == ["Bundle costs 2 * 3 dollars vs 4 * 5 dollars"]


def test_markdown_links_and_tables_are_rendered():
    flowables = markdown_flowables(
        "See [the listing](http://x.test).\n\n| Driver | A |\n|---|---|\n| Value | 4.1 |"
    )
    texts = _texts(flowables)
    assert texts[0].startswith('See <a href="http://x.test"')
    assert "[the listing]" not in texts[0]

    tables = [f for f in flowables if isinstance(f, Table)]
    assert len(tables) == 1
    cells = [[cell.text for cell in row] for row in tables[0]._cellvalues]
    assert cells == [["Driver", "A"], ["Value", "4.1"]]
    assert not any("|" in text for text in texts)


def test_markdown_nested_lists_are_indented():
    flowables = markdown_flowables("1. Launch A\n    - raise price\n2. Retire B")
    items = [f for f in flowables if isinstance(f, Paragraph)]
    assert [p.text for p in items] == ["Launch A", "raise price", "Retire B"]
    assert [p.bulletText for p in items] == ["1.", "•", "2."]
    assert items[1].style.leftIndent > items[0].style.leftIndent


@pytest.mark.parametrize(
    "value, expected",
    [
        (1.2, ("#DCFCE7", "#166534")),
        (-0.8, ("#FEE2E2", "#991B1B")),
        (0.0, ("#FEF9C3", "#854D0E")),
    ],
)
def test_pdf_rating_colours_follow_sign(value, expected):
    background, text = rating_colors(value)
    assert (background.rgb(), text.rgb()) == tuple(colors.HexColor(h).rgb() for h in expected)
    assert rating_colors(None) is None


def test_competitive_sheet_colours_ratings_by_sign(full_result):
    ws = ExcelExporter().build_workbook(full_result)[COMPETITIVE_SHEET]
    rules = [
        (rule.operator, rule.formula, rule.dxf.fill.fgColor.rgb)
        for cf_range in ws.conditional_formatting
        for rule in cf_range.rules
    ]
    operators = {op: (formula, color) for op, formula, color in rules}
    assert set(operators) == {"greaterThan", "lessThan", "equal"}
    assert all(formula == ["0"] for formula, _ in operators.values())
    assert operators["greaterThan"][1].endswith("C6EFCE")
    assert operators["lessThan"][1].endswith("FFC7CE")
    assert operators["equal"][1].endswith("FFEB9C")


def test_pdf_export_writes_file(tmp_path, full_result):
    path = PdfReportExporter().export(full_result, str(tmp_path / "pdf" / "report.pdf"))
    with open(path, "rb") as fh:
        assert fh.read(4) == b"%PDF"
