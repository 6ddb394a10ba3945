"""Render composed report sections into a paginated PDF (reportlab)."""
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

import markdown
from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from reportlab.graphics.charts.barcharts import VerticalBarChart
from reportlab.graphics.charts.legends import Legend
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    HRFlowable,
    KeepTogether,
    PageBreak,
    Paragraph,
    Preformatted,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from src.services import document_composer as dc
from src.services.document_composer import (
    DocumentSection,
    MissingPrerequisiteError,
    compose_sections,
)
from src.services.insight_models import DRIVER_DIMENSIONS, AggregationResult
from src.services.utils import format_percent, format_score

logger = logging.getLogger(__name__)

PAGE_SIZE = landscape(A4)
MARGIN = 15 * mm
CONTENT_WIDTH = PAGE_SIZE[0] - 2 * MARGIN

# Brand palette
_GREEN = colors.HexColor("#34A270")
_DARK_GREEN = colors.HexColor("#075532")
_YELLOW = colors.HexColor("#E0D30D")
_DARK = colors.HexColor("#111827")
_GREY = colors.HexColor("#6B7280")
_LIGHT_GREY = colors.HexColor("#E5E7EB")
_HEADER_BG = colors.HexColor("#F5F5F5")
_WARN_BG = colors.HexColor("#FEF9C3")
_WARN_TEXT = colors.HexColor("#854D0E")
_ERROR_TEXT = colors.HexColor("#991B1B")
VARIANT_COLORS = {"a": _GREEN, "b": _DARK_GREEN, "c": _YELLOW}

METRIC_DEFINITIONS = [
    ("Share of Clicks", "The percentage of participants who clicked on this product when viewing the product grid."),
    ("Share of Buy", "The percentage of participants who selected this product as their final purchase choice."),
    ("Value Score", "An aggregate score (0-5) of how participants rated the product across all purchase drivers."),
]

_base = getSampleStyleSheet()


def _style(name: str, parent: str = "Normal", **kw) -> ParagraphStyle:
    return ParagraphStyle(name, parent=_base[parent], **kw)


S_TITLE = _style("rpt_title", fontSize=26, leading=32, textColor=_DARK, fontName="Helvetica-Bold")
S_SUBTITLE = _style("rpt_sub", fontSize=13, leading=18, textColor=_GREY)
S_H1 = _style("rpt_h1", fontSize=18, leading=22, textColor=_DARK, fontName="Helvetica-Bold", spaceAfter=4)
S_H2 = _style("rpt_h2", fontSize=12, leading=16, textColor=_DARK, fontName="Helvetica-Bold", spaceBefore=8, spaceAfter=4)
S_BODY = _style("rpt_body", fontSize=10, leading=14, textColor=_DARK, spaceAfter=4)
S_BULLET = _style("rpt_bullet", fontSize=10, leading=14, textColor=_DARK,
                  leftIndent=12, bulletIndent=2, spaceAfter=2)
S_SMALL = _style("rpt_small", fontSize=8, leading=11, textColor=_GREY)
S_CELL = _style("rpt_cell", fontSize=9, leading=12, textColor=_DARK)
S_CELL_BOLD = _style("rpt_cell_bold", fontSize=9, leading=12, textColor=_DARK, fontName="Helvetica-Bold")
S_WARN = _style("rpt_warn", fontSize=9, leading=12, textColor=_WARN_TEXT)
S_ERROR = _style("rpt_error", fontSize=14, leading=20, textColor=_ERROR_TEXT)
S_CODE = _style("rpt_code", parent="Code", fontSize=8, leading=10, textColor=_DARK, backColor=_HEADER_BG)

_LIST_INDENT = 14

# Competitor ratings are "your item vs competitor" deltas, coloured by sign
_POSITIVE_BG, _POSITIVE_TEXT = colors.HexColor("#DCFCE7"), colors.HexColor("#166534")
_NEGATIVE_BG, _NEGATIVE_TEXT = colors.HexColor("#FEE2E2"), colors.HexColor("#991B1B")
_NEUTRAL_BG, _NEUTRAL_TEXT = _WARN_BG, _WARN_TEXT

_HEADINGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_LISTS = ["ul", "ol"]
_INLINE_TAGS = {
    "strong": ("<b>", "</b>"),
    "b": ("<b>", "</b>"),
    "em": ("<i>", "</i>"),
    "i": ("<i>", "</i>"),
    "del": ("<strike>", "</strike>"),
    "s": ("<strike>", "</strike>"),
    "code": ('<font face="Courier">', "</font>"),
    "sup": ("<super>", "</super>"),
    "sub": ("<sub>", "</sub>"),
}


def _inline(node) -> str:
    """Reportlab paragraph markup for the inline content of an HTML node."""
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        return escape(str(node))
    if node.name in _LISTS:
        return ""
    if node.name == "br":
        return "<br/>"
    inner = "".join(_inline(child) for child in node.children)
    if node.name in _INLINE_TAGS:
        open_tag, close_tag = _INLINE_TAGS[node.name]
        return f"{open_tag}{inner}{close_tag}"
    if node.name == "a" and node.get("href"):
        href = escape(node["href"], {'"': "&quot;"})
        return f'<a href="{href}" color="#075532"><u>{inner}</u></a>'
    if node.name == "p":
        return inner.strip() + "<br/>"
    return inner


def _strip_breaks(markup: str) -> str:
    markup = markup.strip()
    while markup.endswith("<br/>"):
        markup = markup[: -len("<br/>")].rstrip()
    return markup


def _list_flowables(node: Tag, depth: int = 0) -> list:
    style = ParagraphStyle(
        f"rpt_list_{depth}", parent=S_BULLET, leftIndent=S_BULLET.leftIndent + depth * _LIST_INDENT,
        bulletIndent=S_BULLET.bulletIndent + depth * _LIST_INDENT,
    )
    number = int(node.get("start", 1))
    flowables = []
    for item in node.find_all("li", recursive=False):
        text = _strip_breaks(_inline(item))
        bullet = f"{number}." if node.name == "ol" else "•"
        flowables.append(Paragraph(text, style, bulletText=bullet))
        number += 1
        for child in item.find_all(_LISTS, recursive=False):
            flowables.extend(_list_flowables(child, depth + 1))
    return flowables


def _table_flowable(node: Tag) -> Table:
    rows = [
        [Paragraph(_inline(cell).strip(), S_CELL_BOLD if cell.name == "th" else S_CELL)
         for cell in tr.find_all(["th", "td"])]
        for tr in node.find_all("tr")
    ]
    width = max(len(r) for r in rows)
    rows = [r + [""] * (width - len(r)) for r in rows]
    header_rows = len(node.thead.find_all("tr")) if node.thead else 1
    table = Table(rows, colWidths=[CONTENT_WIDTH / width] * width, hAlign="LEFT", repeatRows=header_rows)
    table.setStyle(TableStyle(_grid_style(header_rows)))
    return table


def _block_flowables(node) -> list:
    if isinstance(node, Comment):
        return []
    if isinstance(node, NavigableString):
        text = str(node).strip()
        return [Paragraph(escape(text), S_BODY)] if text else []
    if node.name in _HEADINGS:
        return [Paragraph(_inline(node).strip(), S_H2)]
    if node.name in _LISTS:
        return _list_flowables(node) + [Spacer(1, 4)]
    if node.name == "table":
        return [_table_flowable(node), Spacer(1, 6)]
    if node.name == "hr":
        return [HRFlowable(width="100%", thickness=0.5, color=_LIGHT_GREY, spaceBefore=4, spaceAfter=4)]
    if node.name == "pre":
        return [Preformatted(node.get_text().rstrip("\n"), S_CODE)]
    if node.name in ("blockquote", "div"):
        return [f for child in node.children for f in _block_flowables(child)]
    text = _strip_breaks(_inline(node))
    return [Paragraph(text, S_BODY)] if text else []


def markdown_flowables(text: str) -> list:
    """Convert narrative markdown into headings, paragraphs, lists and tables."""
    html = markdown.markdown(text, extensions=["tables", "sane_lists"])
    soup = BeautifulSoup(html, "html.parser")
    return [f for node in soup.children for f in _block_flowables(node)]


def rating_colors(value: Optional[float]) -> Optional[tuple]:
    """(background, text) colours for a competitor rating, or None when missing."""
    if value is None:
        return None
    if value > 0:
        return _POSITIVE_BG, _POSITIVE_TEXT
    if value < 0:
        return _NEGATIVE_BG, _NEGATIVE_TEXT
    return _NEUTRAL_BG, _NEUTRAL_TEXT


def _rating_cell_styles(rows: list, first_col: int, first_row: int) -> list:
    commands = []
    for row_offset, scores in enumerate(rows):
        for col_offset, score in enumerate(scores):
            picked = rating_colors(None if score is None else round(score, 1))
            if picked is None:
                continue
            cell = (first_col + col_offset, first_row + row_offset)
            commands.append(("BACKGROUND", cell, cell, picked[0]))
            commands.append(("TEXTCOLOR", cell, cell, picked[1]))
    return commands


def _heading(title: str) -> list:
    return [
        Paragraph(escape(title), S_H1),
        HRFlowable(width="100%", thickness=2, color=_GREEN, spaceAfter=10),
    ]


def _grid_style(header_rows: int = 1) -> list:
    return [
        ("BACKGROUND", (0, 0), (-1, header_rows - 1), _HEADER_BG),
        ("FONTNAME", (0, 0), (-1, header_rows - 1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, _LIGHT_GREY),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (1, 0), (-1, -1), "CENTER"),
        ("TOPPADDING", (0, 0), (-1, -1), 6),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]


def _bar_chart(
    categories: list[str],
    series: list[list[float]],
    series_colors: list,
    legend_names: Optional[list[str]] = None,
    value_max: Optional[float] = None,
    width: float = CONTENT_WIDTH,
    height: float = 200,
) -> Drawing:
    drawing = Drawing(width, height + (30 if legend_names else 0))
    chart = VerticalBarChart()
    chart.x = 40
    chart.y = 30
    chart.width = width - 80
    chart.height = height - 50
    chart.data = series
    chart.categoryAxis.categoryNames = categories
    chart.categoryAxis.labels.fontSize = 8
    chart.valueAxis.labels.fontSize = 8
    chart.valueAxis.valueMin = 0
    if value_max is not None:
        chart.valueAxis.valueMax = value_max
    chart.barSpacing = 2
    chart.groupSpacing = 10
    for i, color in enumerate(series_colors):
        chart.bars[i].fillColor = color
        chart.bars[i].strokeColor = color
    drawing.add(chart)

    if legend_names:
        legend = Legend()
        legend.x = 40
        legend.y = height + 15
        legend.fontSize = 8
        legend.alignment = "right"
        legend.columnMaximum = 1
        legend.dx = 8
        legend.dy = 8
        legend.deltax = 120
        legend.colorNamePairs = list(zip(series_colors, legend_names))
        drawing.add(legend)
    return drawing


def _footer(canvas, doc):
    canvas.saveState()
    canvas.setStrokeColor(_DARK)
    canvas.setLineWidth(0.5)
    canvas.line(MARGIN, 12 * mm, PAGE_SIZE[0] - MARGIN, 12 * mm)
    canvas.setFont("Helvetica-Bold", 9)
    canvas.drawString(MARGIN, 8 * mm, getattr(doc, "report_footer", ""))
    canvas.setFont("Helvetica", 9)
    canvas.drawRightString(PAGE_SIZE[0] - MARGIN, 8 * mm, str(doc.page))
    canvas.restoreState()


def _header_and_footer(canvas, doc):
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(_GREY)
    canvas.drawString(MARGIN, PAGE_SIZE[1] - 9 * mm, getattr(doc, "report_header", ""))
    canvas.restoreState()
    _footer(canvas, doc)


class PdfReportExporter:
    """Render an AggregationResult as a landscape PDF report.

    Rendering never raises: missing prerequisites and unexpected failures
    both produce a one-page error document instead.
    """

    footer_text = "Product Test Insights"

    def render(self, result: Optional[AggregationResult]) -> bytes:
        try:
            sections = compose_sections(result)
            return self._build(sections, title=result.test.name)
        except MissingPrerequisiteError as exc:
            logger.warning("Report not composed: %s", exc)
            return self.render_error(str(exc))
        except Exception as exc:
            logger.exception("PDF report generation failed")
            return self.render_error(f"The report could not be generated: {exc}")

    def export(self, result: Optional[AggregationResult], output_path: str) -> str:
        """Render and write the PDF. Returns the absolute file path."""
        data = self.render(result)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(data)
        logger.info("PDF exported to %s", output_path)
        return str(Path(output_path).resolve())

    def render_error(self, message: str) -> bytes:
        story = _heading("Report unavailable") + [
            Spacer(1, 10),
            Paragraph(escape(message), S_ERROR),
            Spacer(1, 10),
            Paragraph("Reload the report once the test has collected results, then export again.", S_BODY),
        ]
        return self._write(story, title="Report unavailable")

    # ------------------------------------------------------------------
    # Document assembly
    # ------------------------------------------------------------------

    def _build(self, sections: list[DocumentSection], title: str) -> bytes:
        builders = {
            dc.COVER: self._cover,
            dc.TEST_DESIGN: self._test_design,
            dc.SUMMARY: self._summary,
            dc.PURCHASE_DRIVERS_TEXT: self._narrative,
            dc.PURCHASE_DRIVERS_CHART: self._drivers_chart,
            dc.COMPETITIVE_TEXT: self._competitive_text,
            dc.COMPETITIVE_TABLE: self._competitive_table,
            dc.RECOMMENDATIONS: self._narrative,
        }
        story = []
        for i, section in enumerate(sections):
            if i:
                story.append(PageBreak())
            story.extend(builders[section.kind](section))
        return self._write(story, title=title)

    def _write(self, story: list, title: str) -> bytes:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=PAGE_SIZE,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=20 * mm,
            title=title,
        )
        doc.report_footer = self.footer_text
        doc.report_header = title
        doc.build(story, onFirstPage=_footer, onLaterPages=_header_and_footer)
        return buf.getvalue()

    # ------------------------------------------------------------------
    # Section builders
    # ------------------------------------------------------------------

    def _cover(self, section: DocumentSection) -> list:
        test = section.data["test"]
        story = [
            Spacer(1, 40 * mm),
            Paragraph("Product Test Report", S_SUBTITLE),
            Spacer(1, 4),
            Paragraph(escape(test.name), S_TITLE),
            Spacer(1, 8),
        ]
        meta = []
        if test.search_term:
            meta.append(f"Search term: {escape(test.search_term)}")
        meta.append(f"Store: {test.skin.capitalize()}")
        if isinstance(test.created_at, datetime):
            meta.append(f"Created: {test.created_at:%B %d, %Y}")
        story.append(Paragraph(" &nbsp;|&nbsp; ".join(meta), S_SUBTITLE))
        story.append(Spacer(1, 16))

        variants = section.data["variants"]
        if variants:
            cells = [
                Paragraph(
                    f"<b>Variant {v.letter}</b><br/>{escape(v.title)}"
                    + (f"<br/>${v.price:,.2f}" if v.price is not None else ""),
                    S_CELL,
                )
                for v in variants
            ]
            table = Table([cells], colWidths=[CONTENT_WIDTH / 3] * len(cells), hAlign="LEFT")
            table.setStyle(TableStyle([
                ("BOX", (0, 0), (-1, -1), 0.5, _LIGHT_GREY),
                ("INNERGRID", (0, 0), (-1, -1), 0.5, _LIGHT_GREY),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]))
            story.append(table)
        return story

    def _test_design(self, section: DocumentSection) -> list:
        test = section.data["test"]
        story = _heading(section.title)
        rows = [
            ["Test name", test.name],
            ["Status", test.status.capitalize()],
            ["Store", test.skin.capitalize()],
            ["Search term", test.search_term or "-"],
            ["Testers", str(section.data["tester_count"])],
            ["Variants", ", ".join(test.variants[v].letter for v in test.available_variants) or "-"],
        ]
        if test.objective:
            rows.append(["Objective", test.objective])
        info = Table(
            [[Paragraph(escape(k), S_CELL_BOLD), Paragraph(escape(v), S_CELL)] for k, v in rows],
            colWidths=[40 * mm, CONTENT_WIDTH - 40 * mm],
            hAlign="LEFT",
        )
        info.setStyle(TableStyle([
            ("GRID", (0, 0), (-1, -1), 0.5, _LIGHT_GREY),
            ("BACKGROUND", (0, 0), (0, -1), _HEADER_BG),
        ]))
        story.append(info)

        competitors = section.data["competitors"]
        if competitors:
            story.append(Paragraph(f"Competitors ({len(competitors)})", S_H2))
            story.append(Paragraph(
                ", ".join(escape(c.title) for c in competitors if c.title), S_SMALL,
            ))

        demo = section.data["demographics"]
        charts = []
        if demo["age"]:
            charts.append(self._demographic_chart("Age", demo["age"]))
        if demo["gender"]:
            charts.append(self._demographic_chart("Gender", demo["gender"]))
        if charts:
            story.append(Paragraph("Demographics", S_H2))
            if demo["source"] == "test_setup":
                story.append(Paragraph("Based on the audience selected when the test was created.", S_SMALL))
            story.append(Table([charts], colWidths=[CONTENT_WIDTH / 2] * len(charts), hAlign="LEFT"))
        return story

    def _demographic_chart(self, label: str, counts: dict) -> list:
        drawing = _bar_chart(
            categories=list(counts.keys()),
            series=[list(counts.values())],
            series_colors=[_GREEN],
            width=CONTENT_WIDTH / 2 - 10,
            height=150,
        )
        return [Paragraph(label, S_CELL_BOLD), drawing]

    def _summary(self, section: DocumentSection) -> list:
        story = _heading(section.title)
        header = ["Variant", "Share of Clicks", "Share of Buy", "Value Score", "Win"]
        data = [header]
        for row in section.data["rows"]:
            data.append([
                Paragraph(escape(row.label), S_CELL),
                row.share_of_clicks_display,
                row.share_of_buy_display,
                row.value_score_display,
                row.win_display,
            ])
        widths = [CONTENT_WIDTH * 0.44] + [CONTENT_WIDTH * 0.14] * 4
        table = Table(data, colWidths=widths, hAlign="LEFT", repeatRows=1)
        table.setStyle(TableStyle(_grid_style()))
        story.append(table)

        comparison = section.data.get("comparison")
        if comparison:
            story.append(Paragraph("Comparison Between Variants", S_H2))
            story.extend(markdown_flowables(comparison))

        story.append(Spacer(1, 10))
        story.append(Paragraph("Metrics Definitions", S_CELL_BOLD))
        for name, text in METRIC_DEFINITIONS:
            story.append(Paragraph(f"• <b>{name}</b>: {text}", S_SMALL))
        return story

    def _narrative(self, section: DocumentSection) -> list:
        return _heading(section.title) + markdown_flowables(section.data["text"])

    def _drivers_chart(self, section: DocumentSection) -> list:
        story = _heading(section.title)
        rows = section.data["rows"]
        titles = section.data["titles"]

        for variant in section.data["low_confidence"]:
            row = next(r for r in rows if r.variant == variant)
            banner = Table(
                [[Paragraph(
                    f"<b>Low confidence:</b> Variant {variant.upper()} has "
                    f"{row.count} purchase driver response{'s' if row.count != 1 else ''}; "
                    "its scores are not representative.",
                    S_WARN,
                )]],
                colWidths=[CONTENT_WIDTH],
            )
            banner.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, -1), _WARN_BG),
                ("BOX", (0, 0), (-1, -1), 0.5, _WARN_TEXT),
            ]))
            story.extend([banner, Spacer(1, 4)])

        chart = _bar_chart(
            categories=[label for _, label in DRIVER_DIMENSIONS],
            series=[r.scores() for r in rows],
            series_colors=[VARIANT_COLORS[r.variant] for r in rows],
            legend_names=[f"Variant {r.variant.upper()}: {titles[r.variant][:40]}" for r in rows],
            value_max=5,
        )
        story.append(chart)

        data = [["Variant"] + [label for _, label in DRIVER_DIMENSIONS] + ["Responses"]]
        for r in rows:
            data.append(
                [f"Variant {r.variant.upper()}"]
                + [format_score(s) for s in r.scores()]
                + [str(r.count)]
            )
        table = Table(data, hAlign="LEFT")
        table.setStyle(TableStyle(_grid_style()))
        story.extend([Spacer(1, 8), table])
        return story

    def _competitive_text(self, section: DocumentSection) -> list:
        story = _heading(section.title)
        for variant, title, text in section.data["narratives"]:
            story.append(Paragraph(f"Variant {variant.upper()} - {escape(title)}", S_H2))
            story.extend(markdown_flowables(text))
        return story

    def _competitive_table(self, section: DocumentSection) -> list:
        group = section.data["group"]
        product = section.data["product"]
        story = _heading(section.title)
        story.append(Paragraph(escape(product.title), S_SUBTITLE))
        story.append(Spacer(1, 6))

        header = ["Competitor", "Share of Buy"] + [label for _, label in DRIVER_DIMENSIONS]
        data = [header]
        for row in group.rows:
            title = row.title if len(row.title) <= 60 else row.title[:60] + "..."
            data.append(
                [Paragraph(escape(title), S_CELL), row.share_of_buy_display]
                + [format_score(s) for s in row.scores()]
            )
        data.append(
            [Paragraph("<b>Average</b>", S_CELL), ""]
            + [format_score(s) for s in group.average_scores()]
        )
        widths = [CONTENT_WIDTH * 0.34, CONTENT_WIDTH * 0.11] + [CONTENT_WIDTH * 0.11] * len(DRIVER_DIMENSIONS)
        table = Table(data, colWidths=widths, hAlign="LEFT", repeatRows=1)
        style = _grid_style()
        style.append(("BACKGROUND", (0, -1), (1, -1), _HEADER_BG))
        rating_rows = [row.scores() for row in group.rows] + [group.average_scores()]
        style.extend(_rating_cell_styles(rating_rows, first_col=2, first_row=1))
        table.setStyle(TableStyle(style))
        story.append(table)
        story.append(Spacer(1, 6))
        story.append(KeepTogether([Paragraph(
            f"Variant {product.letter} share of buy among these shoppers: "
            f"{format_percent(group.test_product_share)}",
            S_SMALL,
        )]))
        return story
