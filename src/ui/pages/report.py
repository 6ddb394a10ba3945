"""Report page - tabbed view over a test's stacked result sections, plus exports."""
import asyncio
import json
import logging
from typing import Optional

from nicegui import ui

from config import ELEVATED_VIEWERS, SKIN_LABELS
from src.services import (
    AggregationError,
    AggregationService,
    ExcelExporter,
    InsightCache,
    InsightEndpointError,
    InsightLoader,
    PdfReportExporter,
    ResultStoreError,
    TestNotFoundError,
    export_filename,
    included_variants,
    pdf_filename,
)
from src.services import report_state as rs
from src.services.document_composer import build_demographic_charts
from src.services.insight_models import DRIVER_DIMENSIONS, VARIANTS, AggregationResult
from src.ui.components import format_price, low_confidence_banner, narrative, section_header, stats_card
from src.ui.components.helpers import (
    CARD_CLASSES,
    COMPETITOR_COLOR,
    VARIANT_COLORS,
    page_header,
    product_image,
    status_badge,
    variant_badge,
)
from src.ui.layout import build_layout

logger = logging.getLogger(__name__)

_SECTION_EVENT = "report_section_visible"

# Reports each section's visible ratio back to the server as the user scrolls.
_OBSERVER_JS = """
(function() {
    if (window.__reportObserver) { window.__reportObserver.disconnect(); }
    var ids = %s;
    var observer = new IntersectionObserver(function(entries) {
        entries.forEach(function(entry) {
            if (entry.isIntersecting) {
                emitEvent('%s', {id: entry.target.id, ratio: entry.intersectionRatio});
            }
        });
    }, {threshold: [0, 0.25, 0.5, 0.75, 1]});
    ids.forEach(function(id) {
        var el = document.getElementById(id);
        if (el) { observer.observe(el); }
    });
    window.__reportObserver = observer;
})();
""" % (json.dumps(list(rs.SECTION_IDS)), _SECTION_EVENT)


# Competitor ratings are deltas against the tested item, coloured by sign.
_RATING_CELL_SLOT = r'''
    <q-td :props="props">
        <span class="px-2 py-1 rounded"
              :style="parseFloat(props.value) > 0 ? {background: '#DCFCE7', color: '#166534'} :
                      parseFloat(props.value) < 0 ? {background: '#FEE2E2', color: '#991B1B'} :
                      {background: '#FEF9C3', color: '#854D0E'}">
            {{ props.value }}
        </span>
    </q-td>
'''


def report_page(test_id: str, cache: InsightCache, viewer: Optional[str] = None):
    """Render the report for *test_id*.

    *cache* is shared by every open view; the loader (and its notion of
    which test this view is showing) belongs to this page alone.
    """
    content = build_layout(subtitle="Test Report")
    loader = InsightLoader(AggregationService(), cache)
    view = {"result": None, "error": None, "state": rs.ReportViewState()}
    refs: dict = {}

    # ------------------------------------------------------------------
    # Tab / scroll state
    # ------------------------------------------------------------------

    def _apply_display(state: rs.ReportViewState):
        sections, comments, body = refs.get("sections"), refs.get("comments"), refs.get("body")
        if sections is None:
            return
        showing_comments = state.displayed_tab == rs.SHOPPER_COMMENTS
        switching = state.fading and (
            (state.requested_tab == rs.SHOPPER_COMMENTS) != showing_comments
        )
        if switching:
            body.classes(add="opacity-0")
        else:
            body.classes(remove="opacity-0")
        sections.set_visibility(not showing_comments)
        comments.set_visibility(showing_comments)

    def _scroll_to(section_id: str):
        ui.run_javascript(
            f"document.getElementById({json.dumps(section_id)})"
            "?.scrollIntoView({behavior: 'smooth', block: 'start'})"
        )

    def dispatch(event):
        before = view["state"]
        after = rs.reduce(before, event)
        view["state"] = after
        tabs = refs.get("tabs")
        if tabs is not None and tabs.value != after.requested_tab:
            tabs.value = after.requested_tab
        if after.fading and not before.fading:
            fade_timer.activate()
        _apply_display(after)

    def _fade_done():
        fade_timer.deactivate()
        dispatch(rs.FadeCompleted())
        pending = refs.pop("scroll_to", None)
        if pending and view["state"].displayed_tab == pending:
            _scroll_to(pending)

    fade_timer = ui.timer(rs.FADE_SECONDS, _fade_done, active=False)

    def _on_tab_change(e):
        tab = e.value
        state = view["state"]
        if tab == state.requested_tab:
            return
        dispatch(rs.TabClicked(tab))
        if view["state"].requested_tab != tab:
            # Rejected (disabled tab); snap the tab bar back
            refs["tabs"].value = view["state"].requested_tab
            return
        if tab in rs.SECTION_IDS:
            if state.displayed_tab == rs.SHOPPER_COMMENTS:
                refs["scroll_to"] = tab
            else:
                _scroll_to(tab)

    def _on_section_visible(e):
        args = e.args or {}
        try:
            ratio = float(args.get("ratio") or 0)
        except (TypeError, ValueError):
            return
        dispatch(rs.SectionIntersected(section=str(args.get("id") or ""), ratio=ratio))

    ui.on(_SECTION_EVENT, _on_section_visible)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(force: bool = False):
        view["error"] = None
        if force or view["result"] is None:
            view["result"] = None
            refs.clear()
            render_body.refresh()
        try:
            result = await loader.load(test_id, force=force)
        except TestNotFoundError as exc:
            view["error"] = str(exc)
            render_body.refresh()
            return
        except (AggregationError, ResultStoreError, InsightEndpointError) as exc:
            logger.error("Report load for test %s failed: %s", test_id, exc)
            view["error"] = str(exc)
            ui.notify(f"Could not load report: {exc}", type="negative")
            render_body.refresh()
            return
        if result is None:
            # Superseded by a load for another test
            return

        view["result"] = result
        view["state"] = rs.initial_state(result.test.status, viewer, ELEVATED_VIEWERS)
        render_body.refresh()
        await asyncio.sleep(0.1)
        ui.run_javascript(_OBSERVER_JS)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def download_pdf():
        result = view["result"]
        if result is None:
            return
        dispatch(rs.PrintModeToggled(True))
        try:
            data = await asyncio.get_event_loop().run_in_executor(
                None, PdfReportExporter().render, result,
            )
            ui.download(data, pdf_filename(result.test.name))
            ui.notify("PDF report generated", type="positive")
        except Exception as exc:
            logger.exception("PDF download for test %s failed", test_id)
            ui.notify(f"PDF export failed: {exc}", type="negative")
        finally:
            dispatch(rs.PrintModeToggled(False))

    async def download_excel():
        result = view["result"]
        if result is None:
            return
        try:
            data = await asyncio.get_event_loop().run_in_executor(
                None, ExcelExporter().export_bytes, result,
            )
        except Exception as exc:
            logger.exception("Excel export for test %s failed", test_id)
            ui.notify(f"Export failed: {exc}", type="negative")
            return
        ui.download(data, export_filename(result.test.skin, result.test.name))
        ui.notify("Excel export generated", type="positive")

    async def regenerate():
        client = loader.service.insight_client
        try:
            await asyncio.get_event_loop().run_in_executor(
                None, client.trigger_regeneration, test_id,
            )
        except InsightEndpointError as exc:
            ui.notify(str(exc), type="negative")
            return
        ui.notify("Regenerating insights...", type="info")
        await load(force=True)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @ui.refreshable
    def render_body():
        if view["error"]:
            with ui.card().classes(CARD_CLASSES):
                with ui.row().classes("items-center gap-2"):
                    ui.icon("error", size="md").classes("text-negative")
                    ui.label(view["error"]).classes("text-body1")
                ui.button("Retry", icon="refresh", on_click=lambda: load(force=True)).props(
                    "color=primary outline"
                ).classes("mt-2")
            return

        result = view["result"]
        if result is None:
            with ui.row().classes("w-full justify-center p-8"):
                ui.spinner(size="lg")
            return

        state = view["state"]
        test = result.test
        with ui.row().classes("w-full items-center gap-3"):
            with ui.column().classes("gap-0"):
                page_header(test.name, subtitle=test.search_term and f"Search term: {test.search_term}")
            status_badge(test.status)
            ui.space()
            ui.button("Regenerate insights", icon="auto_awesome", on_click=regenerate).props(
                "color=accent outline size=sm"
            )
            ui.button("Reload", icon="refresh", on_click=lambda: load(force=True)).props(
                "color=primary flat size=sm"
            )
            ui.button("Download PDF", icon="picture_as_pdf", on_click=download_pdf).props(
                "color=primary size=sm"
            )
            ui.button("Download Excel", icon="download", on_click=download_excel).props(
                "color=positive size=sm"
            )

        with ui.tabs(value=state.requested_tab, on_change=_on_tab_change).classes(
            "w-full sticky top-14 z-10 bg-white"
        ) as tabs:
            for tab in rs.ALL_TABS:
                t = ui.tab(tab, label=rs.TAB_LABELS[tab])
                if tab in state.disabled_tabs:
                    t.props("disable")
        refs["tabs"] = tabs

        body = ui.column().classes("w-full gap-4 transition-opacity duration-150")
        refs["body"] = body
        with body:
            sections = ui.column().classes("w-full gap-4")
            with sections:
                renderers = {
                    rs.TEST_DETAILS: _render_test_details,
                    rs.RESULTS: _render_results,
                    rs.PURCHASE_DRIVERS: _render_purchase_drivers,
                    rs.COMPETITIVE_INSIGHTS: _render_competitive_insights,
                    rs.RECOMMENDATIONS: _render_recommendations,
                }
                for section_id in rs.SECTION_IDS:
                    if section_id in state.disabled_tabs:
                        continue
                    with ui.column().classes("w-full gap-2 scroll-mt-28").props(f"id={section_id}"):
                        renderers[section_id](result)
                if state.disabled_tabs:
                    with ui.card().classes(CARD_CLASSES):
                        ui.label(
                            "Results are available once this test is no longer a draft."
                        ).classes("text-body2 text-secondary")

            comments = ui.column().classes("w-full gap-4")
            with comments:
                _render_shopper_comments(result)
        refs["sections"], refs["comments"] = sections, comments
        _apply_display(state)

    with content:
        render_body()

    ui.timer(0.1, load, once=True)


# ----------------------------------------------------------------------
# Sections
# ----------------------------------------------------------------------


def _render_test_details(result: AggregationResult):
    test = result.test
    with ui.card().classes(CARD_CLASSES):
        section_header("Test Details", icon="assignment")
        with ui.row().classes("w-full gap-8 flex-wrap"):
            _detail("Store", SKIN_LABELS.get(test.skin, test.skin))
            _detail("Search term", test.search_term or "-")
            _detail("Created", test.created_at.strftime("%B %d, %Y") if test.created_at else "-")
            _detail("Testers", str(test.tester_count or len(result.respondents)))
            _detail("Competitors", str(len(test.competitors)))
        if test.objective:
            ui.label("Objective").classes("text-caption text-secondary mt-2")
            ui.label(test.objective).classes("text-body2")

    with ui.row().classes("w-full gap-4 flex-wrap"):
        for variant in test.available_variants:
            product = test.variants[variant]
            with ui.card().classes("flex-1 min-w-[240px] p-4"):
                with ui.row().classes("items-center gap-3 no-wrap"):
                    product_image(product.image_url)
                    with ui.column().classes("gap-1"):
                        variant_badge(variant)
                        ui.label(product.title).classes("text-body2 font-medium")
                        ui.label(format_price(product.price)).classes("text-caption text-secondary")

    demographics = build_demographic_charts(result.respondents, test.demographics)
    if demographics["age"] or demographics["gender"]:
        with ui.card().classes(CARD_CLASSES):
            subtitle = None
            if demographics["source"] == "test_setup":
                subtitle = "Audience selected when the test was created"
            section_header("Demographics", icon="groups", subtitle=subtitle)
            with ui.row().classes("w-full gap-4 flex-wrap"):
                for label, counts in (("Age", demographics["age"]), ("Gender", demographics["gender"])):
                    if not counts:
                        continue
                    ui.echart({
                        "title": {"text": label, "left": "center", "textStyle": {"fontSize": 14}},
                        "tooltip": {"trigger": "axis"},
                        "xAxis": {"type": "category", "data": list(counts.keys())},
                        "yAxis": {"type": "value", "minInterval": 1},
                        "series": [{
                            "data": list(counts.values()),
                            "type": "bar",
                            "color": VARIANT_COLORS["a"],
                            "itemStyle": {"borderRadius": [4, 4, 0, 0]},
                        }],
                    }).classes("flex-1 min-w-[320px] h-64")


def _detail(label: str, value: str):
    with ui.column().classes("gap-0"):
        ui.label(label).classes("text-caption text-secondary")
        ui.label(value).classes("text-body1 font-medium")


def _render_results(result: AggregationResult):
    with ui.card().classes(CARD_CLASSES):
        section_header("Summary Results", icon="leaderboard")
        with ui.row().classes("w-full gap-4 flex-wrap"):
            for row in result.summary:
                stats_card(
                    f"Variant {row.variant.upper()} share of buy",
                    row.share_of_buy_display,
                    icon="emoji_events" if row.win else "shopping_cart",
                    color="positive" if row.win else "primary",
                    caption=f"{row.share_of_clicks_display} clicks, value {row.value_score_display}",
                    highlight=row.win,
                )

        columns = [
            {"name": "variant", "label": "Variant", "field": "variant", "align": "left"},
            {"name": "clicks", "label": "Share of Clicks", "field": "clicks", "align": "right"},
            {"name": "buy", "label": "Share of Buy", "field": "buy", "align": "right"},
            {"name": "value", "label": "Value Score", "field": "value", "align": "right"},
            {"name": "win", "label": "Win", "field": "win", "align": "center"},
        ]
        rows = [
            {
                "variant": row.label,
                "clicks": row.share_of_clicks_display,
                "buy": row.share_of_buy_display,
                "value": row.value_score_display,
                "win": row.win_display,
            }
            for row in result.summary
        ]
        ui.table(columns=columns, rows=rows, row_key="variant").props(
            "flat bordered dense"
        ).classes("w-full mt-2")

    insight = result.ai_insight
    if insight and insight.comparison_between_variants:
        with ui.card().classes(CARD_CLASSES):
            section_header("Comparison Between Variants", icon="compare")
            narrative(insight.comparison_between_variants)


def _render_purchase_drivers(result: AggregationResult):
    insight = result.ai_insight
    variants = included_variants(result)
    rows = [r for r in result.purchase_drivers if r.variant in variants]

    with ui.card().classes(CARD_CLASSES):
        section_header("Purchase Drivers", icon="psychology")
        narrative(
            insight.purchase_drivers if insight else None,
            "No purchase driver insights are available yet.",
        )
        if not rows:
            return
        for row in rows:
            if row.low_confidence:
                low_confidence_banner(row.variant, row.count)
        ui.echart({
            "tooltip": {"trigger": "axis"},
            "legend": {"data": [f"Variant {r.variant.upper()}" for r in rows], "bottom": 0},
            "xAxis": {"type": "category", "data": [label for _, label in DRIVER_DIMENSIONS]},
            "yAxis": {"type": "value", "min": 0, "max": 5},
            "series": [
                {
                    "name": f"Variant {r.variant.upper()}",
                    "data": [round(s, 1) for s in r.scores()],
                    "type": "bar",
                    "color": VARIANT_COLORS[r.variant],
                    "itemStyle": {"borderRadius": [4, 4, 0, 0]},
                }
                for r in rows
            ],
            "grid": {"bottom": 60},
        }).classes("w-full h-72")


def _render_competitive_insights(result: AggregationResult):
    test = result.test
    variants = included_variants(result)
    with ui.card().classes(CARD_CLASSES):
        section_header("Competitive Insights", icon="groups")
        if not variants:
            ui.label("No competitive data has been collected yet.").classes(
                "text-body2 text-secondary"
            )
            return

        dim_columns = [
            {"name": name, "label": label, "field": name, "align": "right"}
            for name, label in DRIVER_DIMENSIONS
        ]
        columns = [
            {"name": "competitor", "label": "Competitor", "field": "competitor", "align": "left"},
            {"name": "price", "label": "Price", "field": "price", "align": "right"},
            {"name": "share", "label": "Share of Buy", "field": "share", "align": "right"},
        ] + dim_columns

        for variant in variants:
            product = test.variants[variant]
            with ui.column().classes("w-full gap-2 mt-2"):
                with ui.row().classes("items-center gap-2"):
                    variant_badge(variant)
                    ui.label(product.title).classes("text-subtitle2")
                narrative(result.narrative_for(variant))

                group = result.competitive.get(variant)
                if group is None or not group.rows:
                    continue
                rows = [
                    {
                        "key": row.key,
                        "competitor": row.title,
                        "price": format_price(row.price),
                        "share": row.share_of_buy_display,
                        **{name: f"{score:.1f}" for (name, _), score in zip(DRIVER_DIMENSIONS, row.scores())},
                    }
                    for row in group.rows
                ]
                rows.append({
                    "key": f"average-{variant}",
                    "competitor": "Average",
                    "price": "",
                    "share": "",
                    **{name: f"{score:.1f}" for (name, _), score in zip(DRIVER_DIMENSIONS, group.average_scores())},
                })
                table = ui.table(columns=columns, rows=rows, row_key="key").props(
                    "flat bordered dense"
                ).classes("w-full")
                for name, _ in DRIVER_DIMENSIONS:
                    table.add_slot(f"body-cell-{name}", _RATING_CELL_SLOT)
                ui.echart({
                    "tooltip": {"trigger": "item", "formatter": "{b}: {d}%"},
                    "series": [{
                        "type": "pie",
                        "radius": ["40%", "70%"],
                        "data": [
                            {"name": f"Variant {variant.upper()}", "value": group.test_product_selections,
                             "itemStyle": {"color": VARIANT_COLORS[variant]}},
                        ] + [
                            {"name": row.title[:40], "value": row.count,
                             "itemStyle": {"color": COMPETITOR_COLOR}}
                            for row in group.rows
                        ],
                    }],
                }).classes("w-full h-56")


def _render_recommendations(result: AggregationResult):
    insight = result.ai_insight
    with ui.card().classes(CARD_CLASSES):
        section_header("Recommendations", icon="lightbulb")
        narrative(
            insight.recommendations if insight else None,
            "No recommendations are available yet.",
        )


def _render_shopper_comments(result: AggregationResult):
    insight = result.ai_insight
    with ui.card().classes(CARD_CLASSES):
        section_header("Shopper Comments", icon="forum")
        if insight and insight.comment_summary:
            narrative(insight.comment_summary)

    if not result.comments:
        with ui.card().classes(CARD_CLASSES):
            ui.label("No shopper comments yet.").classes("text-body2 text-secondary")
        return

    for variant in VARIANTS:
        comments = result.comments_for(variant)
        if not comments:
            continue
        with ui.card().classes(CARD_CLASSES):
            with ui.row().classes("items-center gap-2 mb-2"):
                variant_badge(variant)
                ui.label(f"{len(comments)} comment{'s' if len(comments) != 1 else ''}").classes(
                    "text-caption text-secondary"
                )
            for comment in comments:
                with ui.column().classes("w-full gap-0 py-2 border-b border-grey-3"):
                    with ui.row().classes("items-center gap-2"):
                        ui.badge(
                            comment.comment_type,
                            color="grey-7" if comment.is_competitor_buyer else "accent",
                        ).props("outline")
                        if comment.product_title:
                            ui.label(comment.product_title).classes("text-caption text-secondary")
                    ui.label(comment.comment).classes("text-body2")
                    who = ", ".join(
                        str(part) for part in (comment.age, comment.sex, comment.country) if part
                    )
                    if who:
                        ui.label(who).classes("text-caption text-grey-6")
