"""Tab / scroll state machine for the report view.

The reducer is pure: ``reduce(state, event) -> state``.  The NiceGUI page
feeds it tab clicks, intersection events from the browser and print-mode
toggles, then renders whatever ``displayed_tab`` says.
"""
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Union

# Scroll sections, in page order
TEST_DETAILS = "test-details"
RESULTS = "results"
PURCHASE_DRIVERS = "purchase-drivers"
COMPETITIVE_INSIGHTS = "competitive-insights"
RECOMMENDATIONS = "recommendations"

SECTION_IDS = (TEST_DETAILS, RESULTS, PURCHASE_DRIVERS, COMPETITIVE_INSIGHTS, RECOMMENDATIONS)

# Shopper comments live behind a pseudo-tab that has no scroll section
SHOPPER_COMMENTS = "summary"

TAB_LABELS = {
    TEST_DETAILS: "Test Details",
    RESULTS: "Summary Results",
    PURCHASE_DRIVERS: "Purchase Drivers",
    COMPETITIVE_INSIGHTS: "Competitive Insights",
    RECOMMENDATIONS: "Recommendations",
    SHOPPER_COMMENTS: "Shopper Comments",
}

ALL_TABS = SECTION_IDS + (SHOPPER_COMMENTS,)

VISIBILITY_THRESHOLD = 0.5
FADE_SECONDS = 0.15


@dataclass(frozen=True)
class ReportViewState:
    requested_tab: str = TEST_DETAILS
    displayed_tab: str = TEST_DETAILS
    printing: bool = False
    disabled_tabs: frozenset = frozenset()

    @property
    def fading(self) -> bool:
        return self.requested_tab != self.displayed_tab


@dataclass(frozen=True)
class TabClicked:
    tab: str


@dataclass(frozen=True)
class SectionIntersected:
    section: str
    ratio: float


@dataclass(frozen=True)
class PrintModeToggled:
    printing: bool


@dataclass(frozen=True)
class FadeCompleted:
    pass


ReportEvent = Union[TabClicked, SectionIntersected, PrintModeToggled, FadeCompleted]


def reduce(state: ReportViewState, event: ReportEvent) -> ReportViewState:
    if isinstance(event, TabClicked):
        if event.tab not in ALL_TABS or event.tab in state.disabled_tabs:
            return state
        return replace(state, requested_tab=event.tab)

    if isinstance(event, SectionIntersected):
        # Scroll only ever drives the tab, never the other way round.
        if state.printing:
            return state
        if event.ratio < VISIBILITY_THRESHOLD:
            return state
        if event.section not in SECTION_IDS or event.section in state.disabled_tabs:
            return state
        if event.section == state.requested_tab:
            return state
        return replace(state, requested_tab=event.section)

    if isinstance(event, PrintModeToggled):
        return replace(state, printing=event.printing)

    if isinstance(event, FadeCompleted):
        if not state.fading:
            return state
        return replace(state, displayed_tab=state.requested_tab)

    raise TypeError(f"Unknown report event {event!r}")


def disabled_tabs_for(
    status: str,
    viewer: Optional[str],
    elevated_viewers: Iterable[str],
) -> frozenset:
    """Tabs a viewer cannot open.

    Draft tests only expose Test Details unless the viewer is elevated.  This
    is a display gate; the data itself is loaded either way.
    """
    if status != "draft":
        return frozenset()
    elevated = {e.lower() for e in elevated_viewers}
    if viewer and viewer.strip().lower() in elevated:
        return frozenset()
    return frozenset(t for t in ALL_TABS if t != TEST_DETAILS)


def initial_state(
    status: str,
    viewer: Optional[str] = None,
    elevated_viewers: Iterable[str] = (),
) -> ReportViewState:
    return ReportViewState(disabled_tabs=disabled_tabs_for(status, viewer, elevated_viewers))
