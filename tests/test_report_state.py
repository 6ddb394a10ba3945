import pytest

from src.services import report_state as rs


def _settle(state):
    return rs.reduce(state, rs.FadeCompleted())


def test_tab_click_requests_then_fade_displays():
    state = rs.reduce(rs.ReportViewState(), rs.TabClicked(rs.RESULTS))
    assert state.requested_tab == rs.RESULTS
    assert state.displayed_tab == rs.TEST_DETAILS
    assert state.fading

    state = _settle(state)
    assert state.displayed_tab == rs.RESULTS
    assert not state.fading


def test_shopper_comments_pseudo_tab_is_clickable():
    state = _settle(rs.reduce(rs.ReportViewState(), rs.TabClicked(rs.SHOPPER_COMMENTS)))
    assert state.displayed_tab == rs.SHOPPER_COMMENTS


def test_unknown_tab_is_ignored():
    state = rs.ReportViewState()
    assert rs.reduce(state, rs.TabClicked("pricing")) is state


@pytest.mark.parametrize("ratio, expected", [(0.49, rs.TEST_DETAILS), (0.5, rs.PURCHASE_DRIVERS), (0.9, rs.PURCHASE_DRIVERS)])
def test_intersection_threshold(ratio, expected):
    state = rs.reduce(rs.ReportViewState(), rs.SectionIntersected(rs.PURCHASE_DRIVERS, ratio))
    assert state.requested_tab == expected


def test_intersection_ignored_while_printing():
    state = rs.reduce(rs.ReportViewState(), rs.PrintModeToggled(True))
    after = rs.reduce(state, rs.SectionIntersected(rs.RECOMMENDATIONS, 1.0))
    assert after is state

    state = rs.reduce(state, rs.PrintModeToggled(False))
    assert rs.reduce(state, rs.SectionIntersected(rs.RECOMMENDATIONS, 1.0)).requested_tab == rs.RECOMMENDATIONS


def test_intersection_never_selects_pseudo_tab():
    state = rs.ReportViewState()
    assert rs.reduce(state, rs.SectionIntersected(rs.SHOPPER_COMMENTS, 1.0)) is state


def test_intersection_of_current_tab_is_noop():
    state = rs.ReportViewState()
    assert rs.reduce(state, rs.SectionIntersected(rs.TEST_DETAILS, 1.0)) is state


def test_fade_completion_without_pending_change_is_noop():
    state = rs.ReportViewState()
    assert rs.reduce(state, rs.FadeCompleted()) is state


def test_latest_request_wins_after_fade():
    state = rs.reduce(rs.ReportViewState(), rs.TabClicked(rs.RESULTS))
    state = rs.reduce(state, rs.SectionIntersected(rs.COMPETITIVE_INSIGHTS, 0.8))
    state = _settle(state)
    assert state.displayed_tab == rs.COMPETITIVE_INSIGHTS


def test_draft_gate_for_regular_viewer():
    state = rs.initial_state("draft", viewer="shopper@example.com", elevated_viewers={"admin@example.com"})
    assert state.disabled_tabs == frozenset(t for t in rs.ALL_TABS if t != rs.TEST_DETAILS)

    assert rs.reduce(state, rs.TabClicked(rs.RESULTS)) is state
    assert rs.reduce(state, rs.SectionIntersected(rs.RESULTS, 1.0)) is state


def test_draft_gate_lifted_for_elevated_viewer():
    state = rs.initial_state("draft", viewer=" Admin@Example.com ", elevated_viewers={"admin@example.com"})
    assert state.disabled_tabs == frozenset()


def test_published_tests_are_ungated():
    assert rs.disabled_tabs_for("active", None, ()) == frozenset()


def test_unknown_event_type_raises():
    with pytest.raises(TypeError):
        rs.reduce(rs.ReportViewState(), object())
