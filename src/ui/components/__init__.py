"""Reusable UI components."""
from src.ui.components.stats_card import stats_card
from src.ui.components.helpers import format_price, low_confidence_banner, narrative, section_header

__all__ = ["stats_card", "format_price", "low_confidence_banner", "narrative", "section_header"]
