"""Shared UI helper functions and design tokens for the report view."""

from nicegui import ui


# ─── Design Tokens ────────────────────────────────────────────────────────────

# Card & layout
CARD_CLASSES = "w-full p-5"

# Variant series colors (charts, badges); kept in step with the PDF palette
VARIANT_COLORS = {
    "a": "#34A270",
    "b": "#075532",
    "c": "#E0D30D",
}
COMPETITOR_COLOR = "#9CA3AF"

# Test status badge colors and labels
STATUS_COLORS = {
    "draft": "grey-5",
    "active": "blue",
    "complete": "positive",
    "completed": "positive",
}


def page_header(title: str, subtitle: str | None = None, icon: str | None = None):
    """Render a consistent page title with optional icon + subtitle."""
    with ui.row().classes("items-center gap-3"):
        if icon:
            ui.icon(icon, size="sm").classes("text-accent")
        ui.label(title).classes("text-h5 font-bold")
    if subtitle:
        ui.label(subtitle).classes("text-body2 text-secondary")


def section_header(title: str, icon: str | None = None, subtitle: str | None = None):
    """Render a consistent card section header with accent-colored icon."""
    with ui.row().classes("items-center gap-2 mb-2"):
        if icon:
            ui.icon(icon).classes("text-accent")
        ui.label(title).classes("text-subtitle1 font-bold")
    if subtitle:
        ui.label(subtitle).classes("text-caption text-secondary")


def status_badge(status: str):
    ui.badge(
        (status or "draft").replace("_", " ").title(),
        color=STATUS_COLORS.get(status, "grey-5"),
    ).props("rounded")


def variant_badge(variant: str):
    ui.badge(f"Variant {variant.upper()}").style(
        f"background-color: {VARIANT_COLORS.get(variant, COMPETITOR_COLOR)}"
    ).props("rounded")


def low_confidence_banner(variant: str, count: int):
    """Warn that a variant's purchase-driver averages rest on 0 or 1 response."""
    noun = "response" if count == 1 else "responses"
    with ui.row().classes(
        "items-center gap-2 w-full px-3 py-2 rounded bg-yellow-1 text-yellow-10"
    ):
        ui.icon("warning", size="sm").classes("text-warning")
        ui.label(
            f"Low confidence: Variant {variant.upper()} has {count} purchase driver "
            f"{noun}, so its scores are not representative."
        ).classes("text-body2")


def narrative(text: str | None, empty_text: str | None = None):
    """Render a markdown narrative block, or *empty_text* when it is absent."""
    if text:
        ui.markdown(text).classes("w-full text-body2")
    elif empty_text:
        ui.label(empty_text).classes("text-body2 text-secondary italic")


def product_image(url: str | None, size: int = 64) -> None:
    """Render a product image, falling back to a neutral placeholder."""
    if url:
        ui.image(url).classes("rounded-lg object-contain bg-white").style(
            f"width: {size}px; height: {size}px; flex-shrink: 0"
        )
    else:
        with ui.element("div").classes(
            "rounded-lg bg-grey-3 flex items-center justify-center"
        ).style(f"width: {size}px; height: {size}px; flex-shrink: 0"):
            ui.icon("image", size="sm").classes("text-grey-6")


def format_price(price, na_text: str = "-") -> str:
    """Format a single price into a display string."""
    if price is None:
        return na_text
    return f"${price:,.2f}"
