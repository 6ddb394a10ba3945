"""Shared layout: header bar and content area."""
from nicegui import ui

from config import APP_TITLE


def build_layout(title: str = APP_TITLE, subtitle: str | None = None):
    """Create the shared page layout and return its content column."""
    ui.colors(
        primary="#075532",
        secondary="#5f6368",
        accent="#34A270",
        positive="#34a853",
        negative="#ea4335",
        warning="#E0A800",
    )

    with ui.header().classes("items-center justify-between px-4 bg-primary"):
        with ui.row().classes("items-center gap-3"):
            ui.icon("insights", size="md").classes("text-white")
            ui.label(title).classes("text-subtitle1 text-white font-bold")
            if subtitle:
                ui.separator().props("vertical").classes("bg-white opacity-30")
                ui.label(subtitle).classes("text-subtitle2 text-white opacity-80")
        ui.space()

    # Main content container
    content = ui.column().classes("w-full p-6 max-w-7xl mx-auto gap-4")
    return content
