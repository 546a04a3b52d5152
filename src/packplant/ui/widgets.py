from __future__ import annotations

from contextlib import contextmanager

from nicegui import ui

from packplant.core.models import EditState


_THEME_APPLIED = False

EDIT_STATE_BADGES: dict[EditState, tuple[str, str]] = {
    EditState.IDLE: ("", "grey-6"),
    EditState.SAVING: ("Guardando…", "warning"),
    EditState.SUCCESS: ("Guardado", "positive"),
    EditState.ERROR: ("Error", "negative"),
}


def apply_theme() -> None:
    ui.colors(
        primary="#15803d",  # green-700
        secondary="#0ea5e9",  # sky-500
        positive="#16a34a",  # green-600
        negative="#dc2626",  # red-600
        warning="#f59e0b",  # amber-500
    )

    ui.add_css(
        """
        body { background: #f8fafc; }
        .pp-container { max-width: 1200px; margin: 0 auto; padding: 16px; }
        .pp-subtitle { color: #475569; }
        .pp-header { border-bottom: 1px solid rgba(15, 23, 42, 0.08); }
        .pp-kpi .q-card { border: 1px solid rgba(15, 23, 42, 0.08); }
        .pp-weighing-table .q-table th, .pp-weighing-table .q-table td { padding: 4px 6px; }
        """
    )


def ensure_theme() -> None:
    """Apply theme once, but only when called from within a page context."""
    global _THEME_APPLIED
    if _THEME_APPLIED:
        return
    apply_theme()
    _THEME_APPLIED = True


@contextmanager
def page_container():
    with ui.element("div").classes("pp-container"):
        yield


def render_nav(active: str | None = None, *, title: str = "Empacadora") -> None:
    ensure_theme()
    active_key = active or "inventario"
    sections: list[tuple[str, str, str]] = [
        ("inventario", "Inventario", "/"),
        ("ordenes", "Órdenes", "/ordenes"),
    ]

    with ui.header().classes("pp-header bg-white text-slate-900"):
        with ui.row().classes("w-full items-center justify-between gap-4 px-4 py-2"):
            ui.label(title).classes("text-xl md:text-2xl font-semibold leading-none")
            with ui.row().classes("items-center gap-1"):
                for key, label, path in sections:
                    props = "dense no-caps color=primary" + (" unelevated" if key == active_key else " flat")
                    ui.button(label, on_click=lambda p=path: ui.navigate.to(p)).props(props)


def kpi_card(label: str, value: str) -> None:
    with ui.card().classes("p-4 min-w-[180px]"):
        ui.label(label).classes("text-sm text-slate-600")
        ui.label(value).classes("text-2xl font-semibold")


def fmt_kg(value: float | None) -> str:
    return f"{float(value or 0):,.1f} kg"


def edit_state_badge(state: EditState) -> tuple[str, str]:
    return EDIT_STATE_BADGES.get(state, ("", "grey-6"))


def notify(level: str, message: str) -> None:
    """Route coordinator/service notifications to NiceGUI toasts."""
    ui.notify(message, type=level if level in {"positive", "negative", "warning", "info"} else "info")
