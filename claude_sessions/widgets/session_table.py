"""DataTable listing one row per session."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from rich.markup import escape
from textual.widgets import DataTable

from .._utils import (
    _context_color,
    format_currency,
    format_duration,
    format_line_delta,
    format_percentage,
    format_relative_time,
    format_tokens,
    truncate,
)
from ..core.models import FreshnessThresholds, Session

# Column definitions: (key, label, width)
_COLUMNS: list[tuple[str, str, int | None]] = [
    ("status", "", 2),
    ("session", "Session", 28),
    ("model", "Model", 14),
    ("context", "Context", 8),
    ("tokens", "Tokens", 8),
    ("cost", "Cost", 9),
    ("duration", "Time", 8),
    ("lines", "Lines", 11),
    ("updated", "Updated", None),  # None = auto / fill
]


class SessionTable(DataTable):
    """Session rows in published order."""

    def __init__(self) -> None:
        super().__init__(id="session-table", cursor_type="row", zebra_stripes=True)
        self._rows: list[Session] = []

    def on_mount(self) -> None:
        for key, label, width in _COLUMNS:
            if width is not None:
                self.add_column(label, key=key, width=width)
            else:
                self.add_column(label, key=key)

    @property
    def sessions(self) -> list[Session]:
        return list(self._rows)

    def show_sessions(
        self,
        sessions: Sequence[Session],
        now: datetime,
        thresholds: FreshnessThresholds,
    ) -> None:
        """Replace all rows, keeping the cursor on the same session if present."""
        selected = self.selected_session()
        self.clear()
        self._rows = list(sessions)

        for session in self._rows:
            self.add_row(*self._cells(session, now, thresholds))

        if selected is not None:
            for index, session in enumerate(self._rows):
                if session.key == selected.key:
                    self.move_cursor(row=index)
                    break

    def selected_session(self) -> Session | None:
        if not self._rows or self.cursor_row < 0 or self.cursor_row >= len(self._rows):
            return None
        return self._rows[self.cursor_row]

    @staticmethod
    def _cells(
        session: Session, now: datetime, thresholds: FreshnessThresholds
    ) -> tuple[str, ...]:
        status = session.status(now, thresholds)
        pct = session.context_window.used_percentage

        if session.code_impact is not None:
            lines = format_line_delta(
                session.code_impact.lines_added, session.code_impact.lines_removed
            )
        else:
            lines = "[dim]-[/dim]"

        return (
            f"[{status.color}]{status.icon}[/]",
            escape(truncate(session.title, 28)),
            escape(truncate(session.model.display_name, 14)),
            f"[{_context_color(pct)}]{format_percentage(pct)}[/]",
            format_tokens(session.token_usage.total),
            format_currency(session.cost.total),
            format_duration(session.duration),
            lines,
            format_relative_time(session.last_update_time, now),
        )
