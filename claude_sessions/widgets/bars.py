"""Summary and empty-state bars for the session list."""

from __future__ import annotations

from rich.markup import escape
from textual.widgets import Static

from .._utils import format_currency
from ..core.models import SessionStatus, SessionSummary


class SummaryBar(Static):
    """Total cost plus active / idle / closed counts."""

    def __init__(self) -> None:
        super().__init__("", id="summary-bar")

    def show_summary(self, summary: SessionSummary, *, hidden_closed: bool = False) -> None:
        counts = (
            f"[{SessionStatus.ACTIVE.color}]Active: {summary.active}[/]"
            f" \u2022 [{SessionStatus.IDLE.color}]Idle: {summary.idle}[/]"
            f" \u2022 [{SessionStatus.CLOSED.color}]Closed: {summary.closed}[/]"
        )
        if hidden_closed and summary.closed:
            counts += " [dim](hidden)[/dim]"
        self.update(f" Total cost [b]{format_currency(summary.total_cost)}[/b]   {counts}")


class EmptyState(Static):
    """Shown instead of the table when there is nothing to list."""

    def __init__(self) -> None:
        super().__init__("", id="empty-state")

    def show_directory(self, session_dir: str) -> None:
        self.update(
            "[b]No Claude sessions[/b]\n\n"
            f"[dim]Waiting for status files in {escape(session_dir)}\n"
            "Sessions appear here once the statusline hook writes them.[/dim]"
        )
