"""Claude Sessions TUI application.

The app is the consumer side of the session monitor.  A
:class:`~claude_sessions.core.features.session_watcher.SessionWatcher` scans
on its own thread and hands each snapshot to :meth:`SessionsApp._post_snapshot`,
which posts a :class:`SessionsUpdated` message.  Textual delivers the message
on the UI thread, where the displayed list is replaced in one step.

Key actions only issue commands (refresh, remove) or OS pass-throughs; the
list on screen changes only when a new snapshot arrives.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message
from textual.widgets import DataTable, Footer, Static

from ._utils import format_number
from .core.features.session_scanner import SessionScanner
from .core.features.session_watcher import SessionSnapshot, SessionWatcher
from .core.models import Session, SessionStatus, summarize
from .log import logger
from .platform import (
    copy_to_clipboard,
    open_terminal,
    resume_command,
    reveal_in_file_browser,
)
from .preferences import PreferencesStore
from .widgets import EmptyState, SessionTable, SummaryBar


def detail_markup(session: Session) -> str:
    """Markup for the detail bar under the table.

    Everything taken from status and index files is escaped, since names and
    prompts often contain square brackets.
    """
    lines = (
        f"{escape(session.display_path)}  "
        f"[dim]{escape(session.session_id)}  "
        f"{format_number(session.token_usage.total)} tokens[/dim]"
    )
    if session.first_prompt:
        prompt = " ".join(session.first_prompt.split())
        lines += f"\n[dim]\u201c{escape(prompt[:200])}\u201d[/dim]"
    return lines


class SessionsUpdated(Message):
    """A new scan result is ready (posted from the watcher thread)."""

    def __init__(self, snapshot: SessionSnapshot) -> None:
        super().__init__()
        self.snapshot = snapshot


# ── Main Application ────────────────────────────────────────────────


class SessionsApp(App):
    """Live list of Claude Code sessions."""

    TITLE = "Claude Sessions"

    CSS = """
    #title-bar {
        height: 1;
        background: $panel;
        color: $text;
        text-style: bold;
    }
    #session-table {
        height: 1fr;
    }
    #empty-state {
        height: 1fr;
        content-align: center middle;
        text-align: center;
        display: none;
    }
    #detail-bar {
        height: 2;
        color: $text-muted;
        padding: 0 1;
    }
    #summary-bar {
        height: 1;
        background: $panel;
    }
    """

    BINDINGS = [
        Binding("r", "refresh", "Refresh", show=True),
        Binding("d", "remove_session", "Remove", show=True),
        Binding("enter", "resume", "Resume", show=True),
        Binding("c", "copy_resume", "Copy cmd", show=True),
        Binding("t", "open_terminal", "Terminal", show=True),
        Binding("f", "reveal", "Files", show=True),
        Binding("h", "toggle_closed", "Closed", show=True),
        Binding("p", "reload_preferences", "Reload prefs", show=False),
        Binding("q", "quit", "Quit", show=True),
    ]

    def __init__(
        self,
        preferences: PreferencesStore | None = None,
        session_dir: Path | None = None,
        index_root: Path | None = None,
    ) -> None:
        super().__init__()
        self.prefs = preferences if preferences is not None else PreferencesStore.from_file()
        scanner = SessionScanner(session_dir or self.prefs.current.session_dir, index_root)
        self.watcher = SessionWatcher(scanner, self.prefs, self._post_snapshot)
        self._sessions: tuple[Session, ...] = ()
        self._sequence = 0
        self.scanned_at: datetime | None = None

    # ── Layout ──────────────────────────────────────────────────

    def compose(self) -> ComposeResult:
        yield Static(" Claude Sessions", id="title-bar")
        yield SessionTable()
        yield EmptyState()
        yield Static("", id="detail-bar")
        yield SummaryBar()
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(EmptyState).show_directory(str(self.watcher.session_dir))
        self.watcher.start()
        # Liveness moves with the clock, so re-render between scans.
        self.set_interval(1.0, self._render_sessions)
        self.query_one(SessionTable).focus()

    def on_unmount(self) -> None:
        self.watcher.stop()

    # ── Publication ─────────────────────────────────────────────

    def _post_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Watcher thread -> UI thread.  ``post_message`` is thread-safe."""
        self.post_message(SessionsUpdated(snapshot))

    def on_sessions_updated(self, message: SessionsUpdated) -> None:
        snapshot = message.snapshot
        if snapshot.sequence <= self._sequence:
            return
        self._sequence = snapshot.sequence
        self._sessions = snapshot.sessions
        self.scanned_at = snapshot.scanned_at
        self.query_one("#title-bar", Static).update(
            f" Claude Sessions  [dim]scanned {snapshot.scanned_at:%H:%M:%S}[/dim]"
        )
        self._render_sessions()

    @property
    def sessions(self) -> tuple[Session, ...]:
        """The list currently shown (before the closed-session filter)."""
        return self._sessions

    # ── Rendering ───────────────────────────────────────────────

    def _visible_sessions(self, now: datetime) -> list[Session]:
        prefs = self.prefs.current
        if prefs.display.show_closed_sessions:
            return list(self._sessions)
        thresholds = prefs.thresholds
        return [
            s for s in self._sessions if s.status(now, thresholds) is not SessionStatus.CLOSED
        ]

    def _render_sessions(self) -> None:
        prefs = self.prefs.current
        now = datetime.now().astimezone()
        visible = self._visible_sessions(now)

        table = self.query_one(SessionTable)
        table.show_sessions(visible, now, prefs.thresholds)
        was_hidden = not table.display
        table.display = bool(visible)
        if visible and was_hidden:
            table.focus()
        self.query_one(EmptyState).display = not visible

        self.query_one(SummaryBar).show_summary(
            summarize(self._sessions, now, prefs.thresholds),
            hidden_closed=not prefs.display.show_closed_sessions,
        )
        self._update_detail(table.selected_session())

    def _update_detail(self, session: Session | None) -> None:
        detail = self.query_one("#detail-bar", Static)
        if session is None:
            detail.update("")
            return
        detail.update(detail_markup(session))

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self._update_detail(self.query_one(SessionTable).selected_session())

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        # The focused table consumes Enter before the app binding sees it.
        self.action_resume()

    # ── Actions ─────────────────────────────────────────────────

    def _selected(self) -> Session | None:
        session = self.query_one(SessionTable).selected_session()
        if session is None:
            self.notify("No session selected", severity="warning")
        return session

    def action_refresh(self) -> None:
        self.watcher.refresh()

    def action_remove_session(self) -> None:
        session = self._selected()
        if session is None:
            return
        self.watcher.remove(session)
        self.notify(f"Removed {escape(session.title)}")

    def action_resume(self) -> None:
        session = self._selected()
        if session is None:
            return
        command = resume_command(session.cwd, session.session_id)
        if not open_terminal(session.cwd, command):
            self.notify("No terminal found; command copied instead", severity="warning")
            copy_to_clipboard(command)

    def action_copy_resume(self) -> None:
        session = self._selected()
        if session is None:
            return
        if copy_to_clipboard(resume_command(session.cwd, session.session_id)):
            self.notify("Resume command copied")
        else:
            self.notify("Clipboard unavailable", severity="error")

    def action_open_terminal(self) -> None:
        session = self._selected()
        if session is not None and not open_terminal(session.cwd):
            self.notify("No terminal found", severity="error")

    def action_reveal(self) -> None:
        session = self._selected()
        if session is not None and not reveal_in_file_browser(session.cwd):
            self.notify("No file browser found", severity="error")

    def action_toggle_closed(self) -> None:
        show = not self.prefs.current.display.show_closed_sessions
        self.prefs.update(show_closed_sessions=show)
        try:
            self.prefs.save()
        except OSError:
            logger.warning("Could not save preferences", exc_info=True)
        self._render_sessions()
        self.notify("Showing closed sessions" if show else "Hiding closed sessions")

    def action_reload_preferences(self) -> None:
        prefs = self.prefs.reload()
        self._render_sessions()
        self.notify(f"Preferences reloaded (refresh every {prefs.monitor.refresh_interval:g}s)")


# ── Entry Point ─────────────────────────────────────────────────────


def run_app(
    session_dir: Path | None = None,
    refresh_interval: float | None = None,
) -> None:
    """Run the Claude Sessions TUI."""
    prefs = PreferencesStore.from_file()
    if refresh_interval is not None:
        prefs.update(refresh_interval=refresh_interval)
    app = SessionsApp(preferences=prefs, session_dir=session_dir)
    app.run()
