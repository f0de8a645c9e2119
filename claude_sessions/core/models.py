"""Session records and the freshness classifier.

A :class:`Session` is an immutable snapshot built from one status file.
Liveness is never stored on the record: :meth:`Session.status` recomputes it
from the current time on every call, because "now" keeps moving between
scans.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..platform import abbreviate_home

# ---------------------------------------------------------------------------
# Liveness
# ---------------------------------------------------------------------------

#: Seconds without an update before a session stops being "active".
DEFAULT_ACTIVITY_THRESHOLD: float = 3.0

#: Seconds without an update before a session counts as closed.
DEFAULT_CLOSED_THRESHOLD: float = 3600.0


class SessionStatus(Enum):
    """Liveness of a session, derived from time since its last update."""

    ACTIVE = "active"
    IDLE = "idle"
    CLOSED = "closed"

    @property
    def priority(self) -> int:
        """Sort rank; lower sorts first."""
        return _PRIORITY[self]

    @property
    def icon(self) -> str:
        return {
            SessionStatus.ACTIVE: "\u25cf",  # ●
            SessionStatus.IDLE: "\u25d0",  # ◐
            SessionStatus.CLOSED: "\u25cb",  # ○
        }[self]

    @property
    def color(self) -> str:
        """Rich markup color name."""
        return {
            SessionStatus.ACTIVE: "green",
            SessionStatus.IDLE: "yellow",
            SessionStatus.CLOSED: "grey50",
        }[self]


_PRIORITY: dict[SessionStatus, int] = {
    SessionStatus.ACTIVE: 0,
    SessionStatus.IDLE: 1,
    SessionStatus.CLOSED: 2,
}


@dataclass(frozen=True)
class FreshnessThresholds:
    """Boundaries (in seconds) between the three liveness states."""

    activity: float = DEFAULT_ACTIVITY_THRESHOLD
    closed: float = DEFAULT_CLOSED_THRESHOLD


def classify(
    elapsed: float, thresholds: FreshnessThresholds = FreshnessThresholds()
) -> SessionStatus:
    """Map seconds since the last update to a :class:`SessionStatus`.

    A boundary value belongs to the later state: ``elapsed == activity``
    is idle, ``elapsed == closed`` is closed.
    """
    if elapsed < thresholds.activity:
        return SessionStatus.ACTIVE
    if elapsed < thresholds.closed:
        return SessionStatus.IDLE
    return SessionStatus.CLOSED


# ---------------------------------------------------------------------------
# Session record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelInfo:
    display_name: str
    id: str


@dataclass(frozen=True)
class ContextWindow:
    used_percentage: float
    max_tokens: int


@dataclass(frozen=True)
class TokenUsage:
    input: int
    output: int

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass(frozen=True)
class Cost:
    total: float
    input: float = 0.0
    output: float = 0.0


@dataclass(frozen=True)
class CodeImpact:
    lines_added: int
    lines_removed: int

    @property
    def net_change(self) -> int:
        return self.lines_added - self.lines_removed


@dataclass(frozen=True)
class Session:
    """Last-known snapshot of one Claude Code session."""

    session_id: str
    cwd: str
    model: ModelInfo
    context_window: ContextWindow
    token_usage: TokenUsage
    cost: Cost
    duration: float  # seconds
    code_impact: CodeImpact | None
    last_update_time: datetime
    name: str = ""  # custom title or summary from sessions-index.json
    first_prompt: str = ""
    project_dir: str = ""
    project_name: str = ""
    transcript_path: str = ""
    status_file: str = ""  # filename the record was read from

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the session: ``(session_id, cwd)``."""
        return (self.session_id, self.cwd)

    @property
    def display_path(self) -> str:
        """Working directory with the home prefix shortened to ``~``."""
        return abbreviate_home(self.cwd)

    @property
    def title(self) -> str:
        """Best label for the session: index name, else project, else path."""
        return self.name or self.project_name or self.display_path

    def seconds_since_update(self, now: datetime | None = None) -> float:
        now = now or datetime.now(tz=self.last_update_time.tzinfo)
        return (now - self.last_update_time).total_seconds()

    def status(
        self,
        now: datetime | None = None,
        thresholds: FreshnessThresholds = FreshnessThresholds(),
    ) -> SessionStatus:
        return classify(self.seconds_since_update(now), thresholds)


# ---------------------------------------------------------------------------
# Ordering and aggregates
# ---------------------------------------------------------------------------


def sort_sessions(
    sessions: Iterable[Session],
    now: datetime | None = None,
    thresholds: FreshnessThresholds = FreshnessThresholds(),
) -> list[Session]:
    """Order sessions by liveness tier, then most recently updated first.

    *now* is captured once so every record is classified against the same
    instant.
    """
    items = list(sessions)
    if not items:
        return []
    if now is None:
        now = datetime.now().astimezone()
    return sorted(
        items,
        key=lambda s: (
            s.status(now, thresholds).priority,
            -s.last_update_time.timestamp(),
        ),
    )


@dataclass(frozen=True)
class SessionSummary:
    """Totals shown under the session list."""

    total_cost: float
    active: int
    idle: int
    closed: int

    @property
    def count(self) -> int:
        return self.active + self.idle + self.closed


def summarize(
    sessions: Iterable[Session],
    now: datetime | None = None,
    thresholds: FreshnessThresholds = FreshnessThresholds(),
) -> SessionSummary:
    """Total cost and per-status counts for *sessions*."""
    if now is None:
        now = datetime.now().astimezone()
    counts = {status: 0 for status in SessionStatus}
    total_cost = 0.0
    for session in sessions:
        counts[session.status(now, thresholds)] += 1
        total_cost += session.cost.total
    return SessionSummary(
        total_cost=total_cost,
        active=counts[SessionStatus.ACTIVE],
        idle=counts[SessionStatus.IDLE],
        closed=counts[SessionStatus.CLOSED],
    )
