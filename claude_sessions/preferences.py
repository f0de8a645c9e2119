"""User preferences for Claude Sessions.

Loads monitor settings from ``~/.config/claude-sessions/preferences.yaml``.
Falls back to sensible defaults if the file doesn't exist or is invalid.
Creates a default file on first run so users can discover and edit it.

Settings can change while the monitor runs (the UI reloads the file, or a
caller updates a value directly).  :class:`PreferencesStore` holds the
current value and notifies subscribers of every change, so components are
handed the store at construction instead of reading a global.
"""

from __future__ import annotations

import copy
import math
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .core.models import (
    DEFAULT_ACTIVITY_THRESHOLD,
    DEFAULT_CLOSED_THRESHOLD,
    FreshnessThresholds,
)
from .log import logger
from .platform import config_dir

PREFS_PATH = config_dir() / "preferences.yaml"

DEFAULT_REFRESH_INTERVAL: float = 2.0

_DEFAULT_YAML = """\
# Claude Sessions Preferences
# Delete this file to reset to defaults.

monitor:
  refresh_interval: 2.0          # seconds between periodic rescans
  activity_threshold: 3.0        # seconds since last update before a session is idle
  closed_threshold: 3600.0       # seconds since last update before a session is closed
  session_directory: ""          # status-file directory (empty = ~/.claude_sessions)

display:
  show_closed_sessions: true     # list closed sessions below active and idle ones
"""


@dataclass
class MonitorPreferences:
    """Timing settings for the session watcher."""

    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    activity_threshold: float = DEFAULT_ACTIVITY_THRESHOLD
    closed_threshold: float = DEFAULT_CLOSED_THRESHOLD
    session_directory: str = ""  # Empty means use the default directory


@dataclass
class DisplayPreferences:
    """Display settings for the session list."""

    show_closed_sessions: bool = True


@dataclass
class Preferences:
    """Top-level preferences."""

    monitor: MonitorPreferences = field(default_factory=MonitorPreferences)
    display: DisplayPreferences = field(default_factory=DisplayPreferences)

    @property
    def thresholds(self) -> FreshnessThresholds:
        return FreshnessThresholds(
            activity=self.monitor.activity_threshold,
            closed=self.monitor.closed_threshold,
        )

    @property
    def session_dir(self) -> Path | None:
        if self.monitor.session_directory:
            return Path(self.monitor.session_directory).expanduser()
        return None

    def to_dict(self) -> dict:
        return {
            "monitor": {
                "refresh_interval": self.monitor.refresh_interval,
                "activity_threshold": self.monitor.activity_threshold,
                "closed_threshold": self.monitor.closed_threshold,
                "session_directory": self.monitor.session_directory,
            },
            "display": {
                "show_closed_sessions": self.display.show_closed_sessions,
            },
        }


_POSITIVE_FIELDS = frozenset({"refresh_interval", "activity_threshold", "closed_threshold"})


def _positive(value: object) -> float | None:
    """Return *value* as a float if it is a positive number, else ``None``.

    Zero is treated as unset, matching how the values were stored before
    they moved to YAML.
    """
    if isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if number > 0 and math.isfinite(number) else None


def _apply(prefs: Preferences, data: dict) -> None:
    if isinstance(data.get("monitor"), dict):
        mdata = data["monitor"]
        for key in _POSITIVE_FIELDS:
            if key in mdata:
                number = _positive(mdata[key])
                if number is not None:
                    setattr(prefs.monitor, key, number)
        if "session_directory" in mdata:
            prefs.monitor.session_directory = str(mdata["session_directory"] or "")
    if isinstance(data.get("display"), dict):
        ddata = data["display"]
        if "show_closed_sessions" in ddata:
            prefs.display.show_closed_sessions = bool(ddata["show_closed_sessions"])


def load_preferences(path: Path | None = None) -> Preferences:
    """Load preferences from YAML file.

    Falls back to sensible defaults if the file doesn't exist or is invalid.
    Creates a default preferences file on first run.
    """
    path = path or PREFS_PATH
    prefs = Preferences()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if isinstance(data, dict):
                _apply(prefs, data)
        except (OSError, yaml.YAMLError):
            logger.warning("Invalid preferences file %s, using defaults", path, exc_info=True)
            return Preferences()
    else:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(_DEFAULT_YAML, encoding="utf-8")
        except OSError:
            logger.debug("Could not write default preferences to %s", path, exc_info=True)

    return prefs


def save_preferences(prefs: Preferences, path: Path | None = None) -> None:
    """Write *prefs* to *path* as YAML."""
    path = path or PREFS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(prefs.to_dict(), sort_keys=False, default_flow_style=False),
        encoding="utf-8",
    )


# ---------------------------------------------------------------------------
# Live store
# ---------------------------------------------------------------------------

#: Subscriber callback: ``(old, new)``.  Both are private copies.
PreferencesListener = Callable[[Preferences, Preferences], None]


class PreferencesStore:
    """Thread-safe holder of the current :class:`Preferences`.

    Subscribers are called synchronously on the thread that made the change,
    after the new value is visible through :attr:`current`.
    """

    def __init__(self, prefs: Preferences | None = None, path: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._prefs = prefs if prefs is not None else Preferences()
        self._path = path
        self._listeners: list[PreferencesListener] = []

    @classmethod
    def from_file(cls, path: Path | None = None) -> PreferencesStore:
        path = path or PREFS_PATH
        return cls(load_preferences(path), path=path)

    @property
    def current(self) -> Preferences:
        """A snapshot copy; mutating it does not affect the store."""
        with self._lock:
            return copy.deepcopy(self._prefs)

    @property
    def thresholds(self) -> FreshnessThresholds:
        with self._lock:
            return self._prefs.thresholds

    @property
    def refresh_interval(self) -> float:
        with self._lock:
            return self._prefs.monitor.refresh_interval

    def subscribe(self, listener: PreferencesListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def replace(self, prefs: Preferences) -> None:
        """Swap in *prefs* and notify subscribers if anything changed."""
        with self._lock:
            old = self._prefs
            self._prefs = copy.deepcopy(prefs)
            listeners = list(self._listeners)
        if old == prefs:
            return
        for listener in listeners:
            try:
                listener(copy.deepcopy(old), copy.deepcopy(prefs))
            except Exception:
                logger.exception("Preferences listener %r failed", listener)

    def update(self, **changes: object) -> None:
        """Change individual settings by field name, e.g. ``refresh_interval=5``.

        Raises :class:`ValueError` if an interval or threshold is not a
        positive number; nothing is changed in that case.
        """
        prefs = self.current
        for key, value in changes.items():
            if key in _POSITIVE_FIELDS:
                number = _positive(value)
                if number is None:
                    raise ValueError(f"{key} must be a positive number, got {value!r}")
                setattr(prefs.monitor, key, number)
            elif hasattr(prefs.monitor, key):
                setattr(prefs.monitor, key, value)
            elif hasattr(prefs.display, key):
                setattr(prefs.display, key, value)
            else:
                raise AttributeError(f"Unknown preference: {key}")
        self.replace(prefs)

    def reload(self) -> Preferences:
        """Re-read the backing file (if any) and publish the result."""
        if self._path is None:
            return self.current
        prefs = load_preferences(self._path)
        self.replace(prefs)
        return prefs

    def save(self) -> None:
        """Persist the current value to the backing file."""
        if self._path is not None:
            save_preferences(self.current, self._path)
