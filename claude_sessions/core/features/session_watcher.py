"""Session watcher -- keeps the published session list in step with disk.

:class:`SessionWatcher` owns three trigger sources and one worker thread:

* an :class:`IntervalTimer` firing every ``refresh_interval`` seconds,
* a ``watchdog`` observer reporting create/modify/delete/move events for
  status files in the watch directory,
* explicit :meth:`SessionWatcher.refresh` / :meth:`SessionWatcher.remove`
  calls from the UI.

Triggers never scan themselves.  They set a single pending flag under a
condition variable and the worker thread runs the scan, so scans never
overlap and any number of triggers arriving during a scan collapse into one
follow-up scan.  Remove commands go through the same worker, so a delete
can never race a scan.  Scans and deletes also hold one lock, so a worker
still finishing after a stop cannot overlap the worker of the next start.

Every scan takes a sequence number.  A result is handed to the ``publish``
callback only while the watcher is running and only if it is newer than the
last published result.  The callback runs on the worker thread and receives
an immutable :class:`SessionSnapshot`; it is the consumer's job to move it
onto its own thread (the Textual app posts a message).

If the observer cannot be started the watcher logs it and keeps scanning on
the timer alone.
"""

from __future__ import annotations

import os
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ...log import logger
from ...platform import is_status_file_name, status_file_name
from ..errors import DeleteFailed, DirectoryUnavailable, SubscriptionSetupFailed
from ..models import Session
from .session_scanner import SessionScanner

if TYPE_CHECKING:
    from ...preferences import Preferences, PreferencesStore

#: Seconds to wait for background threads when stopping.
_JOIN_TIMEOUT: float = 2.0

#: watchdog event types that can change the set of status files.
_RELEVANT_EVENTS: frozenset[str] = frozenset({"created", "modified", "deleted", "moved"})


class WatcherState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class SessionSnapshot:
    """One published scan result."""

    sessions: tuple[Session, ...]
    sequence: int
    scanned_at: datetime = field(default_factory=lambda: datetime.now().astimezone())


PublishCallback = Callable[[SessionSnapshot], None]


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------


class IntervalTimer:
    """Call *callback* every *interval* seconds on a daemon thread.

    :meth:`set_interval` changes the period of the running timer in place:
    the current wait is abandoned and the next tick comes one new interval
    after the change.  There is only ever one timer thread, so a change can
    neither drop the timer nor make it fire twice.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], object],
        name: str = "session-timer",
    ) -> None:
        if interval <= 0:
            raise ValueError(f"timer interval must be positive, got {interval!r}")
        self._interval = interval
        self._callback = callback
        self._cond = threading.Condition()
        self._stopped = False
        self._reset = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def interval(self) -> float:
        with self._cond:
            return self._interval

    def start(self) -> None:
        self._thread.start()

    def set_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError(f"timer interval must be positive, got {seconds!r}")
        with self._cond:
            if seconds == self._interval:
                return
            self._interval = seconds
            self._reset = True
            self._cond.notify_all()

    def stop(self) -> None:
        """Stop the timer.  Safe to call more than once."""
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=_JOIN_TIMEOUT)

    def _wait_for_tick(self) -> bool:
        """Block until the next tick is due.  Returns ``False`` once stopped.

        Caller holds ``self._cond``.
        """
        deadline = time.monotonic() + self._interval
        while not self._stopped:
            if self._reset:
                self._reset = False
                deadline = time.monotonic() + self._interval
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            self._cond.wait(remaining)
        return False

    def _run(self) -> None:
        while True:
            with self._cond:
                if not self._wait_for_tick():
                    return
            try:
                self._callback()
            except Exception:
                logger.exception("Interval timer callback failed")


# ---------------------------------------------------------------------------
# Filesystem events
# ---------------------------------------------------------------------------


class _StatusDirHandler(FileSystemEventHandler):
    """Forward changes to status files in the watch directory."""

    def __init__(self, on_change: Callable[[], object]) -> None:
        super().__init__()
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _RELEVANT_EVENTS or event.is_directory:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        for path in paths:
            if path and is_status_file_name(os.path.basename(os.fsdecode(path))):
                self._on_change()
                return


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


def delete_status_file(path: Path) -> None:
    """Remove one status file.

    Raises :class:`DeleteFailed` if the file is already gone or cannot be
    removed.
    """
    try:
        path.unlink()
    except OSError as exc:
        raise DeleteFailed(f"cannot remove {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------


class SessionWatcher:
    """Drive :class:`SessionScanner` from timer ticks and directory events.

    Parameters
    ----------
    scanner:
        Scanner for the watch directory.
    preferences:
        Live settings.  ``refresh_interval`` changes retune the timer; the
        freshness thresholds are read at the start of every scan.
    publish:
        Called on the worker thread with each new :class:`SessionSnapshot`.
    observer_factory:
        Builds the ``watchdog`` observer.  Tests pass a fake.
    """

    def __init__(
        self,
        scanner: SessionScanner,
        preferences: PreferencesStore,
        publish: PublishCallback,
        *,
        observer_factory: Callable[[], object] = Observer,
    ) -> None:
        self._scanner = scanner
        self._prefs = preferences
        self._publish = publish
        self._observer_factory = observer_factory

        self._cond = threading.Condition()
        self._state = WatcherState.STOPPED
        self._generation = 0
        self._scan_pending = False
        self._commands: deque[Callable[[], None]] = deque()
        # Held for every scan and remove command.  A worker left over from a
        # stop whose join timed out still shares it with the next worker.
        self._disk_lock = threading.Lock()

        self._worker: threading.Thread | None = None
        self._timer: IntervalTimer | None = None
        self._observer = None
        self._unsubscribe: Callable[[], None] | None = None

        self._sequence = 0
        self._published_sequence = 0
        self._snapshot: SessionSnapshot | None = None
        self.scans_started = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> WatcherState:
        with self._cond:
            return self._state

    @property
    def session_dir(self) -> Path:
        return self._scanner.session_dir

    @property
    def snapshot(self) -> SessionSnapshot | None:
        """The most recently published snapshot, if any."""
        with self._cond:
            return self._snapshot

    @property
    def sessions(self) -> tuple[Session, ...]:
        with self._cond:
            return self._snapshot.sessions if self._snapshot else ()

    @property
    def watching_events(self) -> bool:
        """``True`` when directory events are active (not polling only)."""
        with self._cond:
            return self._observer is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Scan once now, then keep scanning on timer ticks and directory events.

        A :meth:`stop` may run while this is still setting up.  Each resource
        acquired outside the lock is handed over only if this start is still
        current; otherwise it is released here, since ``stop`` never saw it.
        """
        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Cannot create session directory %s: %s", self.session_dir, exc)

        with self._cond:
            if self._state is WatcherState.RUNNING:
                return
            self._state = WatcherState.RUNNING
            self._generation += 1
            generation = self._generation
            self._scan_pending = True
            self._commands.clear()

            worker = threading.Thread(
                target=self._run_worker,
                args=(generation,),
                name="session-scanner",
                daemon=True,
            )
            timer = IntervalTimer(self._prefs.refresh_interval, self.request_scan)
            self._worker = worker
            self._timer = timer
            worker.start()
            timer.start()

        unsubscribe = self._prefs.subscribe(self._on_preferences_changed)
        with self._cond:
            current = self._is_current(generation)
            if current:
                self._unsubscribe = unsubscribe
        if not current:
            unsubscribe()
            return
        # Pick up an interval change made between reading it and subscribing.
        timer.set_interval(self._prefs.refresh_interval)

        observer = self._start_observer()
        with self._cond:
            current = self._is_current(generation)
            if current:
                self._observer = observer
        if not current:
            if observer is not None:
                self._stop_observer(observer)
            return
        logger.info(
            "Watching %s (%s, every %.1fs)",
            self.session_dir,
            "events + polling" if observer is not None else "polling only",
            timer.interval,
        )

    def stop(self) -> None:
        """Stop all triggers and the worker.  Safe to call more than once.

        A scan already running may finish, but its result is not published.
        """
        with self._cond:
            if self._state is WatcherState.STOPPED:
                return
            self._state = WatcherState.STOPPED
            self._scan_pending = False
            self._commands.clear()
            self._cond.notify_all()
            worker, self._worker = self._worker, None
            timer, self._timer = self._timer, None
            observer, self._observer = self._observer, None
            unsubscribe, self._unsubscribe = self._unsubscribe, None

        if unsubscribe is not None:
            unsubscribe()
        if timer is not None:
            timer.stop()
        if observer is not None:
            self._stop_observer(observer)
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=_JOIN_TIMEOUT)
        logger.info("Stopped watching %s", self.session_dir)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request_scan(self) -> bool:
        """Ask for a scan.  Returns ``False`` if the watcher is stopped.

        If a scan is already pending this is a no-op; if one is running,
        exactly one more scan follows it.
        """
        with self._cond:
            if self._state is not WatcherState.RUNNING:
                return False
            self._scan_pending = True
            self._cond.notify_all()
            return True

    def refresh(self) -> bool:
        """Force a rescan (UI refresh action)."""
        return self.request_scan()

    def status_file_path(self, session: Session) -> Path:
        """Path of the status file backing *session*."""
        return self.session_dir / (session.status_file or status_file_name(session.cwd))

    def remove(self, session: Session) -> None:
        """Delete *session*'s status file on the worker, then rescan.

        The published list is not edited locally; the session disappears
        when the follow-up scan no longer finds its file.
        """
        path = self.status_file_path(session)

        def command() -> None:
            try:
                delete_status_file(path)
                logger.info("Removed session %s (%s)", session.session_id, path.name)
            except DeleteFailed as exc:
                logger.warning("%s", exc)
            self.request_scan()

        with self._cond:
            if self._state is WatcherState.RUNNING:
                self._commands.append(command)
                self._cond.notify_all()
                return

        # Not running: nothing to publish to, but a worker from the last run
        # may still be finishing a scan.
        with self._disk_lock:
            try:
                delete_status_file(path)
            except DeleteFailed as exc:
                logger.warning("%s", exc)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        """Caller holds ``self._cond``."""
        return self._state is WatcherState.RUNNING and self._generation == generation

    def _run_worker(self, generation: int) -> None:
        while True:
            with self._cond:
                while (
                    self._is_current(generation)
                    and not self._scan_pending
                    and not self._commands
                ):
                    self._cond.wait()
                if not self._is_current(generation):
                    return
                if self._commands:
                    command = self._commands.popleft()
                    sequence = 0
                else:
                    command = None
                    self._scan_pending = False
                    self._sequence += 1
                    sequence = self._sequence
                    self.scans_started += 1

            if command is not None:
                with self._disk_lock:
                    try:
                        command()
                    except Exception:
                        logger.exception("Session command failed")
                continue

            self._run_scan(generation, sequence)

    def _run_scan(self, generation: int, sequence: int) -> None:
        try:
            with self._disk_lock:
                sessions = self._scanner.scan(thresholds=self._prefs.thresholds)
        except DirectoryUnavailable as exc:
            logger.warning("%s; keeping previous session list", exc)
            return
        except Exception:
            logger.exception("Session scan failed")
            return
        self._publish_snapshot(generation, SessionSnapshot(tuple(sessions), sequence))

    def _publish_snapshot(self, generation: int, snapshot: SessionSnapshot) -> bool:
        with self._cond:
            if not self._is_current(generation):
                logger.debug("Dropping scan %d: watcher stopped", snapshot.sequence)
                return False
            if snapshot.sequence <= self._published_sequence:
                logger.debug(
                    "Dropping scan %d: %d already published",
                    snapshot.sequence,
                    self._published_sequence,
                )
                return False
            self._published_sequence = snapshot.sequence
            self._snapshot = snapshot

        try:
            self._publish(snapshot)
        except Exception:
            logger.exception("Session publish callback failed")
        return True

    # ------------------------------------------------------------------
    # Observer
    # ------------------------------------------------------------------

    def _start_observer(self):
        handler = _StatusDirHandler(self.request_scan)
        observer = self._observer_factory()
        try:
            observer.schedule(handler, str(self.session_dir), recursive=False)
            observer.start()
        except (OSError, RuntimeError) as exc:
            error = SubscriptionSetupFailed(f"cannot watch {self.session_dir}: {exc}")
            logger.warning("%s; falling back to polling", error)
            observer.stop()
            return None
        return observer

    @staticmethod
    def _stop_observer(observer) -> None:
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=_JOIN_TIMEOUT)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def _on_preferences_changed(self, old: Preferences, new: Preferences) -> None:
        with self._cond:
            timer = self._timer if self._state is WatcherState.RUNNING else None
        if timer is None:
            return

        if new.monitor.refresh_interval != old.monitor.refresh_interval:
            timer.set_interval(new.monitor.refresh_interval)
            logger.info("Refresh interval now %.1fs", new.monitor.refresh_interval)

        if new.thresholds != old.thresholds:
            self.request_scan()

        if new.monitor.session_directory != old.monitor.session_directory:
            logger.info("Session directory change takes effect on restart")
