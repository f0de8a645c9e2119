"""Tests for the session watcher: triggers, coalescing, publication, removal."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from claude_sessions.core.errors import DeleteFailed
from claude_sessions.core.features import session_watcher as watcher_module
from claude_sessions.core.features.session_scanner import SessionScanner
from claude_sessions.core.features.session_watcher import (
    IntervalTimer,
    SessionSnapshot,
    SessionWatcher,
    WatcherState,
    _StatusDirHandler,
    delete_status_file,
)
from claude_sessions.preferences import MonitorPreferences, Preferences, PreferencesStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def wait_for(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _store(interval: float = 60.0) -> PreferencesStore:
    return PreferencesStore(Preferences(monitor=MonitorPreferences(refresh_interval=interval)))


class FakeObserver:
    """Stands in for ``watchdog.observers.Observer``."""

    def __init__(self) -> None:
        self.handler = None
        self.path = None
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.handler = handler
        self.path = path

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.started and not self.stopped


class FailingObserver(FakeObserver):
    def schedule(self, handler, path, recursive=False):
        raise OSError("inotify watch limit reached")


class GatedScanner:
    """Scanner whose scans block until the test opens the gate."""

    def __init__(self, session_dir: Path) -> None:
        self.session_dir = session_dir
        self.gate = threading.Event()
        self.entered = threading.Event()
        self.calls = 0
        self.results: list = []

    def scan(self, now=None, thresholds=None):
        self.calls += 1
        self.entered.set()
        self.gate.wait(timeout=5)
        return list(self.results)


class Recorder:
    """Publish callback that records snapshots."""

    def __init__(self) -> None:
        self.snapshots: list[SessionSnapshot] = []
        self.lock = threading.Lock()

    def __call__(self, snapshot: SessionSnapshot) -> None:
        with self.lock:
            self.snapshots.append(snapshot)

    @property
    def count(self) -> int:
        with self.lock:
            return len(self.snapshots)

    @property
    def last(self) -> SessionSnapshot:
        with self.lock:
            return self.snapshots[-1]


@pytest.fixture
def observers():
    """Collects the fake observers a watcher creates."""
    created: list[FakeObserver] = []

    def factory() -> FakeObserver:
        obs = FakeObserver()
        created.append(obs)
        return obs

    factory.created = created
    return factory


@pytest.fixture
def make_watcher(status_dir: Path, index_root: Path, observers):
    """Build watchers and make sure every one is stopped after the test."""
    watchers: list[SessionWatcher] = []

    def _make(scanner=None, store=None, publish=None, observer_factory=None):
        watcher = SessionWatcher(
            scanner or SessionScanner(status_dir, index_root),
            store or _store(),
            publish or Recorder(),
            observer_factory=observer_factory or observers,
        )
        watchers.append(watcher)
        return watcher

    yield _make
    for watcher in watchers:
        watcher.stop()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_start_scans_immediately(self, make_watcher, write_status):
        write_status("a", "/w/a")
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()

        assert wait_for(lambda: recorder.count == 1)
        assert [s.session_id for s in recorder.last.sessions] == ["a"]
        assert isinstance(recorder.last.sessions, tuple)
        assert watcher.sessions == recorder.last.sessions
        assert watcher.state is WatcherState.RUNNING

    def test_start_creates_missing_directory(self, tmp_path: Path, index_root: Path, make_watcher):
        session_dir = tmp_path / "not-yet"
        recorder = Recorder()
        watcher = make_watcher(scanner=SessionScanner(session_dir, index_root), publish=recorder)
        watcher.start()
        assert session_dir.is_dir()
        assert wait_for(lambda: recorder.count == 1)
        assert recorder.last.sessions == ()

    def test_observer_scheduled_on_directory(self, make_watcher, observers, status_dir: Path):
        watcher = make_watcher()
        watcher.start()
        (observer,) = observers.created
        assert observer.started
        assert observer.path == str(status_dir)
        assert watcher.watching_events

    def test_stop_is_idempotent(self, make_watcher, observers):
        watcher = make_watcher()
        watcher.stop()  # before start
        watcher.start()
        watcher.stop()
        watcher.stop()
        assert watcher.state is WatcherState.STOPPED
        assert observers.created[0].stopped
        assert not watcher.watching_events

    def test_second_start_is_noop(self, make_watcher, observers):
        watcher = make_watcher()
        watcher.start()
        watcher.start()
        assert len(observers.created) == 1

    def test_request_scan_after_stop_rejected(self, make_watcher):
        watcher = make_watcher()
        watcher.start()
        watcher.stop()
        assert watcher.request_scan() is False
        assert watcher.refresh() is False

    def test_restart_scans_again(self, make_watcher):
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)
        watcher.stop()
        watcher.start()
        assert wait_for(lambda: recorder.count == 2)
        assert recorder.snapshots[1].sequence > recorder.snapshots[0].sequence

    def test_stop_during_start_releases_observer_and_subscription(self, make_watcher):
        scheduling = threading.Event()
        release = threading.Event()
        created: list[FakeObserver] = []

        class SlowObserver(FakeObserver):
            def schedule(self, handler, path, recursive=False):
                scheduling.set()
                release.wait(timeout=5)
                super().schedule(handler, path, recursive)

        def factory() -> FakeObserver:
            created.append(SlowObserver())
            return created[-1]

        store = _store()
        watcher = make_watcher(store=store, observer_factory=factory)
        starter = threading.Thread(target=watcher.start)
        starter.start()
        assert scheduling.wait(timeout=3)

        watcher.stop()
        release.set()
        starter.join(timeout=3)

        assert not starter.is_alive()
        (observer,) = created
        assert observer.started
        assert not observer.is_alive()
        assert not watcher.watching_events
        assert store._listeners == []
        assert watcher.state is WatcherState.STOPPED


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestCoalescing:
    def test_triggers_during_scan_collapse_into_one(self, make_watcher, status_dir: Path):
        scanner = GatedScanner(status_dir)
        recorder = Recorder()
        watcher = make_watcher(scanner=scanner, publish=recorder)
        watcher.start()

        assert scanner.entered.wait(timeout=3)
        for _ in range(5):
            assert watcher.request_scan()
        scanner.gate.set()

        assert wait_for(lambda: recorder.count == 2)
        time.sleep(0.2)
        assert scanner.calls == 2
        assert watcher.scans_started == 2

    def test_scans_never_overlap(self, make_watcher, status_dir: Path):
        active = 0
        peak = 0
        lock = threading.Lock()

        class CountingScanner:
            session_dir = status_dir

            def scan(self, now=None, thresholds=None):
                nonlocal active, peak
                with lock:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.01)
                with lock:
                    active -= 1
                return []

        recorder = Recorder()
        watcher = make_watcher(scanner=CountingScanner(), publish=recorder)
        watcher.start()
        threads = [
            threading.Thread(target=lambda: [watcher.request_scan() for _ in range(20)])
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert wait_for(lambda: watcher.scans_started == recorder.count)
        assert peak == 1

    def test_restart_waits_for_unfinished_scan(self, make_watcher, status_dir: Path, monkeypatch):
        monkeypatch.setattr(watcher_module, "_JOIN_TIMEOUT", 0.05)
        active = 0
        peak = 0
        calls = 0
        lock = threading.Lock()
        entered = threading.Event()
        gate = threading.Event()

        class SlowScanner:
            session_dir = status_dir

            def scan(self, now=None, thresholds=None):
                nonlocal active, peak, calls
                with lock:
                    active += 1
                    calls += 1
                    peak = max(peak, active)
                entered.set()
                gate.wait(timeout=5)
                with lock:
                    active -= 1
                return []

        recorder = Recorder()
        watcher = make_watcher(scanner=SlowScanner(), publish=recorder)
        watcher.start()
        assert entered.wait(timeout=3)

        watcher.stop()  # gives up waiting for the blocked worker
        watcher.start()
        time.sleep(0.2)
        assert calls == 1

        gate.set()
        assert wait_for(lambda: recorder.count == 1)
        assert calls == 2
        assert peak == 1


class TestPublication:
    def test_stale_sequence_dropped(self, make_watcher):
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)

        generation = watcher._generation
        assert watcher._publish_snapshot(generation, SessionSnapshot((), sequence=1)) is False
        assert watcher._publish_snapshot(generation, SessionSnapshot((), sequence=0)) is False
        assert recorder.count == 1

    def test_scan_finishing_after_stop_not_published(self, make_watcher, status_dir: Path):
        scanner = GatedScanner(status_dir)
        recorder = Recorder()
        watcher = make_watcher(scanner=scanner, publish=recorder)
        watcher.start()
        assert scanner.entered.wait(timeout=3)

        threading.Timer(0.1, scanner.gate.set).start()
        watcher.stop()

        time.sleep(0.2)
        assert scanner.calls == 1
        assert recorder.count == 0
        assert watcher.snapshot is None

    def test_directory_error_keeps_previous_snapshot(
        self, make_watcher, status_dir: Path, write_status, caplog
    ):
        write_status("a", "/w/a")
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)

        for path in status_dir.iterdir():
            path.unlink()
        status_dir.rmdir()
        with caplog.at_level(logging.WARNING, logger="claude_sessions"):
            watcher.refresh()
            assert wait_for(lambda: watcher.scans_started == 2)
            assert wait_for(lambda: "keeping previous" in caplog.text)

        assert recorder.count == 1
        assert [s.session_id for s in watcher.sessions] == ["a"]

    def test_publish_failure_does_not_kill_worker(self, make_watcher):
        calls = []

        def publish(snapshot):
            calls.append(snapshot)
            raise RuntimeError("consumer gone")

        watcher = make_watcher(publish=publish)
        watcher.start()
        assert wait_for(lambda: len(calls) == 1)
        watcher.refresh()
        assert wait_for(lambda: len(calls) == 2)


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------


class TestRemove:
    def test_remove_deletes_file_and_rescans(self, make_watcher, write_status):
        write_status("a", "/w/a", age=1)
        path_b = write_status("b", "/w/b", age=100)
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)
        before = recorder.last.sessions
        session_b = next(s for s in before if s.session_id == "b")

        watcher.remove(session_b)

        assert wait_for(lambda: recorder.count == 2)
        assert not path_b.exists()
        assert recorder.last.sessions == tuple(s for s in before if s.session_id != "b")

    def test_remove_missing_file_still_rescans(self, make_watcher, write_status, caplog):
        path = write_status("a", "/w/a")
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)
        session = recorder.last.sessions[0]
        path.unlink()

        with caplog.at_level(logging.WARNING, logger="claude_sessions"):
            watcher.remove(session)
            assert wait_for(lambda: recorder.count == 2)
        assert recorder.last.sessions == ()
        assert "cannot remove" in caplog.text

    def test_remove_while_stopped_deletes_inline(self, make_watcher, write_status):
        path = write_status("a", "/w/a")
        watcher = make_watcher()
        session = watcher._scanner.scan()[0]
        watcher.remove(session)
        assert not path.exists()

    def test_status_file_path_fallback_to_cwd(self, make_watcher, status_dir: Path):
        watcher = make_watcher()

        class _S:
            status_file = ""
            cwd = "/home/u/proj"

        assert watcher.status_file_path(_S()) == status_dir / "claude-status--home-u-proj.json"

    def test_delete_status_file_raises(self, tmp_path: Path):
        with pytest.raises(DeleteFailed):
            delete_status_file(tmp_path / "missing.json")


# ---------------------------------------------------------------------------
# Directory events
# ---------------------------------------------------------------------------


class TestDirectoryEvents:
    @pytest.fixture
    def handler(self):
        calls = []
        handler = _StatusDirHandler(lambda: calls.append(1))
        handler.calls = calls
        return handler

    @pytest.mark.parametrize(
        "event",
        [
            FileCreatedEvent("/d/claude-status--a.json"),
            FileModifiedEvent("/d/claude-status--a.json"),
            FileDeletedEvent("/d/claude-status--a.json"),
            FileMovedEvent("/d/claude-status--a.json.tmp", "/d/claude-status--a.json"),
        ],
    )
    def test_status_file_changes_trigger(self, handler, event):
        handler.on_any_event(event)
        assert handler.calls == [1]

    @pytest.mark.parametrize(
        "event",
        [
            FileModifiedEvent("/d/notes.txt"),
            DirModifiedEvent("/d"),
            FileClosedEvent("/d/claude-status--a.json"),
        ],
    )
    def test_irrelevant_events_ignored(self, handler, event):
        handler.on_any_event(event)
        assert handler.calls == []

    def test_observer_event_requests_scan(self, make_watcher, observers, status_dir: Path):
        recorder = Recorder()
        watcher = make_watcher(publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)

        handler = observers.created[0].handler
        handler.on_any_event(FileCreatedEvent(str(status_dir / "claude-status--x.json")))
        assert wait_for(lambda: recorder.count == 2)

    def test_subscription_failure_falls_back_to_polling(self, make_watcher, caplog):
        recorder = Recorder()
        watcher = make_watcher(
            store=_store(interval=0.05),
            publish=recorder,
            observer_factory=FailingObserver,
        )
        with caplog.at_level(logging.WARNING, logger="claude_sessions"):
            watcher.start()
        assert not watcher.watching_events
        assert "falling back to polling" in caplog.text
        assert wait_for(lambda: recorder.count >= 3)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class TestPreferenceChanges:
    def test_interval_change_retunes_timer(self, make_watcher):
        store = _store(interval=60.0)
        recorder = Recorder()
        watcher = make_watcher(store=store, publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)

        store.update(refresh_interval=0.05)
        assert watcher._timer.interval == 0.05
        assert wait_for(lambda: recorder.count >= 3)

    def test_threshold_change_rescans(self, make_watcher):
        store = _store()
        recorder = Recorder()
        watcher = make_watcher(store=store, publish=recorder)
        watcher.start()
        assert wait_for(lambda: recorder.count == 1)

        store.update(activity_threshold=30.0)
        assert wait_for(lambda: recorder.count == 2)

    def test_stop_unsubscribes(self, make_watcher):
        store = _store()
        watcher = make_watcher(store=store)
        watcher.start()
        watcher.stop()
        assert store._listeners == []
        store.update(refresh_interval=5.0)  # no listener left to fail


# ---------------------------------------------------------------------------
# IntervalTimer
# ---------------------------------------------------------------------------


class TestIntervalTimer:
    def test_ticks(self):
        ticks = []
        timer = IntervalTimer(0.02, lambda: ticks.append(1))
        timer.start()
        try:
            assert wait_for(lambda: len(ticks) >= 3)
        finally:
            timer.stop()

    def test_stop_halts_ticks(self):
        ticks = []
        timer = IntervalTimer(0.02, lambda: ticks.append(1))
        timer.start()
        assert wait_for(lambda: len(ticks) >= 1)
        timer.stop()
        timer.stop()
        count = len(ticks)
        time.sleep(0.1)
        assert len(ticks) == count

    def test_set_interval_takes_effect_immediately(self):
        ticks = []
        timer = IntervalTimer(60.0, lambda: ticks.append(1))
        timer.start()
        try:
            timer.set_interval(0.02)
            assert timer.interval == 0.02
            assert wait_for(lambda: len(ticks) >= 2)
        finally:
            timer.stop()


    @pytest.mark.parametrize("seconds", [0, -1.0])
    def test_non_positive_interval_rejected(self, seconds):
        with pytest.raises(ValueError):
            IntervalTimer(seconds, lambda: None)

        timer = IntervalTimer(60.0, lambda: None)
        with pytest.raises(ValueError):
            timer.set_interval(seconds)
        assert timer.interval == 60.0

    def test_callback_error_keeps_timer_alive(self):
        ticks = []

        def callback():
            ticks.append(1)
            raise ValueError("boom")

        timer = IntervalTimer(0.02, callback)
        timer.start()
        try:
            assert wait_for(lambda: len(ticks) >= 2)
        finally:
            timer.stop()
