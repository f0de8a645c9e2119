"""Session scanner for the monitor view.

Lists the status-file directory, parses every ``claude-status-*.json`` file
and returns the sessions sorted for display: active first, then idle, then
closed, and most recently updated first within each tier.

This module has **no UI dependencies** and no threads -- it only reads the
filesystem and returns dataclasses.  :class:`SessionWatcher` decides when to
scan and where the result goes.

Failure handling
----------------
* A directory that cannot be listed raises :class:`DirectoryUnavailable`;
  the caller keeps whatever it published last.
* A file that cannot be read or parsed is logged and skipped.  Files that
  vanish between the listing and the read are routine and logged at debug.
"""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime
from pathlib import Path

from ...log import logger
from ...platform import claude_projects_dir, default_session_dir, is_status_file_name
from ..errors import DirectoryUnavailable, MalformedStatusFile
from ..models import FreshnessThresholds, Session, sort_sessions
from .session_index import SessionIndexCache
from .status_parser import parse_status_file


class SessionScanner:
    """Scan the status-file directory and return sorted session snapshots.

    Usage::

        scanner = SessionScanner()
        sessions = scanner.scan()

    The scanner keeps no state between calls; every :meth:`scan` reads the
    filesystem fresh and builds a new :class:`SessionIndexCache`.
    """

    def __init__(
        self,
        session_dir: Path | None = None,
        index_root: Path | None = None,
    ) -> None:
        self.session_dir = session_dir or default_session_dir()
        self.index_root = index_root or claude_projects_dir()

    def list_status_files(self) -> list[Path]:
        """Return the status files currently in the directory, sorted by name."""
        try:
            names = os.listdir(self.session_dir)
        except OSError as exc:
            raise DirectoryUnavailable(f"cannot list {self.session_dir}: {exc}") from exc
        return [self.session_dir / name for name in sorted(names) if is_status_file_name(name)]

    def load_session(self, path: Path, cache: SessionIndexCache) -> Session | None:
        """Parse one status file and attach its index metadata.

        Returns ``None`` if the file is gone, unreadable, or malformed.
        """
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug("status file vanished before read: %s", path)
            return None
        except OSError as exc:
            logger.warning("cannot read status file %s: %s", path, exc)
            return None

        try:
            session = parse_status_file(raw, source=str(path))
        except MalformedStatusFile as exc:
            logger.warning("skipping malformed status file: %s", exc)
            return None

        index_dir = cache.index_dir_for(session.transcript_path, session.cwd)
        entry = cache.resolve(index_dir, session.session_id)
        if entry.name or entry.first_prompt:
            session = dataclasses.replace(
                session, name=entry.name, first_prompt=entry.first_prompt
            )
        return session

    def scan(
        self,
        now: datetime | None = None,
        thresholds: FreshnessThresholds = FreshnessThresholds(),
    ) -> list[Session]:
        """Return every parseable session, sorted for display.

        Raises :class:`DirectoryUnavailable` if the directory cannot be listed.
        """
        paths = self.list_status_files()
        cache = SessionIndexCache(self.index_root)

        sessions: list[Session] = []
        for path in paths:
            session = self.load_session(path, cache)
            if session is not None:
                sessions.append(session)

        return sort_sessions(sessions, now, thresholds)
