"""Display names from Claude Code's ``sessions-index.json`` files.

Claude Code keeps one index per project directory under
``~/.claude/projects/<encoded-cwd>/``.  Each entry maps a session id to an
optional ``customTitle``, ``summary`` and ``firstPrompt``.

:class:`SessionIndexCache` is built fresh for every scan and thrown away
afterwards, so an index edited between scans is always re-read.  Within a
scan each index file is read at most once, and a missing or corrupt index is
remembered as empty rather than retried.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ...log import logger
from ..errors import IndexUnavailable

INDEX_FILENAME = "sessions-index.json"

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class IndexEntry:
    """Resolved display metadata for one session."""

    name: str = ""
    first_prompt: str = ""


EMPTY_ENTRY = IndexEntry()


def encode_project_dir(cwd: str) -> str:
    """Encode a working directory the way Claude Code names project folders.

    Every non-alphanumeric character becomes ``-``, e.g.
    ``/home/user/my.app`` -> ``-home-user-my-app``.
    """
    return _NON_ALNUM_RE.sub("-", cwd)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def entry_from_raw(raw: dict[str, Any]) -> IndexEntry:
    """Build an :class:`IndexEntry`; a non-empty custom title beats the summary."""
    name = _text(raw.get("customTitle")) or _text(raw.get("summary"))
    return IndexEntry(name=name, first_prompt=_text(raw.get("firstPrompt")))


def load_index(path: Path) -> dict[str, IndexEntry]:
    """Read one index file into a ``session id -> entry`` map.

    Accepts a bare list of entries or an object with an ``entries`` list.
    When an id appears more than once the first entry is kept.

    Raises :class:`IndexUnavailable` if the file is missing or unreadable.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise IndexUnavailable(f"{path}: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("entries")
    if not isinstance(data, list):
        raise IndexUnavailable(f"{path}: no entry list")

    entries: dict[str, IndexEntry] = {}
    for raw in data:
        if not isinstance(raw, dict):
            continue
        session_id = raw.get("sessionId")
        if isinstance(session_id, str) and session_id not in entries:
            entries[session_id] = entry_from_raw(raw)
    return entries


class SessionIndexCache:
    """Per-scan memo of index files, keyed by project directory.

    Usage::

        cache = SessionIndexCache(projects_root)
        index_dir = cache.index_dir_for(session.transcript_path, session.cwd)
        entry = cache.resolve(index_dir, session.session_id)
    """

    def __init__(self, projects_root: Path) -> None:
        self._projects_root = projects_root
        self._indexes: dict[Path, dict[str, IndexEntry]] = {}
        self.reads = 0  # index files actually opened

    def index_dir_for(self, transcript_path: str, cwd: str) -> Path | None:
        """Return the project directory holding the session's index file.

        The transcript's parent directory is preferred; otherwise the
        directory is derived from *cwd*.  Returns ``None`` when neither is
        known.
        """
        if transcript_path:
            return Path(transcript_path).expanduser().parent
        if cwd:
            return self._projects_root / encode_project_dir(cwd)
        return None

    def resolve(self, index_dir: Path | None, session_id: str) -> IndexEntry:
        """Look up *session_id* in *index_dir*'s index.  Never raises."""
        if index_dir is None:
            return EMPTY_ENTRY
        entries = self._indexes.get(index_dir)
        if entries is None:
            entries = self._load(index_dir)
            self._indexes[index_dir] = entries
        return entries.get(session_id, EMPTY_ENTRY)

    def _load(self, index_dir: Path) -> dict[str, IndexEntry]:
        self.reads += 1
        try:
            return load_index(index_dir / INDEX_FILENAME)
        except IndexUnavailable as exc:
            logger.debug("session index unavailable: %s", exc)
            return {}
