"""Shared test fixtures for the claude-sessions test suite."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from claude_sessions.platform import status_file_name


def statusline_doc(
    session_id: str = "sess-1",
    cwd: str = "/home/user/proj",
    *,
    updated: datetime | None = None,
    age: float = 0.0,
    **overrides,
) -> dict:
    """A status document in the current statusline shape.

    *updated* defaults to now minus *age* seconds.
    """
    if updated is None:
        updated = datetime.now().astimezone() - timedelta(seconds=age)
    doc = {
        "session_id": session_id,
        "cwd": cwd,
        "transcript_path": "",
        "model": {"id": "claude-sonnet-4-20250514", "display_name": "Sonnet 4"},
        "workspace": {"current_dir": cwd, "project_dir": cwd},
        "context_window": {
            "total_input_tokens": 30_000,
            "total_output_tokens": 10_000,
            "context_window_size": 200_000,
        },
        "cost": {
            "total_cost_usd": 1.25,
            "total_duration_ms": 90_000,
            "total_lines_added": 12,
            "total_lines_removed": 3,
        },
        "_statusline_update_time": int(updated.timestamp() * 1000),
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def status_dir(tmp_path: Path) -> Path:
    """An empty status-file directory."""
    path = tmp_path / "claude_sessions"
    path.mkdir()
    return path


@pytest.fixture
def index_root(tmp_path: Path) -> Path:
    """An empty ``~/.claude/projects`` stand-in."""
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def write_status(status_dir: Path):
    """Write a status file for *cwd* and return its path.

    Usage::

        write_status("sess-1", "/home/u/proj", age=10)
        write_status(doc={"raw": "document"}, cwd="/x")
    """

    def _write(
        session_id: str = "sess-1",
        cwd: str = "/home/user/proj",
        *,
        doc: dict | None = None,
        raw: str | None = None,
        **kwargs,
    ) -> Path:
        path = status_dir / status_file_name(cwd)
        if raw is not None:
            path.write_text(raw, encoding="utf-8")
        else:
            if doc is None:
                doc = statusline_doc(session_id, cwd, **kwargs)
            path.write_text(json.dumps(doc), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_index(index_root: Path):
    """Write ``sessions-index.json`` into a project directory under *index_root*."""

    def _write(project: str, entries, *, wrapped: bool = False) -> Path:
        project_dir = index_root / project
        project_dir.mkdir(parents=True, exist_ok=True)
        data = {"version": 1, "entries": entries} if wrapped else entries
        path = project_dir / "sessions-index.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_doc():
    """Factory for statusline-shape documents (see :func:`statusline_doc`)."""
    return statusline_doc
