"""Session monitor building blocks.

Pure parsing lives in standalone functions; the stateful pieces are classes
that talk to their consumer through an injected callback.

Modules
-------
status_parser
    Decode one status file (either schema) into a :class:`Session`.
session_index
    :class:`SessionIndexCache` -- per-scan memo of ``sessions-index.json``.
session_scanner
    :class:`SessionScanner` -- list, parse, enrich and sort the directory.
session_watcher
    :class:`SessionWatcher` -- timer + directory events driving the scanner.
"""

from .session_index import SessionIndexCache, encode_project_dir, load_index
from .session_scanner import SessionScanner
from .session_watcher import IntervalTimer, SessionSnapshot, SessionWatcher
from .status_parser import parse_status_file

__all__ = [
    "IntervalTimer",
    "SessionIndexCache",
    "SessionScanner",
    "SessionSnapshot",
    "SessionWatcher",
    "encode_project_dir",
    "load_index",
    "parse_status_file",
]
