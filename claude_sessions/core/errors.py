"""Failure conditions of the session monitor.

None of these are fatal: each one is caught at the component that raises it
and turned into a log line plus a degraded result.
"""

from __future__ import annotations


class SessionMonitorError(Exception):
    """Base class for session monitor failures."""


class DirectoryUnavailable(SessionMonitorError):
    """The watch directory is missing or cannot be listed."""


class MalformedStatusFile(SessionMonitorError):
    """A status file could not be decoded into a session record."""


class IndexUnavailable(SessionMonitorError):
    """A ``sessions-index.json`` file is missing or corrupt."""


class DeleteFailed(SessionMonitorError):
    """A status file could not be removed."""


class SubscriptionSetupFailed(SessionMonitorError):
    """Directory change notifications could not be enabled."""
