"""Textual widgets for the session list."""

from .bars import EmptyState, SummaryBar
from .session_table import SessionTable

__all__ = ["EmptyState", "SessionTable", "SummaryBar"]
