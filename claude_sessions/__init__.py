"""Claude Sessions -- a live terminal monitor for Claude Code sessions."""

__version__ = "0.1.0"
