"""Decode ``claude-status-*.json`` files into :class:`Session` records.

The statusline hook has written two document shapes over its life and
neither carries a version field, so the shape is detected from which keys
are present:

* **statusline** -- ``context_window.total_input_tokens`` /
  ``total_output_tokens`` / ``context_window_size`` (optional
  ``used_percentage``) and ``cost.total_cost_usd`` /
  ``total_duration_ms`` / ``total_lines_added`` / ``total_lines_removed``.
* **pre-split** -- ``token_usage.{input,output}``,
  ``context_window.{used_percentage,max_tokens}``,
  ``cost.{total,input,output}``, ``duration.total_seconds`` and an optional
  ``code_impact`` block.

Each shape has a decoder that returns ``None`` when its marker keys are
absent; the first decoder that recognises the document wins.  A document
neither recognises still parses, with zeroed metrics.

Only the identity fields are strict (``session_id``, ``cwd``, the model
and an update timestamp).  Optional values of the wrong type fall back to
their defaults.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any

from ..errors import MalformedStatusFile
from ..models import CodeImpact, ContextWindow, Cost, ModelInfo, Session, TokenUsage

#: Keys that may hold the last-update time, in epoch milliseconds.
_TIMESTAMP_KEYS: tuple[str, ...] = (
    "_statusline_update_time",
    "last_update_time",
    "timestamp",
)


@dataclass(frozen=True)
class _Metrics:
    """Usage numbers pulled from one document shape."""

    context_window: ContextWindow
    token_usage: TokenUsage
    cost: Cost
    duration: float
    code_impact: CodeImpact | None


_EMPTY_METRICS = _Metrics(
    context_window=ContextWindow(used_percentage=0.0, max_tokens=0),
    token_usage=TokenUsage(input=0, output=0),
    cost=Cost(total=0.0),
    duration=0.0,
    code_impact=None,
)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _int(value: Any, default: int = 0) -> int:
    return int(value) if _is_number(value) else default


def _float(value: Any, default: float = 0.0) -> float:
    return float(value) if _is_number(value) else default


def _section(doc: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = doc.get(key)
    return value if isinstance(value, Mapping) else {}


def used_percentage(
    precomputed: Any, input_tokens: int, output_tokens: int, max_tokens: int
) -> float:
    """Return the context-window fill level in percent.

    Uses *precomputed* when the document supplies a number; otherwise derives
    it from the raw counts, and returns ``0.0`` when *max_tokens* is zero.
    """
    if _is_number(precomputed):
        return float(precomputed)
    if max_tokens <= 0:
        return 0.0
    return (input_tokens + output_tokens) / max_tokens * 100.0


def ms_to_datetime(timestamp_ms: int | float) -> datetime:
    """Convert Unix milliseconds timestamp to local datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).astimezone()


# ---------------------------------------------------------------------------
# Shape decoders
# ---------------------------------------------------------------------------


def _decode_statusline_shape(doc: Mapping[str, Any]) -> _Metrics | None:
    """Shape written by the current statusline hook."""
    window = _section(doc, "context_window")
    if not any(
        key in window
        for key in ("total_input_tokens", "total_output_tokens", "context_window_size")
    ):
        return None

    input_tokens = _int(window.get("total_input_tokens"))
    output_tokens = _int(window.get("total_output_tokens"))
    max_tokens = _int(window.get("context_window_size"))

    cost = _section(doc, "cost")
    code_impact = None
    if "total_lines_added" in cost or "total_lines_removed" in cost:
        code_impact = CodeImpact(
            lines_added=_int(cost.get("total_lines_added")),
            lines_removed=_int(cost.get("total_lines_removed")),
        )

    return _Metrics(
        context_window=ContextWindow(
            used_percentage=used_percentage(
                window.get("used_percentage"), input_tokens, output_tokens, max_tokens
            ),
            max_tokens=max_tokens,
        ),
        token_usage=TokenUsage(input=input_tokens, output=output_tokens),
        # The statusline shape has no input/output cost breakdown.
        cost=Cost(total=_float(cost.get("total_cost_usd"))),
        duration=_float(cost.get("total_duration_ms")) / 1000.0,
        code_impact=code_impact,
    )


def _decode_presplit_shape(doc: Mapping[str, Any]) -> _Metrics | None:
    """Older shape with token usage and cost already split out."""
    window = _section(doc, "context_window")
    if "token_usage" not in doc and "max_tokens" not in window:
        return None

    usage = _section(doc, "token_usage")
    input_tokens = _int(usage.get("input"))
    output_tokens = _int(usage.get("output"))
    max_tokens = _int(window.get("max_tokens"))

    cost = _section(doc, "cost")
    impact = doc.get("code_impact")
    code_impact = None
    if isinstance(impact, Mapping):
        code_impact = CodeImpact(
            lines_added=_int(impact.get("lines_added")),
            lines_removed=_int(impact.get("lines_removed")),
        )

    return _Metrics(
        context_window=ContextWindow(
            used_percentage=used_percentage(
                window.get("used_percentage"), input_tokens, output_tokens, max_tokens
            ),
            max_tokens=max_tokens,
        ),
        token_usage=TokenUsage(input=input_tokens, output=output_tokens),
        cost=Cost(
            total=_float(cost.get("total")),
            input=_float(cost.get("input")),
            output=_float(cost.get("output")),
        ),
        duration=_float(_section(doc, "duration").get("total_seconds")),
        code_impact=code_impact,
    )


_DECODERS: tuple[Callable[[Mapping[str, Any]], _Metrics | None], ...] = (
    _decode_statusline_shape,
    _decode_presplit_shape,
)


# ---------------------------------------------------------------------------
# Required fields
# ---------------------------------------------------------------------------


def _required_str(doc: Mapping[str, Any], key: str, source: str) -> str:
    value = doc.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedStatusFile(f"{source}: missing or invalid {key!r}")
    return value


def _model(doc: Mapping[str, Any], source: str) -> ModelInfo:
    model = doc.get("model")
    if not isinstance(model, Mapping):
        raise MalformedStatusFile(f"{source}: missing or invalid 'model'")
    display_name = model.get("display_name", model.get("name"))
    model_id = model.get("id")
    if not isinstance(display_name, str) or not isinstance(model_id, str):
        raise MalformedStatusFile(f"{source}: model needs string display_name and id")
    return ModelInfo(display_name=display_name, id=model_id)


def _update_time(doc: Mapping[str, Any], source: str) -> datetime:
    for key in _TIMESTAMP_KEYS:
        if key in doc:
            value = doc[key]
            if not _is_number(value):
                raise MalformedStatusFile(f"{source}: {key!r} is not a number")
            try:
                return ms_to_datetime(value)
            except (OverflowError, OSError, ValueError) as exc:
                raise MalformedStatusFile(f"{source}: {key!r} out of range") from exc
    raise MalformedStatusFile(f"{source}: no update timestamp")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_document(raw: bytes | str, source: str = "<status>") -> Mapping[str, Any]:
    """Decode *raw* JSON and check that the top level is an object."""
    try:
        doc = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedStatusFile(f"{source}: invalid JSON ({exc})") from exc
    if not isinstance(doc, dict):
        raise MalformedStatusFile(f"{source}: top level is not an object")
    return doc


def parse_status_file(raw: bytes | str, *, source: str = "") -> Session:
    """Parse one status file into a :class:`Session`.

    *source* is the status file's path or name; it is used in error
    messages and its basename is recorded as :attr:`Session.status_file`.

    Raises :class:`MalformedStatusFile` if the document cannot be decoded
    or lacks an identity field.
    """
    label = source or "<status>"
    doc = decode_document(raw, label)

    session_id = _required_str(doc, "session_id", label)
    cwd = _required_str(doc, "cwd", label)
    model = _model(doc, label)
    last_update = _update_time(doc, label)

    metrics = _EMPTY_METRICS
    for decoder in _DECODERS:
        decoded = decoder(doc)
        if decoded is not None:
            metrics = decoded
            break

    workspace = _section(doc, "workspace")
    project_dir = workspace.get("project_dir")
    if not isinstance(project_dir, str) or not project_dir:
        project_dir = cwd
    transcript_path = doc.get("transcript_path")
    if not isinstance(transcript_path, str):
        transcript_path = ""

    return Session(
        session_id=session_id,
        cwd=cwd,
        model=model,
        context_window=metrics.context_window,
        token_usage=metrics.token_usage,
        cost=metrics.cost,
        duration=metrics.duration,
        code_impact=metrics.code_impact,
        last_update_time=last_update,
        project_dir=project_dir,
        project_name=PurePath(project_dir).name or project_dir,
        transcript_path=transcript_path,
        status_file=PurePath(source).name if source else "",
    )
