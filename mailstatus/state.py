"""
State store.

The tracking state lives in a small pretty-printed JSON file so it can be
committed and diffed. It is read once at the start of a pass and written
once at the end. A missing file is a first run; a malformed one is
reported and replaced by empty state rather than aborting the pass.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dateutil import parser as dateutil_parser

from mailstatus import notifier
from mailstatus.models import MonitorState, TrackingRecord

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2026-01-02T03:04:05.000Z."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse a persisted timestamp, treating naive values as UTC.

    Missing or unparseable values map to the Unix epoch so that age checks
    treat them as very old.
    """
    if not value:
        return EPOCH
    try:
        parsed = dateutil_parser.isoparse(value)
    except (ValueError, TypeError):
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_state(path: str | Path) -> MonitorState:
    """Read the state file, falling back to empty state on any problem."""
    state_path = Path(path)
    if not state_path.exists():
        return MonitorState()

    try:
        with open(state_path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, dict):
            raise ValueError("state file must contain a JSON object")
    except (OSError, ValueError) as exc:
        notifier.print_error("Loading state", str(exc))
        return MonitorState()

    incidents = raw.get("incidents") or {}
    if not isinstance(incidents, dict):
        notifier.print_error("Loading state", "\"incidents\" must be a JSON object")
        return MonitorState()

    state = MonitorState(last_run=raw.get("lastRun"))
    for key, value in incidents.items():
        try:
            state.incidents[key] = TrackingRecord.from_dict(value)
        except (KeyError, TypeError, ValueError) as exc:
            notifier.print_error("Loading state", f"dropping malformed record {key}: {exc!r}")
    return state


def save_state(state: MonitorState, path: str | Path) -> bool:
    """
    Write the state file atomically (temp file, then rename).

    Returns:
        True on success. Failures are reported, not raised.
    """
    state_path = Path(path)
    tmp_path = state_path.with_suffix(state_path.suffix + ".tmp")
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(state.to_dict(), fh, indent=2)
            fh.write("\n")
        os.replace(tmp_path, state_path)
    except OSError as exc:
        notifier.print_error("Saving state", str(exc))
        return False
    return True
