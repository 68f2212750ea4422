"""Tests for state file persistence and timestamp helpers."""

import json
from datetime import datetime, timezone

import pytest

from mailstatus.models import MonitorState, TrackingRecord
from mailstatus.state import EPOCH, format_timestamp, load_state, parse_timestamp, save_state

LEGACY_STATE = {
    "incidents": {
        "google-abc123": {
            "issueNumber": 12,
            "isResolved": False,
            "createdAt": "2026-10-18T08:00:00.000Z",
            "lastUpdate": "2026-10-18T10:00:00.000Z",
        },
        "apple-1000001": {
            "issueNumber": 9,
            "isResolved": True,
            "createdAt": "2026-10-10T08:00:00.000Z",
            "lastUpdate": "2026-10-10T08:00:00.000Z",
            "resolvedAt": "2026-10-11T08:00:00.000Z",
        },
    },
    "lastRun": "2026-10-18T10:00:00.000Z",
}


class TestTimestamps:
    def test_format_is_utc_millis(self):
        dt = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-01-02T03:04:05.000Z"

    def test_parse_round_trip(self):
        dt = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(dt)) == dt

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-01-02T03:04:05") == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_missing_or_garbage_is_epoch(self):
        assert parse_timestamp(None) == EPOCH
        assert parse_timestamp("") == EPOCH
        assert parse_timestamp("not a date") == EPOCH


class TestLoadState:
    def test_missing_file_is_empty(self, tmp_path):
        state = load_state(tmp_path / "absent.json")
        assert state.incidents == {}
        assert state.last_run is None

    def test_reads_existing_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps(LEGACY_STATE))
        state = load_state(path)

        assert state.last_run == "2026-10-18T10:00:00.000Z"
        assert state.incidents["google-abc123"].issue_number == 12
        assert state.incidents["apple-1000001"].resolved_at == "2026-10-11T08:00:00.000Z"

    def test_malformed_json_is_empty(self, tmp_path, capsys):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        state = load_state(path)

        assert state.incidents == {}
        assert "Loading state" in capsys.readouterr().err

    def test_non_object_is_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[]")
        assert load_state(path).incidents == {}

    @pytest.mark.parametrize("incidents", ["oops", 5, [{"issueNumber": 1}]])
    def test_non_mapping_incidents_is_empty(self, tmp_path, capsys, incidents):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"incidents": incidents, "lastRun": None}))
        state = load_state(path)

        assert state.incidents == {}
        assert "Loading state" in capsys.readouterr().err

    def test_bad_record_is_dropped(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"incidents": {"x": {"isResolved": True}, **LEGACY_STATE["incidents"]}}))
        state = load_state(path)

        assert "x" not in state.incidents
        assert len(state.incidents) == 2


class TestSaveState:
    def test_pretty_printed_and_stable(self, tmp_path):
        path = tmp_path / "state.json"
        state = MonitorState(
            incidents={"google-abc123": TrackingRecord(issue_number=3, created_at="a", last_update="b")},
            last_run="2026-10-19T12:00:00.000Z",
        )
        assert save_state(state, path) is True

        text = path.read_text()
        assert text.startswith('{\n  "incidents": {')
        assert json.loads(text) == {
            "incidents": {
                "google-abc123": {
                    "issueNumber": 3,
                    "isResolved": False,
                    "createdAt": "a",
                    "lastUpdate": "b",
                }
            },
            "lastRun": "2026-10-19T12:00:00.000Z",
        }
        assert not (tmp_path / "state.json.tmp").exists()

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        original = load_state(tmp_path / "absent.json")
        original.incidents["k"] = TrackingRecord(issue_number=1, is_resolved=True, resolved_at="r")
        save_state(original, path)

        assert load_state(path).incidents["k"] == original.incidents["k"]

    def test_unwritable_path_reports_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert save_state(MonitorState(), blocker / "state.json") is False
