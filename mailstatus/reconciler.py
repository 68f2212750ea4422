"""
Incident Reconciler — the core engine.

Compares each freshly parsed incident with its persisted tracking record
and decides what, if anything, to do on the issue tracker:

  no record,  active    -> recover an existing open issue, or create one
  no record,  resolved  -> nothing (never open an issue just to close it)
  active,     resolved  -> final comment, close, mark resolved
  active,     active    -> progress comment, at most once per update interval
  resolved,   anything  -> nothing (records are never reopened)

Incidents that stop appearing in a feed trigger no action; their records
stay as they are until a later poll resolves them or retention prunes them.

Incidents are processed one at a time because the state is mutated in
place and written once at the end of the pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Protocol

from mailstatus import notifier
from mailstatus.github import RemoteIssue, render_status_comment
from mailstatus.models import Incident, MonitorConfig, MonitorState, Provider, TrackingRecord
from mailstatus.state import format_timestamp, parse_timestamp


class IssueTracker(Protocol):
    """Issue operations the reconciler needs; GitHubClient implements them."""

    async def search_open_record(self, provider: Provider, incident_id: str) -> Optional[RemoteIssue]: ...

    async def create_record(self, incident: Incident) -> RemoteIssue: ...

    async def comment(self, issue_number: int, text: str) -> None: ...

    async def close_record(self, issue_number: int) -> None: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconcileSummary:
    """Per-pass action counts."""

    created: int = 0
    recovered: int = 0
    updated: int = 0
    closed: int = 0
    unchanged: int = 0
    failed: int = 0
    pruned: int = 0

    def __str__(self) -> str:
        return (
            f"created={self.created} recovered={self.recovered} updated={self.updated} "
            f"closed={self.closed} unchanged={self.unchanged} failed={self.failed} "
            f"pruned={self.pruned}"
        )


class Reconciler:
    """
    Runs one reconciliation pass over a list of incidents.

    Attributes:
        tracker: Issue tracker client (search / create / comment / close).
        config: Monitor configuration; supplies the update interval and
            retention window.
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        config: MonitorConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.tracker = tracker
        self.config = config
        self.clock = clock
        self._debug = config.settings.log_level == "DEBUG"

    @property
    def update_interval(self) -> timedelta:
        return timedelta(hours=self.config.settings.update_interval_hours)

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.config.settings.retention_days)

    async def reconcile(self, incidents: Iterable[Incident], state: MonitorState) -> ReconcileSummary:
        """
        Apply every incident to ``state`` then prune expired records.

        A tracker failure for one incident is reported and leaves that
        incident's record untouched; the pass carries on.
        """
        summary = ReconcileSummary()

        for incident in incidents:
            try:
                await self._apply(incident, state, summary)
            except Exception as exc:
                summary.failed += 1
                notifier.print_error(f"Processing {incident.key}", str(exc) or repr(exc))

        summary.pruned = self.prune(state)
        if summary.pruned:
            notifier.print_pruned(summary.pruned)
        return summary

    async def _apply(self, incident: Incident, state: MonitorState, summary: ReconcileSummary) -> None:
        key = incident.key
        record = state.incidents.get(key)

        if record is None:
            if incident.is_resolved:
                self._skip(summary, key, "resolved before it was tracked")
                return
            state.incidents[key] = await self._open(incident, summary)
            return

        if record.is_resolved:
            self._skip(summary, key, f"issue #{record.issue_number} already resolved")
            return

        if incident.is_resolved:
            await self._close(incident, record, summary)
            return

        await self._maybe_update(incident, record, summary)

    async def _open(self, incident: Incident, summary: ReconcileSummary) -> TrackingRecord:
        """Adopt an existing open issue if one matches, otherwise create one."""
        key = incident.key
        notifier.print_new_incident(key)
        now = format_timestamp(self.clock())

        existing = await self._search(incident)
        if existing is not None:
            notifier.print_issue_recovered(existing.number, key)
            summary.recovered += 1
            return TrackingRecord(
                issue_number=existing.number,
                is_resolved=False,
                created_at=existing.created_at or now,
                last_update=now,
            )

        issue = await self.tracker.create_record(incident)
        notifier.print_issue_created(issue.number, incident.service, incident.id)
        summary.created += 1
        return TrackingRecord(
            issue_number=issue.number,
            is_resolved=False,
            created_at=now,
            last_update=now,
        )

    async def _search(self, incident: Incident) -> Optional[RemoteIssue]:
        """Recovery lookup. A failed search counts as no match."""
        try:
            return await self.tracker.search_open_record(incident.provider, incident.id)
        except Exception as exc:
            notifier.print_error("Searching for existing issue", str(exc) or repr(exc))
            return None

    async def _close(self, incident: Incident, record: TrackingRecord, summary: ReconcileSummary) -> None:
        now = self.clock()
        await self.tracker.comment(record.issue_number, render_status_comment(incident, now))
        await self.tracker.close_record(record.issue_number)
        notifier.print_issue_closed(record.issue_number, incident.key)

        record.is_resolved = True
        record.resolved_at = format_timestamp(now)
        summary.closed += 1

    async def _maybe_update(self, incident: Incident, record: TrackingRecord, summary: ReconcileSummary) -> None:
        now = self.clock()
        elapsed = now - parse_timestamp(record.last_update)
        if elapsed < self.update_interval:
            self._skip(summary, incident.key, f"last update {elapsed} ago")
            return

        await self.tracker.comment(record.issue_number, render_status_comment(incident, now))
        notifier.print_issue_updated(record.issue_number)
        record.last_update = format_timestamp(now)
        summary.updated += 1

    def prune(self, state: MonitorState) -> int:
        """Drop resolved records whose resolution is older than the retention window."""
        cutoff = self.clock() - self.retention
        expired = [
            key
            for key, record in state.incidents.items()
            if record.is_resolved and parse_timestamp(record.resolved_at) < cutoff
        ]
        for key in expired:
            del state.incidents[key]
        return len(expired)

    def _skip(self, summary: ReconcileSummary, key: str, reason: str) -> None:
        summary.unchanged += 1
        if self._debug:
            notifier.print_no_action(key, reason)
