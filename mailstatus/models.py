"""
Data models for the mail status monitor.

Defines the normalised incident record every feed parser emits, the
persisted tracking state, and the immutable configuration passed into
the adapters and the reconciliation engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

TITLE_LIMIT = 200
DESCRIPTION_LIMIT = 1000


class Provider(str, Enum):
    """Upstream status feed sources."""

    GOOGLE = "google"
    APPLE = "apple"
    MICROSOFT = "microsoft"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class Incident:
    """
    A single service disruption as reported by one poll of a provider feed.

    Attributes:
        provider: Feed the incident came from.
        service: Display name of the affected mail service.
        id: Provider-scoped identifier, stable across polls.
        title: Short headline (at most 200 characters).
        description: Cleaned text (at most 1000 characters).
        link: Public status page / entry URL.
        start_time: When the incident began, as reported.
        end_time: When the incident ended, if reported.
        duration: Human-readable duration, if both ends are known.
        updated: Provider's last-updated stamp.
        is_resolved: Provider's resolution signal for this poll.
        users_affected: Optional impact text.
        status: Optional provider-specific status text.
    """

    provider: Provider
    service: str
    id: str
    title: str
    description: str
    link: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[str] = None
    updated: Optional[str] = None
    is_resolved: bool = False
    users_affected: Optional[str] = None
    status: Optional[str] = None

    @property
    def key(self) -> str:
        """State-store key, ``"{provider}-{id}"``."""
        return f"{self.provider.value}-{self.id}"


@dataclass
class TrackingRecord:
    """Persisted link between an incident key and its GitHub issue."""

    issue_number: int
    is_resolved: bool = False
    created_at: Optional[str] = None
    last_update: Optional[str] = None
    resolved_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "issueNumber": self.issue_number,
            "isResolved": self.is_resolved,
            "createdAt": self.created_at,
            "lastUpdate": self.last_update,
        }
        if self.resolved_at is not None:
            data["resolvedAt"] = self.resolved_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackingRecord":
        return cls(
            issue_number=int(data["issueNumber"]),
            is_resolved=bool(data.get("isResolved", False)),
            created_at=data.get("createdAt"),
            last_update=data.get("lastUpdate"),
            resolved_at=data.get("resolvedAt"),
        )


@dataclass
class MonitorState:
    """Everything persisted between runs."""

    incidents: Dict[str, TrackingRecord] = field(default_factory=dict)
    last_run: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incidents": {key: rec.to_dict() for key, rec in self.incidents.items()},
            "lastRun": self.last_run,
        }


@dataclass(frozen=True)
class FeedConfig:
    """Configuration for a single provider feed."""

    provider: Provider
    name: str  # service display name, e.g. "Gmail"
    url: str
    keywords: Tuple[str, ...] = ()
    description_keywords: Tuple[str, ...] = ()  # falls back to keywords when empty
    feed_type: str = "atom"  # "atom", "json" or "rss"
    status_page: str = ""


@dataclass(frozen=True)
class MonitorSettings:
    """Global run settings."""

    log_level: str = "INFO"
    request_timeout: float = 30.0
    update_interval_hours: float = 2.0
    retention_days: float = 7.0
    user_agent: str = "ForwardEmail-StatusMonitor/1.0"


@dataclass(frozen=True)
class MonitorConfig:
    """Repository target, feeds and settings for one reconciliation pass."""

    owner: str
    repo: str
    labels: Tuple[str, ...] = ("maintenance",)
    state_file: str = ".external-mail-status.json"
    feeds: Tuple[FeedConfig, ...] = ()
    settings: MonitorSettings = field(default_factory=MonitorSettings)

    @property
    def repo_slug(self) -> str:
        return f"{self.owner}/{self.repo}"
