"""
GitHub issue tracker client.

A thin async wrapper over the four REST calls the reconciliation engine
needs: search for an open issue, create an issue, comment, close. Issue
bodies and status comments are rendered by pure functions so their
content can be tested without HTTP.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from mailstatus.models import Incident, MonitorConfig, Provider
from mailstatus.state import format_timestamp

GITHUB_API_URL = "https://api.github.com"


class GitHubAPIError(RuntimeError):
    """Non-success response from the GitHub API."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"GitHub API error {status}: {message}")
        self.status = status
        self.message = message


@dataclass(frozen=True)
class RemoteIssue:
    """The subset of a GitHub issue the monitor cares about."""

    number: int
    created_at: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteIssue":
        return cls(
            number=int(data["number"]),
            created_at=data.get("created_at"),
            html_url=data.get("html_url"),
        )


def _status_label(incident: Incident, active: str = "🔴 Active") -> str:
    return "✅ Resolved" if incident.is_resolved else active


def render_issue_title(incident: Incident) -> str:
    return f"Investigating {incident.service} service issues"


def render_issue_body(incident: Incident) -> str:
    """
    Markdown body for a new issue.

    The provider name and incident id both appear verbatim so the issue
    can be found again by ``search_open_record`` if local state is lost.
    """
    rows = [
        ("Provider", incident.provider.display_name),
        ("Service", incident.service),
        ("Incident ID", f"`{incident.id}`"),
        ("Status", _status_label(incident)),
    ]
    for label, value in (
        ("Started", incident.start_time),
        ("Ended", incident.end_time),
        ("Duration", incident.duration),
        ("Impact", incident.users_affected),
    ):
        if value:
            rows.append((label, value))

    lines = [
        f"Currently monitoring an issue with **{incident.service}** that may affect email delivery.",
        "",
        "## Incident Details",
        "",
        "| Field | Value |",
        "|-------|-------|",
    ]
    lines.extend(f"| **{label}** | {value} |" for label, value in rows)
    lines += ["", "## Description", "", incident.description or incident.title, ""]

    if incident.link:
        lines += ["## Official Status Page", "", incident.link, ""]

    lines += [
        "---",
        "",
        f"> **Note:** Forward Email users may experience delays when sending to or receiving "
        f"from {incident.service} during this incident.",
        "",
        "*This issue was automatically created by the external mail provider monitor.*",
    ]
    return "\n".join(lines)


def render_status_comment(incident: Incident, now: datetime) -> str:
    """Markdown comment posted on progress updates and on resolution."""
    lines = [
        "## Status Update",
        "",
        f"**Time:** {format_timestamp(now)}",
        f"**Status:** {_status_label(incident, active='🔴 Still Active')}",
        "",
    ]
    if incident.description:
        lines += ["### Latest Update", "", incident.description, ""]
    if incident.duration:
        lines += [f"**Total Outage Duration:** {incident.duration}", ""]
    if incident.is_resolved:
        lines += ["---", "", f"The {incident.service} incident has been resolved."]
    return "\n".join(lines).rstrip("\n")


def build_search_query(config: MonitorConfig, provider: Provider, incident_id: str) -> str:
    """Issue search scoped to the repo, the first label, and body text."""
    label = config.labels[0] if config.labels else "maintenance"
    return (
        f'repo:{config.repo_slug} is:issue is:open label:{label} '
        f'"{provider.value}" "{incident_id}" in:body'
    )


class GitHubClient:
    """
    Issue tracker operations against one fixed repository.

    Attributes:
        session: Shared aiohttp session.
        config: Repository target, labels and timeouts.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: str,
        config: MonitorConfig,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self.session = session
        self.config = config
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "User-Agent": config.settings.user_agent,
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
        }

    async def search_open_record(self, provider: Provider, incident_id: str) -> Optional[RemoteIssue]:
        """Find an open issue mentioning this provider and incident id."""
        result = await self._request(
            "GET",
            "/search/issues",
            params={"q": build_search_query(self.config, provider, incident_id)},
        )
        items: List[Dict[str, Any]] = result.get("items") or []
        if not items:
            return None
        return RemoteIssue.from_api(items[0])

    async def create_record(self, incident: Incident) -> RemoteIssue:
        issue = await self._request(
            "POST",
            f"/repos/{self.config.repo_slug}/issues",
            payload={
                "title": render_issue_title(incident),
                "body": render_issue_body(incident),
                "labels": list(self.config.labels),
            },
        )
        return RemoteIssue.from_api(issue)

    async def comment(self, issue_number: int, text: str) -> None:
        await self._request(
            "POST",
            f"/repos/{self.config.repo_slug}/issues/{issue_number}/comments",
            payload={"body": text},
        )

    async def close_record(self, issue_number: int) -> None:
        await self._request(
            "PATCH",
            f"/repos/{self.config.repo_slug}/issues/{issue_number}",
            payload={"state": "closed", "state_reason": "completed"},
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Perform one API call and decode the JSON response.

        Raises:
            GitHubAPIError: status >= 400.
            aiohttp.ClientError / asyncio.TimeoutError: transport failures.
        """
        async with self.session.request(
            method,
            f"{self._base_url}{path}",
            headers=self._headers,
            params=params,
            json=payload,
            timeout=aiohttp.ClientTimeout(total=self.config.settings.request_timeout),
        ) as resp:
            text = await resp.text()
            try:
                data = json.loads(text) if text else {}
            except ValueError as exc:
                raise GitHubAPIError(resp.status, f"failed to parse response: {exc}") from exc

            if resp.status >= 400:
                message = data.get("message", text) if isinstance(data, dict) else text
                raise GitHubAPIError(resp.status, message)
            return data if isinstance(data, dict) else {}

