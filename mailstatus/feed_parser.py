"""
Provider Feed Parsers.

Turns raw feed payloads into normalised Incident objects, one parser per
upstream source:
  - Google Workspace (Atom): Gmail incidents, grouped by incident id
  - Apple System Status (JSON / JSONP): iCloud Mail events
  - Microsoft service status (RSS): Outlook / Exchange / Microsoft 365

Every field extractor is a small pure function so the scraping rules can
be tested against fixture text without network access.
"""

from __future__ import annotations

import json
import math
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from xml.etree import ElementTree as ET

from mailstatus.models import (
    DESCRIPTION_LIMIT,
    TITLE_LIMIT,
    FeedConfig,
    Incident,
)
from mailstatus.state import format_timestamp

# Atom namespace
_ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}

# Regex patterns for extracting structured data from HTML content
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_INCIDENT_ID_RE = re.compile(r"incidents/([^/]+)")
_START_TIME_RES = (
    re.compile(r"incident began at\s*<strong>([^<]+)</strong>", re.IGNORECASE),
    re.compile(r"beginning on\s+\w+,\s+(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2})", re.IGNORECASE),
)
_DESCRIPTION_RE = re.compile(r"Description\s+(.+?)(?:We will provide|$)", re.IGNORECASE)
_JSONP_PREFIX_RE = re.compile(r"^[^(]+\(")
_JSONP_SUFFIX_RE = re.compile(r"\);?\s*$")

_DEFAULT_APPLE_DESCRIPTION = "{service} service issue detected."


class FeedFormatError(ValueError):
    """Raised when a payload does not have the expected structure."""


def strip_html(text: str) -> str:
    """Remove HTML tags and collapse whitespace."""
    clean = _HTML_TAG_RE.sub(" ", text)
    return " ".join(clean.split()).strip()


def mentions_any(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match against any keyword."""
    lowered = text.lower()
    return any(kw.lower() in lowered for kw in keywords)


def extract_incident_id(link: str) -> Optional[str]:
    """Return the path segment following ``incidents/`` in a link."""
    match = _INCIDENT_ID_RE.search(link or "")
    return match.group(1) if match else None


def extract_start_time(summary_html: str) -> Optional[str]:
    """
    Pull the incident start time out of a Google summary.

    Two phrasings are recognised: a bolded "incident began at" value, and
    "beginning on <Weekday>, YYYY-MM-DD HH:MM".
    """
    for pattern in _START_TIME_RES:
        match = pattern.search(summary_html)
        if match:
            return match.group(1)
    return None


def extract_description(summary_html: str) -> str:
    """
    Clean a Google summary down to its message.

    When the text carries a "Description ... We will provide" block only
    the inner passage is kept.
    """
    description = strip_html(summary_html)
    match = _DESCRIPTION_RE.search(description)
    if match:
        description = match.group(1).strip()
    return description


def unwrap_jsonp(payload: str) -> str:
    """Strip a ``callback( ... );`` wrapper, leaving plain JSON untouched."""
    text = payload.strip()
    if text.startswith("{") or text.startswith("["):
        return text
    text = _JSONP_PREFIX_RE.sub("", text, count=1)
    return _JSONP_SUFFIX_RE.sub("", text, count=1)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration(ms: float) -> str:
    """
    Render a millisecond span as "N minutes" or "H hours M minutes".

    Minutes are rounded half-up; the minute clause is dropped when zero.
    """
    minutes = int(math.floor(ms / 60_000 + 0.5))
    if minutes < 60:
        return _plural(minutes, "minute")

    hours, remaining = divmod(minutes, 60)
    if remaining > 0:
        return f"{_plural(hours, 'hour')} {_plural(remaining, 'minute')}"
    return _plural(hours, "hour")


def epoch_ms_to_iso(ms: float) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string (``...Z``)."""
    return format_timestamp(datetime.fromtimestamp(ms / 1000, tz=timezone.utc))


# ─── Public API ───────────────────────────────────────────────


def parse_google_feed(xml_text: str, feed: FeedConfig) -> List[Incident]:
    """
    Parse the Google Workspace Atom feed into Gmail incidents.

    Entries are newest-first, so the first entry seen for an incident id
    is its latest update and later ones are ignored.
    """
    root = ET.fromstring(xml_text)
    incidents: List[Incident] = []
    seen: set = set()

    for entry in root.findall("atom:entry", _ATOM_NS):
        title = _get_text(entry, "atom:title", _ATOM_NS) or ""
        summary = _get_text(entry, "atom:summary", _ATOM_NS) or ""

        if not (mentions_any(summary, feed.keywords) or mentions_any(title, feed.keywords)):
            continue

        link_el = entry.find("atom:link", _ATOM_NS)
        link = link_el.attrib.get("href", "") if link_el is not None else ""

        incident_id = extract_incident_id(link)
        if not incident_id or incident_id in seen:
            continue
        seen.add(incident_id)

        incidents.append(
            Incident(
                provider=feed.provider,
                service=feed.name,
                id=incident_id,
                title=title.strip().split("\n")[0][:TITLE_LIMIT],
                description=extract_description(summary)[:DESCRIPTION_LIMIT],
                link=link,
                start_time=extract_start_time(summary),
                updated=_get_text(entry, "atom:updated", _ATOM_NS),
                is_resolved=mentions_any(title, ("resolved",)) or mentions_any(summary, ("resolved",)),
            )
        )

    return incidents


def parse_apple_feed(payload: str, feed: FeedConfig) -> List[Incident]:
    """
    Parse Apple System Status (JSONP) into iCloud Mail incidents.

    Only the service whose name matches ``feed.name`` exactly (ignoring
    case) is considered; each of its events becomes one incident.
    """
    data = json.loads(unwrap_jsonp(payload))
    if not isinstance(data, dict):
        raise FeedFormatError("expected a JSON object at the top level")

    incidents: List[Incident] = []
    target = feed.name.lower()

    for service in data.get("services") or []:
        if str(service.get("serviceName") or "").lower() != target:
            continue
        events = service.get("events") or []
        if not events:
            continue

        for event in events:
            incidents.append(_apple_event_to_incident(event, feed))

    return incidents


def _apple_event_to_incident(event: Dict[str, Any], feed: FeedConfig) -> Incident:
    start_ms = event.get("epochStartDate")
    end_ms = event.get("epochEndDate")

    duration = None
    if start_ms and end_ms:
        duration = format_duration(end_ms - start_ms)

    users_affected = event.get("usersAffected")
    description = event.get("message") or _DEFAULT_APPLE_DESCRIPTION.format(service=feed.name)

    return Incident(
        provider=feed.provider,
        service=feed.name,
        id=str(event.get("messageId")),
        title=f"{feed.name} {event.get('statusType') or 'Issue'}"[:TITLE_LIMIT],
        description=description[:DESCRIPTION_LIMIT],
        link=feed.status_page,
        start_time=epoch_ms_to_iso(start_ms) if start_ms else None,
        end_time=epoch_ms_to_iso(end_ms) if end_ms else None,
        duration=duration,
        updated=event.get("datePosted"),
        is_resolved=event.get("eventStatus") == "resolved",
        users_affected=str(users_affected) if users_affected else None,
    )


def parse_microsoft_feed(
    xml_text: str,
    feed: FeedConfig,
    clock: Callable[[], float] = time.time,
) -> List[Incident]:
    """
    Parse the Microsoft status RSS feed into Outlook / Microsoft 365 incidents.

    The feed reports overall service status rather than discrete incidents,
    so an item is kept either when it mentions mail or when its status is
    anything other than "Available". Items are never reported resolved;
    they are closed only once they stop appearing.

    Items without a <guid> get a time-based id, which changes every poll.
    """
    root = ET.fromstring(xml_text)
    incidents: List[Incident] = []

    for item in root.iter("item"):
        title = _get_text(item, "title") or ""
        description = _get_text(item, "description") or ""
        status = _get_text(item, "status") or ""

        is_mail_related = mentions_any(title, feed.keywords) or mentions_any(
            description, feed.description_keywords or feed.keywords
        )
        is_outage = status.strip().lower() != "available"
        if not (is_outage or is_mail_related):
            continue

        guid = (_get_text(item, "guid") or "").strip()
        pub_date = _get_text(item, "pubDate")

        incidents.append(
            Incident(
                provider=feed.provider,
                service=feed.name,
                id=guid or f"ms-{int(clock() * 1000)}",
                title=title[:TITLE_LIMIT],
                description=strip_html(description)[:DESCRIPTION_LIMIT],
                link=(_get_text(item, "link") or "").strip() or feed.status_page,
                start_time=pub_date,
                updated=pub_date,
                is_resolved=False,
                status=status,
            )
        )

    return incidents


_PARSERS: Dict[str, Callable[[str, FeedConfig], List[Incident]]] = {
    "atom": parse_google_feed,
    "json": parse_apple_feed,
    "rss": parse_microsoft_feed,
}


def parse_feed(raw: str, feed: FeedConfig) -> List[Incident]:
    """
    Dispatch to the parser registered for ``feed.feed_type``.

    Raises:
        FeedFormatError: unknown feed type or malformed payload structure.
    """
    parser = _PARSERS.get(feed.feed_type.lower())
    if parser is None:
        raise FeedFormatError(f"unsupported feed type {feed.feed_type!r}")
    return parser(raw, feed)


# ─── Helpers ──────────────────────────────────────────────────


def _get_text(element: ET.Element, tag: str, ns: dict | None = None) -> Optional[str]:
    """Safely get text content from a child element."""
    child = element.find(tag, ns) if ns else element.find(tag)
    if child is not None and child.text:
        return child.text
    return None
