"""
Provider adapters — fetch a feed and normalise it.

Each adapter call is isolated: network errors, timeouts, bad status codes
and malformed payloads are reported and turn into an empty incident list,
so one broken provider never blocks the others. All feeds share a single
aiohttp session and are fetched concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Sequence

import aiohttp

from mailstatus import notifier
from mailstatus.feed_parser import parse_feed
from mailstatus.models import FeedConfig, Incident, MonitorSettings

_ACCEPT = {
    "atom": "application/atom+xml, application/xml, */*",
    "json": "application/json, text/javascript, */*",
    "rss": "application/rss+xml, application/xml, */*",
}


async def fetch_text(
    session: aiohttp.ClientSession,
    feed: FeedConfig,
    settings: MonitorSettings,
) -> str:
    """
    GET the feed body. Redirects are followed by aiohttp.

    Raises:
        aiohttp.ClientResponseError: any status other than 200.
    """
    headers: Dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": _ACCEPT.get(feed.feed_type, "*/*"),
    }
    async with session.get(
        feed.url,
        headers=headers,
        timeout=aiohttp.ClientTimeout(total=settings.request_timeout),
    ) as resp:
        if resp.status != 200:
            raise aiohttp.ClientResponseError(
                resp.request_info,
                resp.history,
                status=resp.status,
                message=f"HTTP {resp.status} for {feed.url}",
            )
        return await resp.text()


async def fetch_and_parse(
    session: aiohttp.ClientSession,
    feed: FeedConfig,
    settings: MonitorSettings,
) -> List[Incident]:
    """Fetch and parse one provider feed. Never raises."""
    notifier.print_provider_check(feed.name, feed.url)
    try:
        body = await fetch_text(session, feed, settings)
        return parse_feed(body, feed)
    except asyncio.TimeoutError:
        notifier.print_error(f"Parsing {feed.provider.display_name} feed", f"Timeout fetching {feed.url}")
    except Exception as exc:
        notifier.print_error(f"Parsing {feed.provider.display_name} feed", str(exc) or repr(exc))
    return []


async def fetch_all(
    session: aiohttp.ClientSession,
    feeds: Sequence[FeedConfig],
    settings: MonitorSettings,
) -> List[Incident]:
    """Run every adapter concurrently; results keep configuration order."""
    results = await asyncio.gather(
        *(fetch_and_parse(session, feed, settings) for feed in feeds)
    )
    incidents: List[Incident] = []
    for batch in results:
        incidents.extend(batch)
    return incidents
