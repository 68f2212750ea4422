"""Tests for the provider adapters' fetch / isolate behaviour."""

import asyncio
from dataclasses import replace

import aiohttp
from aiohttp import test_utils, web

from mailstatus.config import DEFAULT_CONFIG, DEFAULT_FEEDS
from mailstatus.fetcher import fetch_all, fetch_and_parse
from tests.test_feed_parser import SAMPLE_APPLE_PAYLOAD, SAMPLE_GOOGLE_FEED

GOOGLE, APPLE, MICROSOFT = DEFAULT_FEEDS


def _feed_app():
    async def google(request):
        return web.Response(text=SAMPLE_GOOGLE_FEED, content_type="application/atom+xml")

    async def moved(request):
        raise web.HTTPFound("/google.atom")

    async def apple(request):
        return web.Response(text=SAMPLE_APPLE_PAYLOAD, content_type="text/javascript")

    async def broken(request):
        return web.Response(status=503, text="unavailable")

    async def garbage(request):
        return web.Response(text="<rss><channel><item>")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="")

    app = web.Application()
    app.router.add_get("/google.atom", google)
    app.router.add_get("/moved", moved)
    app.router.add_get("/apple.js", apple)
    app.router.add_get("/broken", broken)
    app.router.add_get("/garbage", garbage)
    app.router.add_get("/slow", slow)
    return app


def _run(scenario, settings=DEFAULT_CONFIG.settings):
    async def runner():
        async with test_utils.TestServer(_feed_app()) as server:
            base = str(server.make_url("/")).rstrip("/")
            async with aiohttp.ClientSession() as session:
                return await scenario(session, base, settings)

    return asyncio.run(runner())


class TestFetchAndParse:
    def test_parses_feed(self):
        incidents = _run(
            lambda s, base, st: fetch_and_parse(s, replace(GOOGLE, url=f"{base}/google.atom"), st)
        )
        assert [inc.id for inc in incidents] == ["abc123XYZ", "def456"]

    def test_follows_redirects(self):
        incidents = _run(lambda s, base, st: fetch_and_parse(s, replace(GOOGLE, url=f"{base}/moved"), st))
        assert len(incidents) == 2

    def test_http_error_returns_empty(self, capsys):
        incidents = _run(lambda s, base, st: fetch_and_parse(s, replace(APPLE, url=f"{base}/broken"), st))
        assert incidents == []
        assert "HTTP 503" in capsys.readouterr().err

    def test_malformed_payload_returns_empty(self):
        incidents = _run(
            lambda s, base, st: fetch_and_parse(s, replace(MICROSOFT, url=f"{base}/garbage"), st)
        )
        assert incidents == []

    def test_timeout_returns_empty(self, capsys):
        settings = replace(DEFAULT_CONFIG.settings, request_timeout=0.2)
        incidents = _run(
            lambda s, base, st: fetch_and_parse(s, replace(GOOGLE, url=f"{base}/slow"), st),
            settings=settings,
        )
        assert incidents == []
        assert "Timeout fetching" in capsys.readouterr().err


class TestFetchAll:
    def test_one_failure_does_not_block_others(self):
        def scenario(session, base, settings):
            feeds = (
                replace(GOOGLE, url=f"{base}/google.atom"),
                replace(MICROSOFT, url=f"{base}/broken"),
                replace(APPLE, url=f"{base}/apple.js"),
            )
            return fetch_all(session, feeds, settings)

        incidents = _run(scenario)
        assert [inc.key for inc in incidents] == [
            "google-abc123XYZ",
            "google-def456",
            "apple-1000001",
            "apple-1000002",
        ]
