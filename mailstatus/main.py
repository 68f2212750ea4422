"""
Main entry point — one reconciliation pass.

Loads configuration and the GitHub token, fetches every provider feed
concurrently over a shared aiohttp session, reconciles the incidents
against the persisted state, and saves the state.

Usage:
    python -m mailstatus [config.yaml]
    mail-status-monitor [config.yaml]
"""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from typing import Callable, List, Mapping, Optional

import aiohttp

from mailstatus import notifier
from mailstatus.config import load_config, load_token
from mailstatus.fetcher import fetch_all
from mailstatus.github import GITHUB_API_URL, GitHubClient
from mailstatus.models import MonitorConfig
from mailstatus.reconciler import ReconcileSummary, Reconciler, utc_now
from mailstatus.state import format_timestamp, load_state, save_state


async def run_once(
    config: MonitorConfig,
    environ: Optional[Mapping[str, str]] = None,
    github_url: str = GITHUB_API_URL,
    clock: Callable[[], datetime] = utc_now,
) -> ReconcileSummary:
    """
    Execute a single pass.

    The token is checked before any network activity; a missing token
    raises MissingTokenError. Once the pass has started, the state file
    is always written, even if some incidents failed.
    """
    token = load_token(environ)
    notifier.print_run_start()

    state = load_state(config.state_file)
    summary = ReconcileSummary()

    # Shared session — connection pooling across feeds and the GitHub API
    connector = aiohttp.TCPConnector(limit_per_host=5)
    async with aiohttp.ClientSession(connector=connector) as session:
        try:
            incidents = await fetch_all(session, config.feeds, config.settings)
            notifier.print_incident_count(len(incidents))

            tracker = GitHubClient(session, token, config, base_url=github_url)
            summary = await Reconciler(tracker, config, clock=clock).reconcile(incidents, state)
        finally:
            state.last_run = format_timestamp(clock())
            save_state(state, config.state_file)

    notifier.print_run_complete(str(summary))
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    """Sync entry point. Returns the process exit code."""
    args = sys.argv[1:] if argv is None else argv
    try:
        config = load_config(args[0] if args else None)
        asyncio.run(run_once(config))
    except Exception as exc:
        notifier.print_fatal(str(exc) or repr(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
