"""
YAML configuration loader.

Reads config.yaml and produces an immutable MonitorConfig. Anything the
file leaves out falls back to the built-in defaults, and a missing file
means the defaults are used as-is.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from mailstatus.models import FeedConfig, MonitorConfig, MonitorSettings, Provider

# Default path: config.yaml next to the project root
_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

TOKEN_ENV_VARS = ("GH_PAT", "GITHUB_TOKEN")

DEFAULT_FEEDS = (
    FeedConfig(
        provider=Provider.GOOGLE,
        name="Gmail",
        url="https://www.google.com/appsstatus/dashboard/en/feed.atom",
        keywords=("gmail",),
        feed_type="atom",
        status_page="https://www.google.com/appsstatus/dashboard/",
    ),
    FeedConfig(
        provider=Provider.APPLE,
        name="iCloud Mail",
        url="https://www.apple.com/support/systemstatus/data/system_status_en_US.js",
        feed_type="json",
        status_page="https://www.apple.com/support/systemstatus/",
    ),
    FeedConfig(
        provider=Provider.MICROSOFT,
        name="Outlook.com / Microsoft 365",
        url="https://status.cloud.microsoft/api/feed/mac",
        keywords=("outlook", "microsoft 365", "exchange"),
        description_keywords=("outlook", "exchange", "email"),
        feed_type="rss",
        status_page="https://status.cloud.microsoft/",
    ),
)

DEFAULT_CONFIG = MonitorConfig(
    owner="forwardemail",
    repo="status.forwardemail.net",
    feeds=DEFAULT_FEEDS,
)


class MissingTokenError(RuntimeError):
    """Raised when no GitHub token is present in the environment."""


def load_token(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the GitHub token, trying GH_PAT first and GITHUB_TOKEN second.

    Raises:
        MissingTokenError: neither variable is set to a non-empty value.
    """
    env = os.environ if environ is None else environ
    for name in TOKEN_ENV_VARS:
        token = env.get(name)
        if token:
            return token
    raise MissingTokenError(
        "GitHub token not found. Set GH_PAT or GITHUB_TOKEN environment variable."
    )


def load_config(path: str | Path | None = None) -> MonitorConfig:
    """
    Load and parse the YAML configuration file.

    Returns:
        A MonitorConfig built from the file layered over DEFAULT_CONFIG.
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    if not config_path.exists():
        print(f"⚠  Config file not found at {config_path}, using defaults.")
        return DEFAULT_CONFIG

    with open(config_path, "r") as fh:
        raw = yaml.safe_load(fh) or {}

    return config_from_dict(raw)


def config_from_dict(raw: Dict[str, Any]) -> MonitorConfig:
    """Overlay a parsed YAML mapping onto the defaults."""
    repo = raw.get("repository", {})
    raw_feeds = raw.get("feeds", {})
    raw_settings = raw.get("settings", {})

    feeds = []
    for feed in DEFAULT_CONFIG.feeds:
        entry = raw_feeds.get(feed.provider.value)
        if entry is None:
            feeds.append(feed)
            continue
        if entry.get("enabled", True) is False:
            continue
        feeds.append(
            replace(
                feed,
                name=entry.get("name", feed.name),
                url=entry.get("url", feed.url),
                keywords=_keyword_tuple(entry.get("keywords", feed.keywords)),
                description_keywords=_keyword_tuple(
                    entry.get("description_keywords", feed.description_keywords)
                ),
                status_page=entry.get("status_page", feed.status_page),
            )
        )

    defaults = DEFAULT_CONFIG.settings
    settings = MonitorSettings(
        log_level=str(raw_settings.get("log_level", defaults.log_level)).upper(),
        request_timeout=float(raw_settings.get("request_timeout", defaults.request_timeout)),
        update_interval_hours=float(
            raw_settings.get("update_interval_hours", defaults.update_interval_hours)
        ),
        retention_days=float(raw_settings.get("retention_days", defaults.retention_days)),
        user_agent=raw_settings.get("user_agent", defaults.user_agent),
    )

    return MonitorConfig(
        owner=repo.get("owner", DEFAULT_CONFIG.owner),
        repo=repo.get("name", DEFAULT_CONFIG.repo),
        labels=tuple(repo.get("labels", DEFAULT_CONFIG.labels)),
        state_file=raw.get("state_file", DEFAULT_CONFIG.state_file),
        feeds=tuple(feeds),
        settings=settings,
    )


def _keyword_tuple(value: Any) -> Tuple[str, ...]:
    """Accept a single keyword or a list of them; lower-cased."""
    if isinstance(value, str):
        value = [value]
    return tuple(str(k).lower() for k in value or ())
