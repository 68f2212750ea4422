"""
Console Notifier — structured progress output.

One print_* function per event of a reconciliation pass: start, provider
checks, per-incident actions and completion. ANSI colors for readability;
errors go to stderr.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone

# ANSI color codes for terminal styling
_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[91m"
_GREEN = "\033[92m"
_YELLOW = "\033[93m"
_BLUE = "\033[94m"
_CYAN = "\033[96m"
_GRAY = "\033[90m"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def print_run_start() -> None:
    """Print the opening line of a pass."""
    print(f"{_GRAY}[{_now()}]{_RESET} {_BOLD}{_CYAN}Starting external mail provider status check...{_RESET}")


def print_provider_check(provider_name: str, feed_url: str) -> None:
    """Print a message when a provider feed is being checked."""
    print(f"  {_BOLD}{_BLUE}> Checking:{_RESET} {provider_name}  {_DIM}({feed_url}){_RESET}")


def print_incident_count(count: int) -> None:
    """Print how many incidents a provider reported."""
    print(f"  Found {_BOLD}{count}{_RESET} relevant incident(s)")


def print_new_incident(key: str) -> None:
    """Print a banner for an incident seen for the first time."""
    print(f"  {_BOLD}{_RED}NEW INCIDENT{_RESET} {key}")


def print_issue_created(issue_number: int, service: str, incident_id: str) -> None:
    """Print the number of a newly opened issue."""
    print(f"    Created issue #{issue_number} for {service} incident {incident_id}")


def print_issue_recovered(issue_number: int, key: str) -> None:
    """Print when an open issue is adopted instead of creating one."""
    print(f"    {_YELLOW}Found existing issue #{issue_number}{_RESET} for incident {key}")


def print_issue_updated(issue_number: int) -> None:
    """Print when a status comment was posted."""
    print(f"    Updated issue #{issue_number} with latest status")


def print_issue_closed(issue_number: int, key: str) -> None:
    """Print when an incident resolved and its issue was closed."""
    print(f"  {_BOLD}{_GREEN}RESOLVED{_RESET} {key}: closed issue #{issue_number}")


def print_no_action(key: str, reason: str) -> None:
    """Print a subtle line for an incident that needed nothing (debug level)."""
    print(f"  {_DIM}{key}: {reason}{_RESET}")


def print_pruned(count: int) -> None:
    """Print how many expired records were dropped."""
    print(f"  {_DIM}Pruned {count} expired tracking record(s){_RESET}")


def print_run_complete(summary: str) -> None:
    """Print the closing line of a pass with its action counts."""
    print(f"{_GRAY}[{_now()}]{_RESET} {_BOLD}{_GREEN}Status check complete{_RESET}  {_DIM}{summary}{_RESET}")


def print_error(context: str, message: str) -> None:
    """Print an error message."""
    print(
        f"  {_GRAY}[{_now()}]{_RESET} {_RED}ERROR{_RESET} "
        f"{_BOLD}{context}:{_RESET} {message}",
        file=sys.stderr,
    )


def print_fatal(message: str) -> None:
    """Print the error that aborted the pass."""
    print(f"{_BOLD}{_RED}Monitor failed:{_RESET} {message}", file=sys.stderr)
