"""
External Mail Status Monitor — outage issue reconciler.

Polls the Gmail, iCloud Mail and Outlook.com status feeds once per run
and keeps one GitHub issue per active mail-delivery incident.
"""

__version__ = "1.0.0"
