"""
sochma/utils/time_utils.py

Purpose: Time helpers

- Single UTC clock used for record timestamps
- Timestamp formatting for prompts
"""

from datetime import datetime
from typing import Optional


def utcnow() -> datetime:
    """
    Naive UTC timestamp, matching what MongoDB hands back on read.
    """
    return datetime.utcnow()


def format_timestamp(dt: Optional[datetime], format_str: str = "%Y-%m-%d %H:%M") -> str:
    """
    Formats a datetime object to string.
    """
    if not dt:
        return "N/A"
    return dt.strftime(format_str)
