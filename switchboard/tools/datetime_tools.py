"""
Built-in date and time tools.

Pure, local computations: no network, so none of them is transient.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from switchboard.llm.tools import ToolDefinition


def _now(tz_name: Optional[str] = None) -> datetime:
    if not tz_name:
        return datetime.now(timezone.utc)
    try:
        return datetime.now(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e


def get_current_datetime() -> str:
    """Current UTC date and time in ISO 8601 format."""
    return _now().isoformat(timespec="seconds")


def get_current_date() -> str:
    """Current UTC date as YYYY-MM-DD."""
    return _now().date().isoformat()


def get_current_time(timezone: Optional[str] = None) -> str:
    """Current time as HH:MM:SS with zone name, UTC unless an IANA zone is given."""
    now = _now(timezone)
    return f"{now.strftime('%H:%M:%S')} {now.tzname()}"


DATETIME_TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name="get_current_datetime",
        description="Get the current date and time in UTC (ISO 8601).",
        handler=get_current_datetime,
    ),
    ToolDefinition(
        name="get_current_date",
        description="Get today's date in UTC (YYYY-MM-DD).",
        handler=get_current_date,
    ),
    ToolDefinition(
        name="get_current_time",
        description="Get the current time, optionally in a given IANA timezone.",
        parameters={
            "timezone": {
                "type": "string",
                "description": "IANA timezone name, e.g. 'Europe/Paris'. Defaults to UTC.",
            },
        },
        handler=get_current_time,
    ),
]
