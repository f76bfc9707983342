"""
Built-in tools that can be exposed to backends out of the box.

Usage:
    from switchboard.tools import build_default_registry

    registry = build_default_registry(["get_current_date", "get_current_weather"])
"""

from __future__ import annotations

from typing import Optional

from switchboard.llm.tools import ToolDefinition, ToolRegistry
from switchboard.tools.datetime_tools import DATETIME_TOOLS
from switchboard.tools.weather_tools import WEATHER_TOOLS

BUILTIN_TOOLS: list[ToolDefinition] = DATETIME_TOOLS + WEATHER_TOOLS


def build_default_registry(enabled: Optional[list[str]] = None) -> ToolRegistry:
    """Registry of the built-in tools, optionally limited to `enabled` names."""
    return ToolRegistry(BUILTIN_TOOLS).subset(enabled)
