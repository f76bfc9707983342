"""
Sample weather tools.

Stand-ins for a network weather API: each call waits briefly and returns
mock conditions. Readings are seeded from the location and the current
UTC date, so the same city gives the same answer for the rest of the day.
Both tools are transient, like any real upstream lookup would be.

Usage:
    from switchboard.tools.weather_tools import WEATHER_TOOLS

    registry = ToolRegistry(WEATHER_TOOLS)
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone

from switchboard.llm.tools import ToolDefinition

CONDITIONS = ("sunny", "cloudy", "rainy", "snowy", "windy", "foggy")

MIN_FORECAST_DAYS = 1
MAX_FORECAST_DAYS = 7

# Simulated upstream latency in seconds
LATENCY = 0.1


def _rng(location: str) -> random.Random:
    today = datetime.now(timezone.utc).date().isoformat()
    return random.Random(f"{location.strip().lower()}:{today}")


def clamp_days(days: int) -> int:
    return max(MIN_FORECAST_DAYS, min(MAX_FORECAST_DAYS, int(days)))


async def get_current_weather(location: str) -> str:
    """Current conditions and temperature for a location."""
    await asyncio.sleep(LATENCY)
    rng = _rng(location)
    condition = rng.choice(CONDITIONS)
    temperature = rng.randint(-10, 34)
    return f"The current weather in {location} is {condition} with a temperature of {temperature}°C."


async def get_weather_forecast(location: str, days: int = 3) -> str:
    """Daily forecast for a location; days is clamped to 1-7."""
    await asyncio.sleep(LATENCY)
    rng = _rng(location)
    lines = [f"Weather forecast for {location}:"]
    for day in range(1, clamp_days(days) + 1):
        condition = rng.choice(CONDITIONS)
        low = rng.randint(-10, 24)
        high = low + rng.randint(5, 14)
        lines.append(f"Day {day}: {condition}, {low}°C to {high}°C")
    return "\n".join(lines)


WEATHER_TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name="get_current_weather",
        description="Get the current weather for a location.",
        parameters={
            "location": {
                "type": "string",
                "description": "The location to get weather for, e.g. 'London, UK'.",
            },
        },
        required=["location"],
        handler=get_current_weather,
        transient=True,
    ),
    ToolDefinition(
        name="get_weather_forecast",
        description="Get a daily weather forecast for a location.",
        parameters={
            "location": {
                "type": "string",
                "description": "The location to forecast, e.g. 'London, UK'.",
            },
            "days": {
                "type": "integer",
                "description": "Number of days to forecast (1-7). Defaults to 3.",
            },
        },
        required=["location"],
        handler=get_weather_forecast,
        transient=True,
    ),
]
