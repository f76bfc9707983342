"""
Tests for the sample weather tools.
"""

from __future__ import annotations

import re

import pytest

from switchboard.exceptions import ToolExecutionError
from switchboard.llm.tools import ToolInvocationInterceptor, ToolRegistry
from switchboard.tools import build_default_registry, weather_tools
from switchboard.tools.weather_tools import (
    CONDITIONS,
    WEATHER_TOOLS,
    clamp_days,
    get_current_weather,
    get_weather_forecast,
)

DAY_LINE = re.compile(r"Day (\d): (\w+), (-?\d+)°C to (-?\d+)°C")


@pytest.fixture(autouse=True)
def _no_latency(monkeypatch):
    monkeypatch.setattr(weather_tools, "LATENCY", 0)


class TestCurrentWeather:

    @pytest.mark.asyncio
    async def test_mentions_location_and_condition(self):
        result = await get_current_weather("London, UK")
        match = re.fullmatch(
            r"The current weather in London, UK is (\w+) with a temperature of (-?\d+)°C\.",
            result,
        )
        assert match
        assert match.group(1) in CONDITIONS
        assert -10 <= int(match.group(2)) <= 34

    @pytest.mark.asyncio
    async def test_stable_for_same_location(self):
        first = await get_current_weather("Paris")
        second = await get_current_weather(" paris ")
        assert first.split(" is ", 1)[1] == second.split(" is ", 1)[1]


class TestForecast:

    @pytest.mark.asyncio
    async def test_default_is_three_days(self):
        result = await get_weather_forecast("New York, USA")
        lines = result.splitlines()
        assert lines[0] == "Weather forecast for New York, USA:"
        assert [DAY_LINE.fullmatch(line).group(1) for line in lines[1:]] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_high_not_below_low(self):
        result = await get_weather_forecast("Tokyo, Japan", days=7)
        for line in result.splitlines()[1:]:
            _, condition, low, high = DAY_LINE.fullmatch(line).groups()
            assert condition in CONDITIONS
            assert int(high) > int(low)

    @pytest.mark.parametrize("days,expected", [(0, 1), (-3, 1), (1, 1), (5, 5), (7, 7), (30, 7)])
    def test_clamp_days(self, days, expected):
        assert clamp_days(days) == expected

    @pytest.mark.asyncio
    async def test_out_of_range_days_clamped(self):
        result = await get_weather_forecast("Oslo", days=12)
        assert len(result.splitlines()) == 1 + 7


class TestWeatherRegistry:

    def test_tools_are_transient(self):
        assert all(tool.transient for tool in WEATHER_TOOLS)

    def test_registered_by_default(self):
        names = build_default_registry().list_tools()
        assert "get_current_weather" in names
        assert "get_weather_forecast" in names

    @pytest.mark.asyncio
    async def test_invoked_through_interceptor(self):
        interceptor = ToolInvocationInterceptor(ToolRegistry(WEATHER_TOOLS))
        result = await interceptor.invoke("get_weather_forecast", {"location": "Rome", "days": 2})

        assert result.startswith("Weather forecast for Rome:")
        assert interceptor.records[0].arguments == {"location": "Rome", "days": 2}

    @pytest.mark.asyncio
    async def test_location_required(self):
        interceptor = ToolInvocationInterceptor(ToolRegistry(WEATHER_TOOLS))
        with pytest.raises(ToolExecutionError) as exc_info:
            await interceptor.invoke("get_current_weather", {})
        assert not exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_handler_failure_is_transient(self):
        interceptor = ToolInvocationInterceptor(ToolRegistry(WEATHER_TOOLS))
        with pytest.raises(ToolExecutionError) as exc_info:
            await interceptor.invoke(
                "get_weather_forecast", {"location": "Rome", "days": "several"}
            )
        assert exc_info.value.is_transient
