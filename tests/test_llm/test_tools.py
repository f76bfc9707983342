"""
Tests for tool definitions, the ToolRegistry and the ToolInvocationInterceptor.
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from switchboard.exceptions import ToolExecutionError
from switchboard.llm.streaming import UpdateType
from switchboard.llm.tools import (
    ToolDefinition,
    ToolInvocationInterceptor,
    ToolRegistry,
    parse_arguments,
)


# ===========================================================================
# Helpers
# ===========================================================================

def _add(a: int, b: int) -> int:
    return a + b


async def _async_echo(text: str) -> str:
    await asyncio.sleep(0)
    return text


def _flaky(**kwargs):
    raise ConnectionError("upstream down")


def _make_registry() -> ToolRegistry:
    return ToolRegistry([
        ToolDefinition(
            name="add",
            description="Add two numbers",
            parameters={
                "a": {"type": "integer", "description": "First"},
                "b": {"type": "integer", "description": "Second"},
            },
            required=["a", "b"],
            handler=_add,
        ),
        ToolDefinition(
            name="echo",
            description="Echo text",
            parameters={"text": "Text to echo"},
            required=["text"],
            handler=_async_echo,
        ),
        ToolDefinition(
            name="lookup",
            description="Network-backed lookup",
            handler=_flaky,
            transient=True,
        ),
        ToolDefinition(
            name="broken",
            description="Pure logic that fails",
            handler=lambda: 1 / 0,
        ),
    ])


# ===========================================================================
# Test: ToolDefinition
# ===========================================================================

class TestToolDefinition:

    def test_to_openai(self):
        tool = _make_registry().get("add")
        schema = tool.to_openai()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "add"
        assert schema["function"]["parameters"]["required"] == ["a", "b"]

    def test_to_anthropic(self):
        schema = _make_registry().get("add").to_anthropic()
        assert schema["name"] == "add"
        assert schema["input_schema"]["properties"]["a"]["type"] == "integer"

    def test_string_parameter_becomes_schema(self):
        props = _make_registry().get("echo").input_schema()["properties"]
        assert props["text"] == {"type": "string", "description": "Text to echo"}

    def test_validate_arguments(self):
        tool = _make_registry().get("add")
        assert tool.validate_arguments({"a": 1, "b": 2}) == []
        assert tool.validate_arguments({"a": 1}) == ["Missing required parameter: b"]


class TestParseArguments:

    def test_json_string(self):
        assert parse_arguments('{"a": 1}') == {"a": 1}

    def test_dict_passthrough(self):
        assert parse_arguments({"a": 1}) == {"a": 1}

    def test_empty_and_invalid(self):
        assert parse_arguments("") == {}
        assert parse_arguments(None) == {}
        assert parse_arguments("{not json") == {}
        assert parse_arguments("[1, 2]") == {}


# ===========================================================================
# Test: ToolRegistry
# ===========================================================================

class TestToolRegistry:

    def test_register_requires_handler(self):
        with pytest.raises(ValueError, match="no handler"):
            ToolRegistry().register(ToolDefinition(name="x", description="x"))

    def test_lookup_and_listing(self):
        registry = _make_registry()
        assert "add" in registry
        assert len(registry) == 4
        assert registry.list_tools() == ["add", "echo", "lookup", "broken"]
        assert registry.get("nope") is None

    def test_subset(self):
        registry = _make_registry().subset(["echo", "missing"])
        assert registry.list_tools() == ["echo"]

    def test_subset_none_keeps_all(self):
        assert len(_make_registry().subset(None)) == 4

    def test_describe(self):
        described = {d["name"]: d for d in _make_registry().describe()}
        assert described["lookup"]["transient"] is True
        assert described["add"]["required"] == ["a", "b"]


# ===========================================================================
# Test: ToolInvocationInterceptor
# ===========================================================================

class TestInterceptor:

    @pytest.mark.asyncio
    async def test_sync_handler_recorded(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        result = await interceptor.invoke("add", {"a": 2, "b": 2})

        assert result == "4"
        [record] = interceptor.records
        assert record.tool_name == "add"
        assert record.arguments == {"a": 2, "b": 2}
        assert record.result == "4"
        assert record.execution_time.total_seconds() >= 0

    @pytest.mark.asyncio
    async def test_async_handler(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        assert await interceptor.invoke("echo", {"text": "hi"}) == "hi"

    @pytest.mark.asyncio
    async def test_records_in_invocation_order(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        await interceptor.invoke("echo", {"text": "first"})
        await interceptor.invoke("add", {"a": 1, "b": 1})
        assert [r.tool_name for r in interceptor.records] == ["echo", "add"]

    @pytest.mark.asyncio
    async def test_records_is_snapshot(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        snapshot = interceptor.records
        await interceptor.invoke("echo", {"text": "x"})
        assert snapshot == []
        assert len(interceptor.records) == 1

    @pytest.mark.asyncio
    async def test_concurrent_invocations_no_lost_writes(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        n = 50
        await asyncio.gather(*(
            interceptor.invoke("add", {"a": i, "b": 1}) for i in range(n)
        ))
        records = interceptor.records
        assert len(records) == n
        assert sorted(int(r.result) for r in records) == list(range(1, n + 1))

    def test_concurrent_invocations_across_threads(self):
        interceptor = ToolInvocationInterceptor(_make_registry())

        def worker(i: int) -> None:
            asyncio.run(interceptor.invoke("add", {"a": i, "b": 0}))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(interceptor.records) == 20

    @pytest.mark.asyncio
    async def test_unknown_tool_is_permanent(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        with pytest.raises(ToolExecutionError) as exc_info:
            await interceptor.invoke("nope", {})
        assert exc_info.value.tool_name == "nope"
        assert exc_info.value.is_transient is False

    @pytest.mark.asyncio
    async def test_missing_arguments_is_permanent(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        with pytest.raises(ToolExecutionError) as exc_info:
            await interceptor.invoke("add", {"a": 1})
        assert exc_info.value.is_transient is False
        assert interceptor.records == []

    @pytest.mark.asyncio
    async def test_failure_class_comes_from_tool(self):
        interceptor = ToolInvocationInterceptor(_make_registry())

        with pytest.raises(ToolExecutionError) as transient:
            await interceptor.invoke("lookup", {})
        assert transient.value.is_transient is True
        assert isinstance(transient.value.__cause__, ConnectionError)

        with pytest.raises(ToolExecutionError) as permanent:
            await interceptor.invoke("broken", {})
        assert permanent.value.is_transient is False
        assert isinstance(permanent.value.__cause__, ZeroDivisionError)

        assert interceptor.records == []

    @pytest.mark.asyncio
    async def test_queues_start_and_complete_updates(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        await interceptor.invoke("echo", {"text": "x"})

        updates = interceptor.drain_updates()
        assert [u.type for u in updates] == [
            UpdateType.TOOL_CALL_START,
            UpdateType.TOOL_CALL_COMPLETE,
        ]
        assert all(u.tool_name == "echo" for u in updates)
        assert interceptor.drain_updates() == []

    @pytest.mark.asyncio
    async def test_start_queues_update_before_running(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        run = interceptor.start("add", {"a": 2, "b": 5})

        assert [u.type for u in interceptor.drain_updates()] == [UpdateType.TOOL_CALL_START]
        assert interceptor.records == []

        assert await run() == "7"
        assert [u.type for u in interceptor.drain_updates()] == [UpdateType.TOOL_CALL_COMPLETE]
        assert interceptor.records[0].arguments == {"a": 2, "b": 5}

    def test_start_rejects_unknown_tool_immediately(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        with pytest.raises(ToolExecutionError):
            interceptor.start("nope", {})
        assert interceptor.drain_updates() == []

    @pytest.mark.asyncio
    async def test_failed_tool_queues_only_start(self):
        interceptor = ToolInvocationInterceptor(_make_registry())
        with pytest.raises(ToolExecutionError):
            await interceptor.invoke("broken", {})
        assert [u.type for u in interceptor.drain_updates()] == [UpdateType.TOOL_CALL_START]

    def test_has_tools(self):
        assert ToolInvocationInterceptor(_make_registry()).has_tools
        assert not ToolInvocationInterceptor().has_tools
