"""
Tool Use / Function Calling — Unified interface across LLM providers.

Provides a provider-agnostic way to define tools (functions), pass them to
backends, and execute the calls the backend asks for. Handles schema
translation between Anthropic's tool_use format and the OpenAI/Ollama
function_calling format.

Every tool execution goes through a ToolInvocationInterceptor, which times
the call, records a ToolCallRecord, and turns failures into
ToolExecutionError tagged with the tool's own transient/permanent class.
The interceptor wraps tool execution, not generation, so it has no
dependency on any backend SDK's event model.

Usage:
    from switchboard.llm.tools import ToolDefinition, ToolRegistry

    registry = ToolRegistry()
    registry.register(ToolDefinition(
        name="lookup_order",
        description="Look up an order by id",
        parameters={"order_id": {"type": "string", "description": "Order id"}},
        required=["order_id"],
        handler=lookup_order,
        transient=True,          # network-backed: retry on failure
    ))

    interceptor = ToolInvocationInterceptor(registry)
    response = await backend.send(messages, tools=interceptor)
    for record in interceptor.records:
        print(record.tool_name, record.execution_time)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from switchboard.exceptions import ToolExecutionError
from switchboard.llm.messages import ToolCallRecord
from switchboard.llm.streaming import StreamingUpdate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool Definition
# ---------------------------------------------------------------------------

@dataclass
class ToolDefinition:
    """
    Provider-agnostic tool/function definition.

    Translates to both Anthropic's tool format and OpenAI's
    function_calling format automatically.

    `transient` is the explicit failure class of this tool: True for tools
    whose failures are worth retrying (network-backed), False for pure
    logic. Tools must be idempotent if they are marked transient, because
    a retried orchestrated call invokes them again.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    handler: Optional[Callable[..., Any]] = None
    transient: bool = False

    def _properties(self) -> dict[str, Any]:
        properties = {}
        for param_name, param_spec in self.parameters.items():
            if isinstance(param_spec, dict):
                properties[param_name] = param_spec
            else:
                properties[param_name] = {"type": "string", "description": str(param_spec)}
        return properties

    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": self._properties(),
            "required": self.required,
        }

    def to_anthropic(self) -> dict[str, Any]:
        """Convert to Anthropic Claude tool format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }

    def to_openai(self) -> dict[str, Any]:
        """Convert to OpenAI function_calling format (also used by Ollama)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> list[str]:
        """Validate that arguments satisfy required parameters."""
        errors = []
        for req in self.required:
            if req not in arguments:
                errors.append(f"Missing required parameter: {req}")
        return errors

    def describe(self) -> dict[str, Any]:
        """Discovery metadata: name, description and parameter schema."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self._properties(),
            "required": list(self.required),
            "transient": self.transient,
        }


# ---------------------------------------------------------------------------
# Tool Call (LLM wants to use a tool)
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """Represents a tool call requested by the LLM."""

    id: str                         # Provider's tool_call id
    name: str                       # Tool function name
    arguments: dict[str, Any]       # Parsed arguments
    raw_arguments: str = ""         # Raw JSON string from provider


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Parse tool-call arguments that may arrive as a JSON string or a dict."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("tool_arguments_unparseable", extra={"raw": str(raw)[:200]})
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Tool Registry
# ---------------------------------------------------------------------------

class ToolRegistry:
    """
    Manages tool definitions and provides lookup by name.

    Built once at startup and read-only afterwards, so it is shared
    across concurrent calls without locking.
    """

    def __init__(self, tools: Optional[list[ToolDefinition]] = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        if tools:
            self.register_many(tools)

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool definition."""
        if tool.handler is None:
            raise ValueError(f"Tool '{tool.name}' has no handler")
        self._tools[tool.name] = tool
        logger.debug("tool_registered", extra={"tool_name": tool.name})

    def register_many(self, tools: list[ToolDefinition]) -> None:
        """Register multiple tools at once."""
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Optional[ToolDefinition]:
        """Look up a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """Return all registered tool names."""
        return list(self._tools.keys())

    def definitions(self, enabled: Optional[list[str]] = None) -> list[ToolDefinition]:
        """Registered definitions, optionally filtered to an enabled subset."""
        if enabled is None:
            return list(self._tools.values())
        return [self._tools[name] for name in enabled if name in self._tools]

    def subset(self, enabled: Optional[list[str]]) -> "ToolRegistry":
        """A new registry holding only the enabled tools."""
        return ToolRegistry(self.definitions(enabled))

    def describe(self) -> list[dict[str, Any]]:
        return [tool.describe() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


# ---------------------------------------------------------------------------
# Tool Invocation Interceptor
# ---------------------------------------------------------------------------

def _stringify(result: Any) -> str:
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


class ToolInvocationInterceptor:
    """
    Wraps every tool call a backend triggers during one orchestrated call.

    Records are appended under a lock: synchronous handlers run in worker
    threads, and a backend may invoke several tools while other I/O is in
    flight. The lock is held only around the append.
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        *,
        correlation_id: Optional[str] = None,
    ):
        self._registry = registry or ToolRegistry()
        self._correlation_id = correlation_id
        self._lock = threading.Lock()
        self._records: list[ToolCallRecord] = []
        self._pending_updates: list[StreamingUpdate] = []

    @property
    def definitions(self) -> list[ToolDefinition]:
        return self._registry.definitions()

    @property
    def has_tools(self) -> bool:
        return len(self._registry) > 0

    @property
    def records(self) -> list[ToolCallRecord]:
        """Snapshot of the records collected so far, in invocation order."""
        with self._lock:
            return list(self._records)

    def drain_updates(self) -> list[StreamingUpdate]:
        """Take the tool start/complete updates produced since the last drain."""
        with self._lock:
            updates, self._pending_updates = self._pending_updates, []
        return updates

    def _queue_update(self, update: StreamingUpdate) -> None:
        with self._lock:
            self._pending_updates.append(update)

    async def invoke(self, name: str, arguments: dict[str, Any]) -> str:
        """
        Execute one tool call and record it.

        Returns:
            The stringified tool result, ready to feed back to the backend.

        Raises:
            ToolExecutionError: Unknown tool, bad arguments, or handler failure.
        """
        run = self.start(name, arguments)
        return await run()

    def start(self, name: str, arguments: dict[str, Any]) -> Callable[[], Awaitable[str]]:
        """
        Validate a tool call and queue its start update without running it.

        Returns a coroutine function that executes the handler, records the
        call and queues the completion update. Streaming callers use the
        gap between the two steps to deliver the start update while the
        tool is still running.

        Raises:
            ToolExecutionError: Unknown tool or bad arguments.
        """
        definition = self._registry.get(name)
        if definition is None:
            raise ToolExecutionError(
                f"Unknown tool: {name}", tool_name=name, is_transient=False
            )

        errors = definition.validate_arguments(arguments)
        if errors:
            raise ToolExecutionError(
                f"Invalid arguments for {name}: {'; '.join(errors)}",
                tool_name=name,
                is_transient=False,
                details={"errors": errors},
            )

        log_extra: dict[str, Any] = {"tool_name": name}
        if self._correlation_id:
            log_extra["correlation_id"] = self._correlation_id
        logger.info("tool_invoked", extra=log_extra)
        self._queue_update(StreamingUpdate.tool_started(name, arguments=arguments))
        return functools.partial(self._execute, definition, dict(arguments), log_extra)

    async def _execute(
        self,
        definition: ToolDefinition,
        arguments: dict[str, Any],
        log_extra: dict[str, Any],
    ) -> str:
        name = definition.name
        start = time.monotonic()
        try:
            handler = definition.handler
            if inspect.iscoroutinefunction(handler):
                raw_result = await handler(**arguments)
            else:
                raw_result = await asyncio.to_thread(handler, **arguments)
        except Exception as err:
            elapsed = time.monotonic() - start
            logger.error(
                "tool_failed",
                extra={
                    **log_extra,
                    "duration_ms": round(elapsed * 1000, 1),
                    "transient": definition.transient,
                    "error": str(err)[:200],
                },
            )
            raise ToolExecutionError(
                f"Tool {name} failed: {err}",
                tool_name=name,
                is_transient=definition.transient,
            ) from err

        elapsed = time.monotonic() - start
        result = _stringify(raw_result)
        record = ToolCallRecord(
            tool_name=name,
            arguments=dict(arguments),
            result=result,
            execution_time=timedelta(seconds=elapsed),
        )
        with self._lock:
            self._records.append(record)
            self._pending_updates.append(
                StreamingUpdate.tool_completed(
                    name, execution_time_ms=round(elapsed * 1000, 2)
                )
            )

        logger.info(
            "tool_completed",
            extra={**log_extra, "duration_ms": round(elapsed * 1000, 1)},
        )
        return result
