"""
Backend Client abstraction — uniform send/stream/describe over vendor APIs.

Each concrete adapter only knows how to talk to its vendor:
- turn normalized messages into its wire conversation
- run one request/response turn (`_complete`)
- run one streaming turn (`_stream_turn`)
- append an assistant tool-call turn plus tool results (`_tool_messages`)

The base class owns everything that must behave the same for every
backend: credential validation, system prompt enforcement, the tool loop,
and the mapping of the final reply back to a Response.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Sequence, Type, Union

from switchboard.exceptions import (
    BackendError,
    InvalidCredentialsError,
    TransientBackendError,
)
from switchboard.llm.messages import (
    BackendMetadata,
    ChatRole,
    GenerationOptions,
    Message,
    Response,
    from_wire_message,
)
from switchboard.llm.streaming import StreamingUpdate
from switchboard.llm.tools import ToolCall, ToolInvocationInterceptor

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 8

# HTTP statuses worth retrying: timeout, conflict, rate limit, server errors
TRANSIENT_STATUS_CODES = frozenset({408, 409, 429})


def is_transient_status(status_code: Optional[int]) -> bool:
    if status_code is None:
        return True
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def status_error(
    provider: str,
    status_code: Optional[int],
    message: str,
) -> BackendError:
    """Map an HTTP status from a backend to the matching error class."""
    error_cls = TransientBackendError if is_transient_status(status_code) else BackendError
    return error_cls(message, provider=provider, status_code=status_code)


# ---------------------------------------------------------------------------
# Turn result
# ---------------------------------------------------------------------------

@dataclass
class TurnResult:
    """Outcome of one backend turn: text and any tool calls it requested."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: Any = None                 # Provider-specific assistant payload


# ---------------------------------------------------------------------------
# Backend Client
# ---------------------------------------------------------------------------

class BackendClient(ABC):
    """
    Uniform contract over a vendor's text-generation API.

    Instances are cheap, bound to immutable configuration, and hold no
    mutable shared state, so the registry hands out a fresh one per call.
    """

    kind: str = ""

    def __init__(
        self,
        *,
        provider_name: str,
        model_id: str,
        api_key: str,
        endpoint: str,
        display_name: Optional[str] = None,
        system_prompt: Optional[str] = None,
        enforce_system_prompt: bool = False,
        timeout_seconds: float = 120.0,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ):
        if not api_key or not api_key.strip():
            raise InvalidCredentialsError(
                f"API key for provider '{provider_name}' cannot be empty",
                provider=provider_name,
            )
        self._provider_name = provider_name
        self._model_id = model_id
        self._api_key = api_key
        self._endpoint = endpoint.rstrip("/")
        self._display_name = display_name or provider_name
        self._system_prompt = system_prompt
        self._enforce_system_prompt = enforce_system_prompt
        self._timeout = timeout_seconds
        self._max_tool_rounds = max_tool_rounds

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def model_id(self) -> str:
        return self._model_id

    def describe(self) -> BackendMetadata:
        return BackendMetadata(id=self._provider_name, display_name=self._display_name)

    # --- Message preparation ---

    def prepare_messages(self, messages: Sequence[Message]) -> list[Message]:
        """
        Apply the system prompt policy.

        When enforcement is on, every caller-supplied system message is
        dropped first, then the configured system message is placed at
        index 0 if one is configured. The effective system instruction is
        then never caller-controlled.
        """
        prepared = list(messages)
        if not self._enforce_system_prompt:
            return prepared

        prepared = [m for m in prepared if m.role is not ChatRole.SYSTEM]
        if self._system_prompt and self._system_prompt.strip():
            prepared.insert(0, Message.system(self._system_prompt))
        return prepared

    # --- Adapter primitives ---

    @abstractmethod
    def _to_conversation(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert prepared messages to this backend's wire conversation."""

    @abstractmethod
    async def _complete(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
    ) -> TurnResult:
        """Run one request/response turn."""

    @abstractmethod
    def _stream_turn(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
        turn: TurnResult,
    ) -> AsyncIterator[str]:
        """
        Run one streaming turn, yielding text deltas as they arrive.

        Tool calls requested by the turn are stored on `turn` once the
        stream ends.
        """

    @abstractmethod
    def _tool_messages(
        self,
        turn: TurnResult,
        results: list[tuple[ToolCall, str]],
    ) -> list[dict[str, Any]]:
        """Wire messages for an assistant tool-call turn and its results."""

    # --- Public API ---

    async def send(
        self,
        messages: Sequence[Message],
        *,
        tools: Optional[ToolInvocationInterceptor] = None,
        options: Optional[GenerationOptions] = None,
    ) -> Response:
        """Request/response call, running tool rounds until a final answer."""
        options = options or GenerationOptions()
        conversation = self._to_conversation(self.prepare_messages(messages))
        active_tools = tools if tools is not None and tools.has_tools else None

        start = time.monotonic()
        for round_index in range(self._max_tool_rounds + 1):
            turn = await self._complete(conversation, active_tools, options)
            if not turn.tool_calls or active_tools is None:
                reply = from_wire_message({"role": "assistant", "content": turn.text})
                logger.info(
                    "backend_send_completed",
                    extra={
                        "provider": self._provider_name,
                        "model": self._model_id,
                        "tool_rounds": round_index,
                        "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    },
                )
                return Response(
                    message=reply,
                    model_used=self._model_id,
                    provider_used=self._provider_name,
                )
            conversation.extend(await self._run_tools(turn, active_tools))

        raise self._tool_round_limit_error()

    async def stream(
        self,
        messages: Sequence[Message],
        *,
        tools: Optional[ToolInvocationInterceptor] = None,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[Union[str, StreamingUpdate]]:
        """
        Streaming call yielding text deltas in arrival order.

        When tools run between turns, their start and completion updates
        are yielded in-band as StreamingUpdates: the start update before
        the handler runs, the completion update once it has returned.

        Nothing is read ahead of the consumer: each delta is pulled from
        the network when the next element is requested, and closing this
        generator closes the underlying connection.
        """
        options = options or GenerationOptions()
        conversation = self._to_conversation(self.prepare_messages(messages))
        active_tools = tools if tools is not None and tools.has_tools else None

        for _ in range(self._max_tool_rounds + 1):
            turn = TurnResult()
            deltas = self._stream_turn(conversation, active_tools, options, turn)
            async with aclosing(deltas):
                async for delta in deltas:
                    if delta:
                        yield delta
            if not turn.tool_calls or active_tools is None:
                return

            results = []
            for call in turn.tool_calls:
                run = active_tools.start(call.name, call.arguments)
                for update in active_tools.drain_updates():
                    yield update
                results.append((call, await run()))
                for update in active_tools.drain_updates():
                    yield update
            conversation.extend(self._tool_messages(turn, results))

        raise self._tool_round_limit_error()

    # --- Helpers ---

    async def _run_tools(
        self,
        turn: TurnResult,
        tools: ToolInvocationInterceptor,
    ) -> list[dict[str, Any]]:
        results = []
        for call in turn.tool_calls:
            results.append((call, await tools.invoke(call.name, call.arguments)))
        return self._tool_messages(turn, results)

    def _tool_round_limit_error(self) -> BackendError:
        return BackendError(
            f"Exceeded {self._max_tool_rounds} tool rounds without a final answer",
            provider=self._provider_name,
        )


# ---------------------------------------------------------------------------
# Adapter registration
# ---------------------------------------------------------------------------

# Global map: backend kind string -> adapter class
BACKEND_IMPLEMENTATIONS: dict[str, Type[BackendClient]] = {}


def register_backend(kind: str):
    """
    Decorator to register a backend adapter for a config `kind`.

    Usage:
        @register_backend("ollama")
        class OllamaBackend(BackendClient):
            ...
    """

    def decorator(cls: Type[BackendClient]) -> Type[BackendClient]:
        if kind in BACKEND_IMPLEMENTATIONS:
            logger.warning(
                f"Overwriting existing backend kind registration: {kind}"
            )
        BACKEND_IMPLEMENTATIONS[kind] = cls
        cls.kind = kind
        return cls

    return decorator


def get_registered_kinds() -> list[str]:
    """Return all registered backend kind names."""
    return sorted(BACKEND_IMPLEMENTATIONS.keys())
