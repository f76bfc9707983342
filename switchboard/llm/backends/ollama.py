"""
Ollama backend adapter, spoken over plain HTTP with httpx.

POSTs to `{endpoint}/api/chat`. Streaming responses are newline-delimited
JSON objects, one per generated fragment, ending with `"done": true`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from switchboard.exceptions import BackendError, TransientBackendError
from switchboard.llm.backends.base import (
    BackendClient,
    TurnResult,
    register_backend,
    status_error,
)
from switchboard.llm.messages import GenerationOptions, Message, to_wire_messages
from switchboard.llm.tools import ToolCall, ToolInvocationInterceptor, parse_arguments

logger = logging.getLogger(__name__)


def _tool_calls_from(message: dict[str, Any]) -> list[ToolCall]:
    calls = []
    for index, raw_call in enumerate(message.get("tool_calls") or []):
        if not isinstance(raw_call, dict):
            continue
        function = raw_call.get("function")
        name = function.get("name") if isinstance(function, dict) else None
        if not name:
            continue
        calls.append(
            ToolCall(
                id=raw_call.get("id") or f"call_{index}",
                name=name,
                arguments=parse_arguments(function.get("arguments")),
            )
        )
    return calls


@register_backend("ollama")
class OllamaBackend(BackendClient):
    """Backend reached through Ollama's native chat API."""

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._endpoint,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )

    def _to_conversation(self, messages: list[Message]) -> list[dict[str, Any]]:
        return to_wire_messages(messages)

    def _payload(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model_id,
            "messages": conversation,
            "stream": stream,
        }
        settings = options.as_kwargs()
        if "max_tokens" in settings:
            settings["num_predict"] = settings.pop("max_tokens")
        if settings:
            payload["options"] = settings
        if tools is not None:
            payload["tools"] = [tool.to_openai() for tool in tools.definitions]
        return payload

    def _log_skipped(self, reason: str) -> None:
        logger.debug(
            "stream_line_skipped",
            extra={"provider": self._provider_name, "reason": reason},
        )

    def _connection_error(self, err: httpx.TransportError) -> TransientBackendError:
        return TransientBackendError(
            f"Connection to {self._provider_name} failed: {err}",
            provider=self._provider_name,
        )

    async def _complete(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
    ) -> TurnResult:
        try:
            async with self._http_client() as client:
                resp = await client.post(
                    "/api/chat",
                    json=self._payload(conversation, tools, options, stream=False),
                )
        except httpx.TransportError as e:
            raise self._connection_error(e) from e

        if resp.status_code >= 400:
            raise status_error(self._provider_name, resp.status_code, resp.text[:500])

        try:
            data = resp.json()
        except ValueError as e:
            raise BackendError(
                "Backend returned a non-JSON body", provider=self._provider_name
            ) from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise BackendError(
                "Backend returned an unexpected response shape",
                provider=self._provider_name,
            )
        content = message.get("content")
        return TurnResult(
            text=content if isinstance(content, str) else "",
            tool_calls=_tool_calls_from(message),
            raw=message,
        )

    async def _stream_turn(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
        turn: TurnResult,
    ) -> AsyncIterator[str]:
        text_parts: list[str] = []
        raw_tool_calls: list[dict[str, Any]] = []
        payload = self._payload(conversation, tools, options, stream=True)
        try:
            async with self._http_client() as client:
                async with client.stream("POST", "/api/chat", json=payload) as resp:
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise status_error(
                            self._provider_name,
                            resp.status_code,
                            body.decode("utf-8", errors="replace")[:500],
                        )
                    async for line in resp.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            data = json.loads(line)
                        except ValueError:
                            self._log_skipped("invalid_json")
                            continue
                        if not isinstance(data, dict):
                            self._log_skipped("not_an_object")
                            continue
                        if data.get("error"):
                            raise BackendError(
                                str(data["error"]), provider=self._provider_name
                            )
                        message = data.get("message") or {}
                        if not isinstance(message, dict):
                            self._log_skipped("message_not_an_object")
                            if data.get("done"):
                                break
                            continue
                        tool_calls = message.get("tool_calls") or []
                        if isinstance(tool_calls, list):
                            raw_tool_calls.extend(c for c in tool_calls if isinstance(c, dict))
                        else:
                            self._log_skipped("tool_calls_not_a_list")
                        content = message.get("content")
                        if content and isinstance(content, str):
                            text_parts.append(content)
                            yield content
                        elif content:
                            self._log_skipped("content_not_a_string")
                        if data.get("done"):
                            break
        except httpx.TransportError as e:
            raise self._connection_error(e) from e

        turn.text = "".join(text_parts)
        turn.raw = {"role": "assistant", "content": turn.text, "tool_calls": raw_tool_calls}
        turn.tool_calls = _tool_calls_from(turn.raw)

    def _tool_messages(
        self,
        turn: TurnResult,
        results: list[tuple[ToolCall, str]],
    ) -> list[dict[str, Any]]:
        assistant = turn.raw or {
            "role": "assistant",
            "content": turn.text,
            "tool_calls": [
                {"function": {"name": call.name, "arguments": call.arguments}}
                for call in turn.tool_calls
            ],
        }
        return [assistant] + [
            {"role": "tool", "tool_name": call.name, "content": result}
            for call, result in results
        ]
