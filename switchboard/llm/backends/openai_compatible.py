"""
OpenAI-compatible backend adapter.

Covers OpenAI itself and every endpoint that speaks the chat completions
dialect (OpenRouter, NanoGPT, vLLM, LM Studio, ...). The endpoint from the
backend config becomes the SDK's base_url.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import openai

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


@register_backend("openai")
class OpenAICompatibleBackend(BackendClient):
    """Backend reached through the `openai` SDK's chat completions API."""

    def __init__(self, *, client: Any = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._client = client or openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._endpoint,
            timeout=self._timeout,
        )

    def _to_conversation(self, messages: list[Message]) -> list[dict[str, Any]]:
        return to_wire_messages(messages)

    def _request_kwargs(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": conversation,
            **options.as_kwargs(),
        }
        if tools is not None:
            kwargs["tools"] = [tool.to_openai() for tool in tools.definitions]
        return kwargs

    def _translate(self, err: openai.OpenAIError) -> BackendError:
        if isinstance(err, openai.APIStatusError):
            return status_error(self._provider_name, err.status_code, str(err))
        if isinstance(err, openai.APIConnectionError):
            return TransientBackendError(
                f"Connection to {self._provider_name} failed: {err}",
                provider=self._provider_name,
            )
        return BackendError(str(err), provider=self._provider_name)

    async def _complete(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
    ) -> TurnResult:
        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(conversation, tools, options)
            )
        except openai.OpenAIError as e:
            raise self._translate(e) from e

        if not response.choices:
            raise BackendError(
                "Backend returned no choices", provider=self._provider_name
            )
        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=parse_arguments(call.function.arguments),
                raw_arguments=call.function.arguments or "",
            )
            for call in (message.tool_calls or [])
        ]
        return TurnResult(text=message.content or "", tool_calls=tool_calls)

    async def _stream_turn(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
        turn: TurnResult,
    ) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                stream=True, **self._request_kwargs(conversation, tools, options)
            )
        except openai.OpenAIError as e:
            raise self._translate(e) from e

        # Tool call fragments arrive keyed by index; name and id come first,
        # arguments are split across many chunks.
        partial_calls: dict[int, dict[str, str]] = {}
        text_parts: list[str] = []
        try:
            async for chunk in stream:
                choices = getattr(chunk, "choices", None)
                if not choices:
                    logger.debug(
                        "stream_chunk_skipped",
                        extra={"provider": self._provider_name, "reason": "no_choices"},
                    )
                    continue
                delta = choices[0].delta
                if delta is None:
                    continue
                for fragment in getattr(delta, "tool_calls", None) or []:
                    entry = partial_calls.setdefault(
                        fragment.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if fragment.id:
                        entry["id"] = fragment.id
                    function = fragment.function
                    if function is not None:
                        if function.name:
                            entry["name"] += function.name
                        if function.arguments:
                            entry["arguments"] += function.arguments
                if delta.content:
                    text_parts.append(delta.content)
                    yield delta.content
        except openai.OpenAIError as e:
            raise self._translate(e) from e
        finally:
            await stream.close()

        turn.text = "".join(text_parts)
        turn.tool_calls = [
            ToolCall(
                id=entry["id"] or f"call_{index}",
                name=entry["name"],
                arguments=parse_arguments(entry["arguments"]),
                raw_arguments=entry["arguments"],
            )
            for index, entry in sorted(partial_calls.items())
            if entry["name"]
        ]

    def _tool_messages(
        self,
        turn: TurnResult,
        results: list[tuple[ToolCall, str]],
    ) -> list[dict[str, Any]]:
        assistant = {
            "role": "assistant",
            "content": turn.text or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": call.raw_arguments or json.dumps(call.arguments),
                    },
                }
                for call in turn.tool_calls
            ],
        }
        return [assistant] + [
            {"role": "tool", "tool_call_id": call.id, "content": result}
            for call, result in results
        ]
