"""
Anthropic Messages API backend adapter.

Anthropic takes the system instruction as a separate request parameter
rather than a message, and returns tool requests as `tool_use` content
blocks. Tool results go back as `tool_result` blocks in one user turn.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import anthropic

from switchboard.exceptions import BackendError, TransientBackendError
from switchboard.llm.backends.base import (
    BackendClient,
    TurnResult,
    register_backend,
    status_error,
)
from switchboard.llm.messages import GenerationOptions, Message, to_wire_messages
from switchboard.llm.tools import ToolCall, ToolInvocationInterceptor

logger = logging.getLogger(__name__)

# The Messages API requires max_tokens on every request
DEFAULT_MAX_TOKENS = 4096


def _block_to_dict(block: Any) -> Optional[dict[str, Any]]:
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input or {}),
        }
    return None


def _parse_content(content: Any) -> TurnResult:
    """Split a response's content blocks into text, tool calls and raw blocks."""
    turn = TurnResult(raw=[])
    text_parts = []
    for block in content or []:
        as_dict = _block_to_dict(block)
        if as_dict is None:
            logger.debug(
                "content_block_skipped",
                extra={"block_type": getattr(block, "type", None)},
            )
            continue
        turn.raw.append(as_dict)
        if as_dict["type"] == "text":
            text_parts.append(as_dict["text"])
        else:
            turn.tool_calls.append(
                ToolCall(
                    id=as_dict["id"],
                    name=as_dict["name"],
                    arguments=as_dict["input"],
                )
            )
    turn.text = "".join(text_parts)
    return turn


@register_backend("anthropic")
class AnthropicBackend(BackendClient):
    """Backend reached through the `anthropic` SDK."""

    def __init__(self, *, client: Any = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._client = client or anthropic.AsyncAnthropic(
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
        system_parts = [
            m["content"] for m in conversation if m["role"] == "system" and m["content"]
        ]
        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": [m for m in conversation if m["role"] != "system"],
            "max_tokens": DEFAULT_MAX_TOKENS,
            **options.as_kwargs(),
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if tools is not None:
            kwargs["tools"] = [tool.to_anthropic() for tool in tools.definitions]
        return kwargs

    def _translate(self, err: anthropic.AnthropicError) -> BackendError:
        if isinstance(err, anthropic.APIStatusError):
            return status_error(self._provider_name, err.status_code, str(err))
        if isinstance(err, anthropic.APIConnectionError):
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
            response = await self._client.messages.create(
                **self._request_kwargs(conversation, tools, options)
            )
        except anthropic.AnthropicError as e:
            raise self._translate(e) from e
        return _parse_content(response.content)

    async def _stream_turn(
        self,
        conversation: list[dict[str, Any]],
        tools: Optional[ToolInvocationInterceptor],
        options: GenerationOptions,
        turn: TurnResult,
    ) -> AsyncIterator[str]:
        try:
            async with self._client.messages.stream(
                **self._request_kwargs(conversation, tools, options)
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
                final = await stream.get_final_message()
        except anthropic.AnthropicError as e:
            raise self._translate(e) from e

        parsed = _parse_content(final.content)
        turn.text = parsed.text
        turn.tool_calls = parsed.tool_calls
        turn.raw = parsed.raw

    def _tool_messages(
        self,
        turn: TurnResult,
        results: list[tuple[ToolCall, str]],
    ) -> list[dict[str, Any]]:
        return [
            {"role": "assistant", "content": turn.raw or []},
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": call.id, "content": result}
                    for call, result in results
                ],
            },
        ]
