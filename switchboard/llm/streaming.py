"""
Streaming updates — the live, ordered view of one orchestrated call.

A streaming call produces StreamingUpdate objects as an async iterator:

    async for update in orchestrator.stream_orchestrated(messages):
        if update.type is UpdateType.CONTENT:
            print(update.content, end="", flush=True)

Every complete sequence ends with exactly one update whose is_final flag
is set, and nothing is produced after it. A successful stream ends with an
empty content update; a failed one ends with an error update.

HTTP layers push one update per server-sent-event frame:

    async for update in updates:
        await response.write(update.to_sse())
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional


class UpdateType(str, Enum):
    """Kinds of streaming update."""

    CONTENT = "content"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_COMPLETE = "tool_call_complete"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Streaming Update
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamingUpdate:
    """One increment of a streaming orchestrated call."""

    type: UpdateType = UpdateType.CONTENT
    content: Optional[str] = None
    tool_name: Optional[str] = None
    is_final: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    # --- Constructors ---

    @classmethod
    def text(cls, content: str) -> "StreamingUpdate":
        return cls(type=UpdateType.CONTENT, content=content)

    @classmethod
    def final(cls, **metadata: Any) -> "StreamingUpdate":
        """Sentinel closing a successful stream."""
        return cls(type=UpdateType.CONTENT, content="", is_final=True, metadata=metadata)

    @classmethod
    def error(cls, message: str, **metadata: Any) -> "StreamingUpdate":
        """Sentinel closing a failed stream."""
        return cls(
            type=UpdateType.ERROR,
            content=f"Error: {message}",
            is_final=True,
            metadata=metadata,
        )

    @classmethod
    def tool_started(cls, tool_name: str, **metadata: Any) -> "StreamingUpdate":
        return cls(
            type=UpdateType.TOOL_CALL_START,
            content=f"Calling {tool_name}...",
            tool_name=tool_name,
            metadata=metadata,
        )

    @classmethod
    def tool_completed(cls, tool_name: str, **metadata: Any) -> "StreamingUpdate":
        return cls(
            type=UpdateType.TOOL_CALL_COMPLETE,
            content=f"{tool_name} finished",
            tool_name=tool_name,
            metadata=metadata,
        )

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "content": self.content,
            "tool_name": self.tool_name,
            "is_final": self.is_final,
            "metadata": self.metadata,
        }

    def to_sse(self) -> str:
        """Encode as one server-sent-event frame."""
        return f"data: {json.dumps(self.to_dict(), default=str)}\n\n"


# ---------------------------------------------------------------------------
# Helper: Collect full stream into text
# ---------------------------------------------------------------------------

async def collect_stream(
    stream: AsyncIterator[StreamingUpdate],
) -> tuple[str, StreamingUpdate]:
    """
    Consume a full stream and return (full_text, final_update).

    Useful when you want streaming internally but need the full
    text for downstream processing:

        updates = orchestrator.stream_orchestrated(messages)
        text, final = await collect_stream(updates)
        if final.type is UpdateType.ERROR:
            ...
    """
    collected = []
    final_update = StreamingUpdate.final()

    async for update in stream:
        if update.is_final:
            final_update = update
            break
        if update.type is UpdateType.CONTENT and update.content:
            collected.append(update.content)

    return "".join(collected), final_update
