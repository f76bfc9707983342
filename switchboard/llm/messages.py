"""
Conversation data model and the shared wire-format conversion routine.

Every backend adapter speaks a slightly different dialect, but all of them
start from the same role/content pairs. The helpers at the bottom of this
module are the single place where a normalized Message becomes a wire
message and back, so adapters only add their vendor-specific extras
(tool-call turns, system prompt placement).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Optional


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class ChatRole(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Message:
    """One immutable conversation turn."""

    role: ChatRole
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=ChatRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=ChatRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=ChatRole.ASSISTANT, content=content)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Build a Message from a caller-supplied mapping (role + content)."""
        return cls(role=ChatRole(str(data["role"]).lower()), content=str(data.get("content") or ""))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# Tool Call Record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCallRecord:
    """Metadata for one tool invocation made during generation."""

    tool_name: str
    arguments: dict[str, Any]
    result: str
    execution_time: timedelta

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "arguments": self.arguments,
            "result": self.result,
            "execution_time_ms": round(self.execution_time.total_seconds() * 1000, 2),
        }


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

@dataclass
class Response:
    """Aggregated result of one non-streaming call."""

    message: Message
    model_used: str
    provider_used: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def is_fallback(self) -> bool:
        return self.provider_used == "system" and self.model_used == "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message.to_dict(),
            "model_used": self.model_used,
            "provider_used": self.provider_used,
            "tool_calls": [record.to_dict() for record in self.tool_calls],
        }


# ---------------------------------------------------------------------------
# Backend metadata and execution settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BackendMetadata:
    """What a backend reports about itself."""

    id: str
    display_name: str


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request execution settings forwarded to the backend."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None

    def as_kwargs(self) -> dict[str, Any]:
        """Only the settings that were explicitly given."""
        values = {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
        }
        return {key: value for key, value in values.items() if value is not None}


# ---------------------------------------------------------------------------
# Shared conversion routine
# ---------------------------------------------------------------------------

def to_wire_message(message: Message) -> dict[str, Any]:
    """Normalized Message -> {"role", "content"} wire message."""
    return {"role": message.role.value, "content": message.content}


def to_wire_messages(messages: Iterable[Message]) -> list[dict[str, Any]]:
    return [to_wire_message(message) for message in messages]


def from_wire_message(wire: dict[str, Any]) -> Message:
    """
    Wire message -> normalized Message.

    Content may be a plain string or a list of typed content parts; only
    text parts are kept. Unknown roles are read as assistant, since this
    is only applied to backend replies.
    """
    content = wire.get("content")
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
            elif isinstance(part, str):
                parts.append(part)
        text = "".join(parts)
    else:
        text = str(content or "")

    try:
        role = ChatRole(str(wire.get("role") or "assistant").lower())
    except ValueError:
        role = ChatRole.ASSISTANT

    return Message(role=role, content=text)
