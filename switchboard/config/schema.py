"""
Pydantic configuration schema for Switchboard.

A deployment is described by one YAML file that conforms to these models:
the named text-generation backends, the models each one exposes, and the
orchestration defaults (target backend, retry budget, templates, tools).
Everything here is validated eagerly at startup and read-only afterwards.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BackendKind(str, Enum):
    OPENAI = "openai"          # Any OpenAI-compatible endpoint (OpenRouter, NanoGPT, ...)
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class ModelConfig(BaseModel):
    """A model offered by a backend."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    display_name: str = ""
    context_window: int = Field(0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("display_name"):
            data = {**data, "display_name": data.get("id", "")}
        return data


class BackendConfig(BaseModel):
    """Connection settings for one named text-generation backend."""
    model_config = ConfigDict(frozen=True)

    kind: BackendKind = BackendKind.OPENAI
    api_key: str = Field(
        "", description="Resolved API key (never logged)", repr=False,
        validate_default=True,
    )
    api_key_env: Optional[str] = Field(
        None, description="Env var name holding the API key"
    )
    endpoint: str = Field(..., description="Absolute base URI of the backend API")
    display_name: Optional[str] = None
    system_prompt: Optional[str] = Field(
        None, description="Overrides the orchestration default system prompt"
    )
    timeout_seconds: float = Field(120.0, gt=0)
    models: list[ModelConfig] = Field(
        ..., min_length=1, description="At least one model is required"
    )

    @field_validator("api_key")
    @classmethod
    def api_key_present(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("api_key is required (set api_key or api_key_env)")
        return v.strip()

    @field_validator("endpoint")
    @classmethod
    def endpoint_absolute(cls, v: str) -> str:
        parsed = urlparse(v or "")
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"endpoint must be an absolute URI, got {v!r}")
        return v.rstrip("/")


class OrchestrationSettings(BaseModel):
    """Defaults for orchestrated calls."""
    model_config = ConfigDict(frozen=True)

    default_provider: str
    default_model: str = ""
    max_attempts: int = Field(3, ge=1, le=10)
    initial_delay_seconds: float = Field(1.0, ge=0.0)
    max_tool_rounds: int = Field(8, ge=1, le=50)
    enable_system_prompt: bool = True
    default_system_prompt: Optional[str] = "You are a helpful assistant."
    template_dir: Optional[str] = Field(
        None, description="Directory holding deployed *.prompt templates"
    )
    prompt_templates: dict[str, str] = Field(default_factory=dict)
    enabled_tools: Optional[list[str]] = Field(
        None, description="Tool names to expose; None means all registered tools"
    )


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

class SwitchboardConfig(BaseModel):
    """
    Complete configuration for a Switchboard deployment.

    This is the top-level model that gets loaded from the YAML file.
    """
    model_config = ConfigDict(frozen=True)

    backends: dict[str, BackendConfig] = Field(..., min_length=1)
    orchestration: OrchestrationSettings

    @model_validator(mode="after")
    def default_provider_known(self) -> "SwitchboardConfig":
        names = {name.lower() for name in self.backends}
        if self.orchestration.default_provider.lower() not in names:
            raise ValueError(
                f"default_provider '{self.orchestration.default_provider}' "
                f"is not a configured backend ({', '.join(sorted(self.backends))})"
            )
        return self

    def get_backend(self, name: str) -> Optional[tuple[str, BackendConfig]]:
        """Case-insensitive lookup returning (canonical_name, config)."""
        for backend_name, backend in self.backends.items():
            if backend_name.lower() == name.lower():
                return backend_name, backend
        return None
