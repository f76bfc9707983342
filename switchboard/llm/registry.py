"""
Config-driven backend registry for Switchboard.

Maps configured backend names to adapter classes and hands out clients.
New backend kind = adapter class + @register_backend decorator.

Usage:
    from switchboard.config.loader import load_config
    from switchboard.llm.registry import BackendRegistry

    registry = BackendRegistry(load_config())
    client = registry.resolve("OpenRouter", "openai/gpt-4o-mini")
    response = await client.send(messages)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Type

from switchboard.config.schema import BackendConfig, ModelConfig, SwitchboardConfig
from switchboard.exceptions import ConfigurationError, UnknownProviderError
from switchboard.llm.backends import (
    BACKEND_IMPLEMENTATIONS,
    BackendClient,
    get_registered_kinds,
    register_backend,
)
from switchboard.llm.messages import BackendMetadata

logger = logging.getLogger(__name__)

__all__ = ["BackendRegistry", "register_backend", "BACKEND_IMPLEMENTATIONS"]


class BackendRegistry:
    """
    Resolves (provider, model) pairs to backend clients.

    Holds only the read-only configuration: every resolve() builds a new
    client, so concurrent requests never share client state.
    """

    def __init__(
        self,
        config: SwitchboardConfig,
        *,
        implementations: Optional[dict[str, Type[BackendClient]]] = None,
        client_kwargs: Optional[dict[str, dict[str, Any]]] = None,
    ):
        """
        Args:
            config: Validated deployment configuration.
            implementations: Per-kind adapter overrides (tests, custom adapters).
            client_kwargs: Extra constructor kwargs per backend name, e.g. an
                           injected SDK client or httpx transport.
        """
        self._config = config
        self._implementations = implementations or {}
        self._client_kwargs = {
            name.lower(): kwargs for name, kwargs in (client_kwargs or {}).items()
        }

    @property
    def config(self) -> SwitchboardConfig:
        return self._config

    def _lookup(self, provider_name: str) -> tuple[str, BackendConfig]:
        found = self._config.get_backend(provider_name or "")
        if found is None:
            raise UnknownProviderError(
                f"Unknown provider: {provider_name!r}. "
                f"Configured: {sorted(self._config.backends)}",
                provider=provider_name,
            )
        return found

    def _adapter_for(self, name: str, backend: BackendConfig) -> Type[BackendClient]:
        kind = backend.kind.value
        cls = self._implementations.get(kind) or BACKEND_IMPLEMENTATIONS.get(kind)
        if cls is None:
            raise ConfigurationError(
                f"No adapter registered for backend kind {kind!r}. "
                f"Registered kinds: {get_registered_kinds()}",
                backend=name,
            )
        return cls

    def resolve(self, provider_name: str, model_id: str = "") -> BackendClient:
        """
        Build a client for the named backend.

        The provider name is matched case-insensitively. The model id is
        passed through unchecked; an empty id selects the backend's first
        configured model.

        Raises:
            UnknownProviderError: No backend with that name.
            InvalidCredentialsError: The backend has an empty API key.
        """
        name, backend = self._lookup(provider_name)
        cls = self._adapter_for(name, backend)
        settings = self._config.orchestration

        system_prompt = backend.system_prompt
        if system_prompt is None:
            system_prompt = settings.default_system_prompt

        client = cls(
            provider_name=name,
            model_id=model_id or backend.models[0].id,
            api_key=backend.api_key,
            endpoint=backend.endpoint,
            display_name=backend.display_name,
            system_prompt=system_prompt,
            enforce_system_prompt=settings.enable_system_prompt,
            timeout_seconds=backend.timeout_seconds,
            max_tool_rounds=settings.max_tool_rounds,
            **self._client_kwargs.get(name.lower(), {}),
        )
        logger.debug(
            "backend_resolved",
            extra={"provider": name, "model": client.model_id, "kind": backend.kind.value},
        )
        return client

    def list_backends(self) -> list[BackendMetadata]:
        """Metadata for every configured backend, in configuration order."""
        return [
            BackendMetadata(id=name, display_name=backend.display_name or name)
            for name, backend in self._config.backends.items()
        ]

    def list_models(self, provider_name: str) -> list[ModelConfig]:
        """Models configured for a backend."""
        _, backend = self._lookup(provider_name)
        return list(backend.models)

    def check_health(self) -> dict[str, Any]:
        """
        Report whether each configured backend can be constructed.

        No network call is made. Status is "healthy" when every backend
        builds, "degraded" when some do, "unhealthy" when none do.
        """
        results: dict[str, dict[str, Any]] = {}
        for name, backend in self._config.backends.items():
            try:
                self.resolve(name, backend.models[0].id)
            except Exception as e:
                results[name] = {"status": "error", "error": str(e)}
                logger.warning(
                    "backend_health_check_failed",
                    extra={"provider": name, "error": str(e)[:200]},
                )
            else:
                results[name] = {
                    "status": "ok",
                    "kind": backend.kind.value,
                    "models": len(backend.models),
                }

        healthy = sum(1 for r in results.values() if r["status"] == "ok")
        if healthy == len(results):
            status = "healthy"
        elif healthy:
            status = "degraded"
        else:
            status = "unhealthy"
        return {"status": status, "backends": results}
