"""
Chat Orchestrator — composes registry, tools, retry and templates.

Three entry points, all keyed by an optional (provider, model) pair that
defaults to the configured orchestration defaults:

- send_orchestrated: one aggregated Response, retried with backoff and
  degraded to an apologetic fallback Response on failure
- stream_orchestrated: live StreamingUpdates, never retried, terminated by
  exactly one final update (empty content on success, error on failure)
- execute_template: render a prompt template, then send it as one user turn

Usage:
    from switchboard.llm.orchestrator import ChatOrchestrator

    orchestrator = ChatOrchestrator.from_config(load_config())
    response = await orchestrator.send_orchestrated([Message.user("What's 2+2?")])

    async for update in orchestrator.stream_orchestrated(messages):
        print(update.content, end="")
"""

from __future__ import annotations

import logging
import time
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional, Sequence

from switchboard.config.schema import OrchestrationSettings, SwitchboardConfig
from switchboard.llm.backends.base import BackendClient
from switchboard.llm.messages import (
    BackendMetadata,
    GenerationOptions,
    Message,
    Response,
)
from switchboard.llm.registry import BackendRegistry
from switchboard.llm.retry import RetryExecutor
from switchboard.llm.streaming import StreamingUpdate
from switchboard.llm.tools import ToolInvocationInterceptor, ToolRegistry
from switchboard.observability.logging_config import correlation_scope, new_correlation_id
from switchboard.prompts.template_engine import PromptTemplateEngine, TemplateCache

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "system"
FALLBACK_MODEL = "fallback"


def fallback_response(error: BaseException) -> Response:
    """Deterministic apology returned when a non-streaming call cannot succeed."""
    content = (
        f"I apologize, but I encountered an issue while processing your request: {error}. "
        "Please check your configuration or try again later."
    )
    return Response(
        message=Message.assistant(content),
        model_used=FALLBACK_MODEL,
        provider_used=FALLBACK_PROVIDER,
        tool_calls=[],
    )


class ChatOrchestrator:
    """
    Front door for orchestrated calls.

    Holds only shared read-only collaborators; every call builds its own
    backend client and its own tool interceptor.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        *,
        tools: Optional[ToolRegistry] = None,
        templates: Optional[PromptTemplateEngine] = None,
        retry: Optional[RetryExecutor] = None,
        settings: Optional[OrchestrationSettings] = None,
    ):
        self._registry = registry
        self._settings = settings or registry.config.orchestration
        tools = tools or ToolRegistry()
        if self._settings.enabled_tools is not None:
            tools = tools.subset(self._settings.enabled_tools)
        self._tools = tools
        self._templates = templates or PromptTemplateEngine(
            TemplateCache(),
            template_dir=self._settings.template_dir,
            config_templates=self._settings.prompt_templates,
        )
        self._retry = retry or RetryExecutor(
            max_attempts=self._settings.max_attempts,
            initial_delay=self._settings.initial_delay_seconds,
        )

    @classmethod
    def from_config(
        cls,
        config: SwitchboardConfig,
        *,
        tools: Optional[ToolRegistry] = None,
        template_cache: Optional[TemplateCache] = None,
        **registry_kwargs: Any,
    ) -> "ChatOrchestrator":
        """Wire an orchestrator from a loaded configuration."""
        settings = config.orchestration
        templates = PromptTemplateEngine(
            template_cache or TemplateCache(),
            template_dir=settings.template_dir,
            config_templates=settings.prompt_templates,
        )
        return cls(
            BackendRegistry(config, **registry_kwargs),
            tools=tools,
            templates=templates,
            settings=settings,
        )

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    @property
    def templates(self) -> PromptTemplateEngine:
        return self._templates

    # --- Resolution ---

    def _resolve(self, provider: Optional[str], model: Optional[str]) -> BackendClient:
        provider = provider or self._settings.default_provider
        if not model and provider.lower() == self._settings.default_provider.lower():
            model = self._settings.default_model
        return self._registry.resolve(provider, model or "")

    # --- Non-streaming ---

    async def send_orchestrated(
        self,
        messages: Sequence[Message],
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
    ) -> Response:
        """
        Send a conversation and return one aggregated Response.

        Transient failures are retried with backoff. Anything the retry
        budget cannot fix yields the fallback Response instead of raising.

        Raises:
            UnknownProviderError: Provider not configured.
            InvalidCredentialsError: Provider has no API key.
        """
        backend = self._resolve(provider, model)

        with correlation_scope() as cid:
            interceptor = ToolInvocationInterceptor(self._tools, correlation_id=cid)
            response = await self._retry.execute_with_retry(
                lambda: backend.send(messages, tools=interceptor, options=options),
                fallback=fallback_response,
                operation_name="send_orchestrated",
                correlation_id=cid,
            )
            if not response.is_fallback:
                response.tool_calls = interceptor.records
            return response

    async def execute_template(
        self,
        name: str,
        variables: dict[str, Any],
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
    ) -> Response:
        """
        Render a template and send the result as a single user message.

        The template is resolved and validated before any backend is
        contacted.

        Raises:
            TemplateNotFoundError: No template with that name.
            MissingVariablesError: One or more template variables absent.
        """
        template = self._templates.resolve(name)
        prompt = self._templates.render(template, variables)
        logger.info(
            "template_rendered",
            extra={"template": name, "source": template.source},
        )
        return await self.send_orchestrated(
            [Message.user(prompt)],
            provider=provider,
            model=model,
            options=options,
        )

    # --- Streaming ---

    async def stream_orchestrated(
        self,
        messages: Sequence[Message],
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[StreamingUpdate]:
        """
        Stream a conversation as ordered StreamingUpdates.

        Never retried: a failure at any point, resolution included, ends
        the sequence with one error update. Closing the generator or
        cancelling the consuming task closes the backend stream and
        produces no further updates.
        """
        cid = new_correlation_id()
        log_extra: dict[str, Any] = {"correlation_id": cid}
        interceptor: Optional[ToolInvocationInterceptor] = None
        start = time.monotonic()

        try:
            backend = self._resolve(provider, model)
            log_extra.update(provider=backend.provider_name, model=backend.model_id)
            interceptor = ToolInvocationInterceptor(self._tools, correlation_id=cid)
            logger.info("stream_started", extra=log_extra)

            items = backend.stream(messages, tools=interceptor, options=options)
            async with aclosing(items):
                async for item in items:
                    for update in interceptor.drain_updates():
                        yield update
                    if isinstance(item, StreamingUpdate):
                        yield item
                    else:
                        yield StreamingUpdate.text(item)

            for update in interceptor.drain_updates():
                yield update

        except Exception as e:
            logger.error(
                "stream_failed",
                extra={**log_extra, "error_type": type(e).__name__, "error": str(e)[:200]},
            )
            if interceptor is not None:
                for update in interceptor.drain_updates():
                    yield update
            yield StreamingUpdate.error(str(e), correlation_id=cid)
            return

        records = interceptor.records
        logger.info(
            "stream_completed",
            extra={
                **log_extra,
                "tool_calls": len(records),
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )
        yield StreamingUpdate.final(
            correlation_id=cid,
            provider=backend.provider_name,
            model=backend.model_id,
            tool_calls=[record.to_dict() for record in records],
        )

    # --- Discovery ---

    def list_available_templates(self) -> list[str]:
        return self._templates.list_available_templates()

    def describe_backends(self) -> list[BackendMetadata]:
        return self._registry.list_backends()

    def list_tools(self) -> list[dict[str, Any]]:
        return self._tools.describe()
