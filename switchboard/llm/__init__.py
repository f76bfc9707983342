"""
LLM Orchestration Layer: provider-agnostic chat with tools, retry and streaming.

Provides a unified interface for calling different text-generation backends
(OpenAI-compatible endpoints, Anthropic, Ollama) with automatic tool
invocation, retry/fallback and live streaming.

Modules:
- messages: Conversation data model and shared wire conversion
- backends: BackendClient contract and one adapter per vendor API
- registry: BackendRegistry — resolve (provider, model) to a client
- tools: ToolRegistry and ToolInvocationInterceptor
- retry: RetryExecutor — exponential backoff with fallback
- streaming: StreamingUpdate — the live view of a streaming call
- orchestrator: ChatOrchestrator — send, stream and template execution
"""
