"""
Switchboard — provider-agnostic streaming chat orchestration.

Accepts a conversation and a target backend, drives that backend's
text-generation API (optionally with automatic tool invocation), and
returns either one aggregated Response or a live sequence of
StreamingUpdates, under the same contract for every backend.
"""

__version__ = "0.1.0"
