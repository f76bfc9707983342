"""
Observability module for Switchboard.

Structured logging with per-call correlation ids, so a single orchestrated
call can be traced through retries, tool invocations and stream events.
"""
