"""Prompt templates: bundled *.prompt files and the template engine."""
