"""
Prompt template engine for Switchboard.

Templates are plain text with `{{variableName}}` placeholders, stored as
`<name>.prompt` files. Three sources are searched in fixed priority order:

1. Built-in templates shipped in switchboard/prompts/builtin/
2. Deployed templates in the configured template_dir
3. Templates inlined in the config file (orchestration.prompt_templates)

Each source is a Jinja2 loader, so lookup and listing work the same way
for all three. Rendering itself is a literal substitution of every
placeholder with str(value): templates are not Jinja programs.

Usage:
    from switchboard.prompts.template_engine import PromptTemplateEngine, TemplateCache

    engine = PromptTemplateEngine(TemplateCache(), template_dir="prompt_templates")
    template = engine.resolve("greeting")
    text = engine.render(template, {"name": "Ada"})   # "Hello Ada"
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from jinja2 import BaseLoader, DictLoader, Environment, FileSystemLoader, PackageLoader, TemplateNotFound

from switchboard.exceptions import MissingVariablesError, TemplateNotFoundError

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".prompt"

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class PromptTemplate:
    """A named prompt template and where it was found."""

    name: str
    content: str
    source: str = "config"


# ---------------------------------------------------------------------------
# Template Cache
# ---------------------------------------------------------------------------

class TemplateCache:
    """
    Process-wide cache of resolved templates, keyed by name.

    Entries are never evicted. Each name has its own load lock, so a name
    is loaded at most once even when requested concurrently, and a slow
    load never blocks lookups of other names.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._templates: dict[str, PromptTemplate] = {}
        self._load_locks: dict[str, threading.Lock] = {}

    def get(self, name: str) -> Optional[PromptTemplate]:
        with self._lock:
            return self._templates.get(name)

    def get_or_load(
        self,
        name: str,
        load: Callable[[str], PromptTemplate],
    ) -> PromptTemplate:
        with self._lock:
            template = self._templates.get(name)
            if template is not None:
                return template
            load_lock = self._load_locks.setdefault(name, threading.Lock())

        with load_lock:
            template = self.get(name)
            if template is None:
                template = load(name)
                with self._lock:
                    self._templates[name] = template
                    self._load_locks.pop(name, None)
            return template

    def clear(self) -> None:
        with self._lock:
            self._templates.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._templates)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._templates


# ---------------------------------------------------------------------------
# Template Engine
# ---------------------------------------------------------------------------

class PromptTemplateEngine:
    """Resolves, validates and renders prompt templates."""

    def __init__(
        self,
        cache: Optional[TemplateCache] = None,
        *,
        template_dir: Optional[str | Path] = None,
        config_templates: Optional[dict[str, str]] = None,
        builtin_package: Optional[str] = "switchboard",
        builtin_path: str = "prompts/builtin",
    ):
        self._cache = cache if cache is not None else TemplateCache()
        self._env = Environment(autoescape=False, keep_trailing_newline=True)

        # Ordered (source label, loader) pairs; earlier wins
        self._sources: list[tuple[str, BaseLoader]] = []
        if builtin_package:
            self._sources.append(("builtin", PackageLoader(builtin_package, builtin_path)))
        if template_dir is not None:
            directory = Path(template_dir)
            if directory.is_dir():
                self._sources.append(("filesystem", FileSystemLoader(str(directory))))
            else:
                logger.warning(
                    "template_dir_not_found", extra={"template_dir": str(directory)}
                )
        self._sources.append((
            "config",
            DictLoader({
                f"{name}{TEMPLATE_SUFFIX}": content
                for name, content in (config_templates or {}).items()
            }),
        ))

    @property
    def cache(self) -> TemplateCache:
        return self._cache

    # --- Resolution ---

    def _load(self, name: str) -> PromptTemplate:
        filename = f"{name}{TEMPLATE_SUFFIX}"
        for label, loader in self._sources:
            try:
                content, _, _ = loader.get_source(self._env, filename)
            except TemplateNotFound:
                continue
            logger.debug("template_loaded", extra={"template": name, "source": label})
            return PromptTemplate(name=name, content=content, source=label)

        raise TemplateNotFoundError(
            f"Prompt template '{name}' not found.", template_name=name
        )

    def resolve(self, name: str) -> PromptTemplate:
        """
        Find a template by name, checking the cache first.

        Raises:
            TemplateNotFoundError: No source has a template with this name.
        """
        return self._cache.get_or_load(name, self._load)

    def list_available_templates(self) -> list[str]:
        """Sorted, de-duplicated template names across all sources."""
        names: set[str] = set()
        for _, loader in self._sources:
            for filename in loader.list_templates():
                if filename.endswith(TEMPLATE_SUFFIX) and "/" not in filename:
                    names.add(filename[: -len(TEMPLATE_SUFFIX)])
        return sorted(names)

    # --- Rendering ---

    @staticmethod
    def required_variables(template: PromptTemplate) -> list[str]:
        """Placeholder names in order of first appearance."""
        seen: dict[str, None] = {}
        for match in _PLACEHOLDER.finditer(template.content):
            seen.setdefault(match.group(1), None)
        return list(seen)

    def validate_variables(
        self,
        template: PromptTemplate,
        variables: dict[str, Any],
    ) -> None:
        """
        Raises:
            MissingVariablesError: Listing every absent variable. A key
                                   whose value is None counts as absent.
        """
        missing = [
            name for name in self.required_variables(template)
            if variables.get(name) is None
        ]
        if missing:
            raise MissingVariablesError(
                f"Missing required variables: {', '.join(missing)}",
                names=missing,
                details={"template": template.name},
            )

    def render(self, template: PromptTemplate, variables: dict[str, Any]) -> str:
        """Validate, then substitute every placeholder with str(value)."""
        self.validate_variables(template, variables)
        return _PLACEHOLDER.sub(
            lambda match: str(variables[match.group(1)]), template.content
        )
