"""
Switchboard - Main Entry Point

CLI for talking to configured backends through the orchestrator:
one-shot and streaming chat, prompt templates, and discovery commands.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from switchboard.config.loader import load_config
from switchboard.config.schema import SwitchboardConfig
from switchboard.exceptions import (
    ConfigurationError,
    InvalidCredentialsError,
    MissingVariablesError,
    TemplateNotFoundError,
    UnknownProviderError,
)
from switchboard.llm.messages import Message
from switchboard.llm.orchestrator import ChatOrchestrator
from switchboard.llm.streaming import UpdateType
from switchboard.observability.logging_config import configure_logging
from switchboard.tools import build_default_registry

load_dotenv()

app = typer.Typer(
    name="switchboard",
    help="Switchboard - provider-agnostic chat orchestration",
)
console = Console()
logger = logging.getLogger("switchboard")

# Options shared by every command, set by the app callback
_state: dict[str, Optional[Path]] = {"config_path": None}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to switchboard.yaml (default: $SWITCHBOARD_CONFIG)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show INFO logs"),
):
    """Switchboard - provider-agnostic chat orchestration."""
    _state["config_path"] = config
    configure_logging(level=logging.INFO if verbose else logging.WARNING)


def _error_panel(message: str, title: str = "⚠ Configuration Error") -> None:
    console.print(Panel(f"[red]{message}[/]", title=title, border_style="red"))


def _get_config() -> SwitchboardConfig:
    """Load config, with a friendly error on failure."""
    try:
        return load_config(_state["config_path"])
    except ConfigurationError as e:
        _error_panel(str(e))
        raise typer.Exit(code=1)


def _build_orchestrator() -> ChatOrchestrator:
    config = _get_config()
    return ChatOrchestrator.from_config(config, tools=build_default_registry())


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables = {}
    for pair in pairs:
        if "=" not in pair:
            _error_panel(f"Expected key=value, got: {pair}", title="⚠ Invalid Variable")
            raise typer.Exit(code=1)
        key, value = pair.split("=", 1)
        variables[key.strip()] = value
    return variables


# Request errors that are the caller's fault; shown, never retried
_REQUEST_ERRORS = (
    UnknownProviderError,
    InvalidCredentialsError,
    TemplateNotFoundError,
    MissingVariablesError,
)


# =========================================================================
# Commands
# =========================================================================


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message to send"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Backend name"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Stream the reply"),
    system: Optional[str] = typer.Option(None, "--system", help="System message"),
):
    """Send one message and print the reply."""
    orchestrator = _build_orchestrator()
    messages = [Message.system(system)] if system else []
    messages.append(Message.user(prompt))

    if stream:
        asyncio.run(_stream_chat(orchestrator, messages, provider, model))
        return

    try:
        response = asyncio.run(
            orchestrator.send_orchestrated(messages, provider=provider, model=model)
        )
    except _REQUEST_ERRORS as e:
        _error_panel(str(e), title="⚠ Request Error")
        raise typer.Exit(code=1)

    console.print(response.content)
    if response.tool_calls:
        table = Table(title="Tool Calls")
        table.add_column("Tool", style="cyan")
        table.add_column("Arguments", style="white")
        table.add_column("Result", style="green")
        table.add_column("ms", style="yellow", justify="right")
        for record in response.tool_calls:
            table.add_row(
                record.tool_name,
                json.dumps(record.arguments),
                record.result[:80],
                f"{record.execution_time.total_seconds() * 1000:.1f}",
            )
        console.print(table)
    console.print(
        f"[dim]{response.provider_used} / {response.model_used}[/]"
    )
    if response.is_fallback:
        raise typer.Exit(code=2)


async def _stream_chat(
    orchestrator: ChatOrchestrator,
    messages: list[Message],
    provider: Optional[str],
    model: Optional[str],
) -> None:
    failed = False
    async for update in orchestrator.stream_orchestrated(
        messages, provider=provider, model=model
    ):
        if update.type is UpdateType.CONTENT:
            console.print(update.content or "", end="", markup=False, highlight=False)
        elif update.type is UpdateType.ERROR:
            console.print()
            console.print(f"[red]{update.content}[/]")
            failed = True
        else:
            console.print(f"\n[dim]» {update.content}[/]")
    console.print()
    if failed:
        raise typer.Exit(code=2)


@app.command()
def template(
    name: str = typer.Argument(..., help="Template name"),
    var: list[str] = typer.Option([], "--var", help="Template variable as key=value"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Backend name"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id"),
):
    """Render a prompt template and send it."""
    orchestrator = _build_orchestrator()
    variables = _parse_vars(var)

    try:
        response = asyncio.run(
            orchestrator.execute_template(name, variables, provider=provider, model=model)
        )
    except _REQUEST_ERRORS as e:
        _error_panel(str(e), title="⚠ Template Error")
        raise typer.Exit(code=1)

    console.print(response.content)
    console.print(f"[dim]{response.provider_used} / {response.model_used}[/]")
    if response.is_fallback:
        raise typer.Exit(code=2)


@app.command()
def templates():
    """List available prompt templates."""
    orchestrator = _build_orchestrator()
    names = orchestrator.list_available_templates()
    if not names:
        console.print("[yellow]No templates found.[/]")
        return

    table = Table(title="Prompt Templates")
    table.add_column("Name", style="cyan")
    table.add_column("Source", style="green")
    table.add_column("Variables", style="white")
    for template_name in names:
        resolved = orchestrator.templates.resolve(template_name)
        table.add_row(
            template_name,
            resolved.source,
            ", ".join(orchestrator.templates.required_variables(resolved)),
        )
    console.print(table)


@app.command()
def backends():
    """List configured backends."""
    orchestrator = _build_orchestrator()
    config = orchestrator.registry.config

    table = Table(title="Backends")
    table.add_column("Name", style="cyan")
    table.add_column("Display Name", style="white")
    table.add_column("Kind", style="green")
    table.add_column("Models", style="yellow", justify="right")
    for metadata in orchestrator.describe_backends():
        backend = config.backends[metadata.id]
        default = " *" if metadata.id == config.orchestration.default_provider else ""
        table.add_row(
            metadata.id + default,
            metadata.display_name,
            backend.kind.value,
            str(len(backend.models)),
        )
    console.print(table)


@app.command()
def models(
    provider: str = typer.Argument(..., help="Backend name"),
):
    """List models configured for a backend."""
    orchestrator = _build_orchestrator()
    try:
        model_list = orchestrator.registry.list_models(provider)
    except UnknownProviderError as e:
        _error_panel(str(e), title="⚠ Request Error")
        raise typer.Exit(code=1)

    table = Table(title=f"Models - {provider}")
    table.add_column("Id", style="cyan")
    table.add_column("Display Name", style="white")
    table.add_column("Context Window", style="yellow", justify="right")
    for model_config in model_list:
        table.add_row(
            model_config.id,
            model_config.display_name,
            f"{model_config.context_window:,}" if model_config.context_window else "-",
        )
    console.print(table)


@app.command()
def tools():
    """List tools exposed to backends."""
    orchestrator = _build_orchestrator()
    tool_list = orchestrator.list_tools()
    if not tool_list:
        console.print("[yellow]No tools enabled.[/]")
        return

    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Parameters", style="green")
    for tool in tool_list:
        table.add_row(
            tool["name"],
            tool["description"],
            ", ".join(tool["parameters"]) or "-",
        )
    console.print(table)


@app.command()
def health():
    """Check that every configured backend can be constructed."""
    orchestrator = _build_orchestrator()
    report = orchestrator.registry.check_health()

    colors = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}
    status = report["status"]
    console.print(f"Status: [{colors[status]}]{status}[/]")

    table = Table()
    table.add_column("Backend", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for name, result in report["backends"].items():
        ok = result["status"] == "ok"
        table.add_row(
            name,
            "[green]ok[/]" if ok else "[red]error[/]",
            f"{result['models']} models" if ok else result["error"],
        )
    console.print(table)

    if status == "unhealthy":
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
