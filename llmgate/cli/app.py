"""
Command-line entry point for llmgate.

Usage:
    llmgate chat PROMPT [--provider ID] [--model NAME] [--stream/--no-stream]
    llmgate providers
    llmgate config show|validate
    llmgate version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from llmgate import __version__
from llmgate.config import GatewayConfig, load_config
from llmgate.errors import LLMError

app = typer.Typer(name="llmgate", help="OpenAI-compatible LLM gateway client")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path(explicit: Path | None = None) -> Path | None:
    """Find config file in standard locations."""
    if explicit is not None:
        return explicit
    candidates = [
        Path.cwd() / "llmgate.yaml",
        Path.cwd() / "llmgate.yml",
        Path.home() / ".config" / "llmgate" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config: Path | None) -> GatewayConfig:
    try:
        return load_config(_get_config_path(config))
    except LLMError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _print_tool_calls(tool_calls) -> None:
    for tc in tool_calls or []:
        console.print(
            f"[cyan]tool call[/cyan] {escape(tc.function.name)}"
            f"({escape(tc.function.arguments)})"
        )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message"),
    provider: Optional[str] = typer.Option(None, help="Provider id"),
    model: Optional[str] = typer.Option(None, help="Model override"),
    system: Optional[str] = typer.Option(None, help="System prompt"),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Stream the reply"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Send a single prompt and print the reply."""
    from llmgate.llm.client import LLMClient
    from llmgate.llm.types import ChatRequest, Message

    _setup_logging(verbose)
    cfg = _load(config)

    messages = []
    if system:
        messages.append(Message.system(system))
    messages.append(Message.user(prompt))
    request = ChatRequest(messages=messages, model=model)

    async def _run() -> int:
        async with LLMClient(cfg) as client:
            try:
                if not stream:
                    response = await client.chat(request, provider)
                    if response.content:
                        console.print(response.content, markup=False)
                    _print_tool_calls(response.tool_calls)
                    if response.usage:
                        console.print(
                            f"[dim]tokens: prompt={response.usage.prompt_tokens} "
                            f"completion={response.usage.completion_tokens} "
                            f"total={response.usage.total_tokens}[/dim]"
                        )
                    return 0

                async for chunk in client.stream(request, provider):
                    if chunk.delta:
                        console.print(
                            chunk.delta, end="", markup=False, highlight=False
                        )
                    if chunk.done:
                        console.print()
                        _print_tool_calls(chunk.tool_calls)
                        if chunk.error is not None:
                            console.print(
                                f"[red]Stream failed:[/red] {escape(str(chunk.error))}"
                            )
                            return 1
                return 0
            except LLMError as e:
                console.print(f"[red]{e.error_code}:[/red] {escape(str(e))}")
                return 1

    raise typer.Exit(asyncio.run(_run()))


@app.command()
def providers(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """List configured providers."""
    cfg = _load(config)
    default_id = cfg.default_provider_id()

    table = Table(title="Providers", show_lines=True)
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Endpoint")
    table.add_column("Models")
    table.add_column("Default model", no_wrap=True)

    for pid in sorted(cfg.providers):
        p = cfg.providers[pid]
        label = f"{pid} [green](default)[/green]" if pid == default_id else pid
        table.add_row(
            label,
            p.endpoint,
            ", ".join(p.models),
            p.effective_default_model or "",
        )
    console.print(table)


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show effective config (API keys masked)."""
    import yaml

    cfg = _load(config)
    text = yaml.safe_dump(cfg.to_dict(), sort_keys=False)
    console.print(Syntax(text, "yaml", theme="monokai"))


@config_app.command("validate")
def config_validate(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Validate config and summarize it."""
    config_path = _get_config_path(config)
    cfg = _load(config)
    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Providers: {', '.join(sorted(cfg.providers)) or '(none)'}")
    console.print(f"  Default provider: {cfg.default_provider_id() or '(none)'}")
    console.print(
        f"  Retry: sync={cfg.retry.max_attempts} stream={cfg.retry.stream_max_attempts}"
    )


@app.command()
def version():
    """Show version."""
    console.print(f"llmgate v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
