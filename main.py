"""
av9Assist - Main Entry Point

CLI for inspecting provider configuration, asking one-off questions
through the orchestrator, and running the chat API server.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from av9assist.config.loader import load_env_file, load_settings
from av9assist.config.schema import AppSettings
from av9assist.exceptions import ConfigurationError
from av9assist.llm.llm_config import LLMConfig
from av9assist.llm.router import OrchestratorResult, ProviderRouter
from av9assist.observability.logging_config import configure_logging

load_env_file()

app = typer.Typer(
    name="av9assist",
    help="av9Assist - multi-provider AI chat backend",
)
console = Console()


def _get_settings(config: Optional[Path] = None) -> AppSettings:
    """Load settings, with a friendly error on failure."""
    try:
        return load_settings(config_path=config)
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]{e}[/]\n\n"
            f"Check your .env file or the YAML file passed with --config.",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


def _image_to_data_url(path: Path) -> str:
    """Read an image file and encode it as a data URL."""
    if not path.is_file():
        console.print(f"[red]Image not found:[/] {path}")
        raise typer.Exit(code=1)
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _attempts_table(result: OrchestratorResult) -> Table:
    table = Table(title=f"Provider attempts ({result.strategy or 'n/a'})")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Detail", style="dim")

    colors = {"succeeded": "green", "failed": "red", "skipped": "yellow", "pending": "blue"}
    for attempt in result.attempts:
        status = attempt.status.value
        table.add_row(
            attempt.provider_name,
            f"[{colors.get(status, 'white')}]{status.upper()}[/]",
            f"{attempt.latency_ms:.0f}ms" if attempt.latency_ms else "-",
            (attempt.error_reason or "")[:80],
        )
    return table


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Configure logging before any command runs."""
    configure_logging(level=logging.DEBUG if verbose else logging.INFO)


# =========================================================================
# Commands
# =========================================================================


@app.command()
def providers(
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
):
    """Show known providers and whether they are eligible."""
    settings = _get_settings(config)
    llm_config = LLMConfig.from_settings(settings)

    table = Table(title="av9Assist - AI Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Model", style="white")
    table.add_column("Keys", justify="right")
    table.add_column("Vision", style="green")
    table.add_column("Status")

    for info in llm_config.list_providers():
        if not info["in_order"]:
            status = "[dim]not in order[/]"
        elif info["configured"]:
            status = "[green]ready[/]"
        else:
            status = "[yellow]missing API key[/]"
        table.add_row(
            info["name"],
            info["model"],
            str(info["credentials"]),
            "yes" if info["supports_vision"] else "no",
            status,
        )

    console.print(table)
    console.print(
        f"Order: [cyan]{', '.join(llm_config.provider_order)}[/]  "
        f"Timeouts: sequential {llm_config.timeout_ms}ms, "
        f"race {llm_config.fast_timeout_ms}ms, vision {llm_config.vision_timeout_ms}ms"
    )


@app.command("env-check")
def env_check(
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
):
    """Show which credentials are set (masked)."""
    settings = _get_settings(config)

    table = Table(title="Environment Check")
    table.add_column("Variable", style="cyan")
    table.add_column("Value")
    for name, value in settings.masked_credentials().items():
        style = "red" if value == "NOT SET" else "white"
        table.add_row(name, f"[{style}]{value}[/]")
    console.print(table)


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    image: Optional[Path] = typer.Option(None, help="Image file to attach"),
    strategy: str = typer.Option(
        "auto", help="auto (race then fallback), race, or sequential"
    ),
    providers_order: Optional[str] = typer.Option(
        None, "--providers", help="Comma-separated provider order"
    ),
    timeout_ms: Optional[int] = typer.Option(None, help="Per-provider timeout"),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
):
    """Send one message through the orchestrator and print the reply."""
    if strategy not in ("auto", "race", "sequential"):
        console.print(f"[red]Unknown strategy:[/] {strategy}")
        raise typer.Exit(code=2)

    settings = _get_settings(config)
    image_data = _image_to_data_url(image) if image else None
    context = [{"role": "system", "content": settings.system_prompt}]

    async def _run() -> OrchestratorResult:
        router = ProviderRouter(LLMConfig.from_settings(settings))
        try:
            if strategy == "race":
                return await router.get_response_fast(
                    message, providers_order, context,
                    timeout_ms=timeout_ms, image=image_data,
                )
            if strategy == "sequential":
                return await router.get_response(
                    message, providers_order, context, image_data,
                    timeout_ms=timeout_ms,
                )
            return await router.race_or_fallback(
                message, context, image_data, providers_order,
            )
        finally:
            await router.aclose()

    result = asyncio.run(_run())

    style = "green" if result.success else "red"
    console.print(Panel(
        result.response,
        title=f"Reply from {result.provider_name}" if result.success else "No reply",
        border_style=style,
    ))
    console.print(_attempts_table(result))

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    deadline_ms: Optional[int] = typer.Option(
        None, help="Overall per-message deadline"
    ),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
):
    """Run the chat API server."""
    import uvicorn

    from av9assist.chat.api_server import create_api_app
    from av9assist.chat.service import ChatService

    settings = _get_settings(config)
    service = ChatService.from_settings(settings, deadline_ms=deadline_ms)

    eligible = service.router.eligible_providers()
    if not eligible:
        console.print("[yellow]No providers have credentials; every reply will be the fallback message.[/]")
    else:
        console.print(f"[green]Providers ready:[/] {', '.join(eligible)}")

    api = create_api_app(service=service, settings=settings)
    uvicorn.run(api, host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
