"""CLI entry point for abcscribe."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich import print as rprint
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from abcscribe.config import AbcScribeConfig, load_config
from abcscribe.config.loader import DEFAULT_CONFIG_TEMPLATE
from abcscribe.images import load_images
from abcscribe.llm import AVAILABLE_MODELS, create_transport, get_model_variant
from abcscribe.log_sink import LogEvent, LogStream
from abcscribe.orchestrator import ConversionOrchestrator, ConversionRequest
from abcscribe.validator import AbcValidator

app = typer.Typer(
    name="abcscribe",
    help="Transcribe sheet music images to validated ABC notation.",
)

config_app = typer.Typer(help="Manage abcscribe configuration.")
app.add_typer(config_app, name="config")

# Global state
_config: AbcScribeConfig | None = None

_CATEGORY_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "thinking": "magenta",
}

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _get_config() -> AbcScribeConfig:
    if _config is None:
        return load_config()
    return _config


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "time": self.formatTime(record),
                "level": record.levelname.lower(),
                "logger": record.name,
                "message": record.getMessage(),
            }
        )


def _configure_logging(cfg: AbcScribeConfig) -> None:
    if cfg.log_format == "json":
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
    else:
        handler = RichHandler(show_path=False)
    logging.basicConfig(level=_LEVELS[cfg.log_level], handlers=[handler], force=True)


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to abcscribe.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    _configure_logging(_config)


class ConsoleLogRenderer:
    """Prints log events, holding back thinking until its block ends.

    Thinking arrives as repeated in-place replacements; only the final
    text of each block is printed.
    """

    def __init__(self, show_thinking: bool = False) -> None:
        self.show_thinking = show_thinking
        self._pending: LogEvent | None = None

    def __call__(self, event: LogEvent, replaced: bool) -> None:
        if event.category == "thinking":
            self._pending = event
            return
        self.flush()
        style = _CATEGORY_STYLES[event.category]
        rprint(f"[dim]{event.timestamp_text}[/dim] [{style}]{escape(event.message)}[/{style}]")

    def flush(self) -> None:
        if self._pending is None:
            return
        event, self._pending = self._pending, None
        if self.show_thinking:
            rprint(Panel(Text(event.message), title="Thinking", border_style="magenta"))
        else:
            first_line = event.message.strip().splitlines()[0] if event.message.strip() else ""
            rprint(f"[dim]{event.timestamp_text}[/dim] [magenta]{escape(first_line)}[/magenta]")


@app.command()
def convert(
    images: list[Path] = typer.Argument(..., help="Sheet music image(s), in page order"),
    model: Annotated[
        str | None, typer.Option("--model", "-m", help="Model id (see `abcscribe models`)")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the ABC document to a file")
    ] = None,
    max_turns: Annotated[
        int | None, typer.Option("--max-turns", min=1, max=20, help="Override the turn budget")
    ] = None,
    show_thinking: bool = typer.Option(
        False, "--show-thinking/--hide-thinking", help="Print the model's full reasoning"
    ),
) -> None:
    """Convert sheet music image(s) to ABC notation."""
    cfg = _get_config()
    model_id = model or cfg.llm.model
    settings = cfg.conversion
    if max_turns is not None:
        settings = settings.model_copy(update={"max_turns": max_turns})

    try:
        variant = get_model_variant(model_id)
        parts = load_images(images)
        transport = create_transport(cfg.llm)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    rprint(f"[bold]Converting[/bold] {len(parts)} image(s) with {variant.name}...")

    renderer = ConsoleLogRenderer(show_thinking=show_thinking)
    log = LogStream(listener=renderer)
    validator = AbcValidator(
        strict=cfg.validation.strict,
        prohibited_directives=cfg.validation.prohibited_directives,
    )
    orchestrator = ConversionOrchestrator(transport, validator, settings)
    request = ConversionRequest(images=tuple(parts), model_id=variant.id)

    try:
        result = asyncio.run(orchestrator.convert(request, on_log=log))
    except Exception as e:
        renderer.flush()
        rprint(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    renderer.flush()

    if output:
        output.write_text(result.document + "\n")
        rprint(f"[green]Written to[/green] {output}")
    else:
        rprint(Syntax(result.document, "text", word_wrap=True))

    if result.exhausted:
        rprint(
            Panel(
                f"Turn budget exhausted after {result.turns} turns. The document is a "
                "best-effort draft and may not be valid; review it before use.",
                title="Best Effort",
                border_style="yellow",
            )
        )
    else:
        rprint(
            Panel(
                f"[dim]Model:[/dim]  {variant.id}\n"
                f"[dim]Turns:[/dim]  {result.turns}\n"
                f"[dim]Size:[/dim]   {len(result.document)} chars",
                title="Conversion and Verification Complete",
                border_style="green",
            )
        )


@app.command()
def validate(
    path: Path = typer.Argument(..., help="ABC file to validate"),
    format: Annotated[
        str, typer.Option("--format", "-f", help="Output format: table or json")
    ] = "table",
) -> None:
    """Validate an ABC notation file."""
    cfg = _get_config()
    if not path.is_file():
        rprint(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)

    validator = AbcValidator(
        strict=cfg.validation.strict,
        prohibited_directives=cfg.validation.prohibited_directives,
    )
    outcome = validator(path.read_text(encoding="utf-8"))

    if format == "json":
        typer.echo(json.dumps({"path": str(path), **outcome.model_dump()}, indent=2))
    else:
        status = "[green]PASS[/green]" if outcome.is_valid else "[red]FAIL[/red]"
        rprint(f"{status} {path}")
        for err in outcome.errors:
            rprint(f"  [red]error:[/red] {escape(err)}")

    if not outcome.is_valid:
        raise typer.Exit(1)


@app.command()
def models() -> None:
    """List the available transcription models."""
    cfg = _get_config()
    table = Table(title=f"Models ({len(AVAILABLE_MODELS)})")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Budget", justify="right")
    for m in AVAILABLE_MODELS:
        budget = cfg.llm.thinking_budgets.get(m.id, m.thinking_budget)
        marker = " [green](default)[/green]" if m.id == cfg.llm.model else ""
        table.add_row(f"{m.id}{marker}", m.name, str(budget) if budget else "default")
    rprint(table)


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default abcscribe.yaml in current directory."""
    target = Path("abcscribe.yaml")
    if target.exists() and not force:
        rprint("[yellow]abcscribe.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")
