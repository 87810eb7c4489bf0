"""feishubridge的命令行入口。"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from feishubridge import __logo__, __version__
from feishubridge.config.loader import get_config_path, load_config, save_config
from feishubridge.config.schema import Config
from feishubridge.utils.helpers import mask_secret

app = typer.Typer(
    name="feishubridge",
    help=f"{__logo__} feishubridge - Feishu × MoltBot bridge",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} feishubridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """feishubridge - Feishu × MoltBot bridge."""
    pass


def _setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Log level"),
):
    """Start the bridge."""
    from feishubridge.bridge import Bridge

    _setup_logging(log_level)
    config = load_config(config_path)

    missing = config.missing_identity()
    if missing:
        for name in missing:
            console.print(f"[red]错误: 请设置 {name} 环境变量[/red]")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting feishubridge v{__version__}")
    console.print(f"  Feishu App ID: {config.feishu.app_id}")
    console.print(f"  MoltBot Gateway: {config.backend.url}")

    bridge = Bridge(config)

    async def _run() -> None:
        try:
            await bridge.start()
        finally:
            await bridge.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command()
def init(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a default config file."""
    path = config_path or get_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists at {path}[/yellow] (use --force to overwrite)")
        raise typer.Exit(1)

    written = save_config(Config(), path)
    console.print(f"[green]✓[/green] Created config at {written}")
    console.print("  Set FEISHU_APP_ID and FEISHU_APP_SECRET (or edit the file) before running.")


@app.command()
def status(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show effective configuration."""
    config = load_config(config_path)

    table = Table(title=f"{__logo__} feishubridge status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    path = config_path or get_config_path()
    table.add_row("Config file", f"{path}" + ("" if path.exists() else " [dim](not found)[/dim]"))
    table.add_row("Feishu App ID", config.feishu.app_id or "[red]not set[/red]")
    table.add_row("Feishu App Secret", mask_secret(config.feishu.app_secret) or "[red]not set[/red]")
    table.add_row("Feishu API", config.feishu.api_base)
    table.add_row("MoltBot Gateway", config.backend.url)
    table.add_row("Agent ID", config.backend.agent_id)
    table.add_row("Request timeout", f"{config.backend.request_timeout_s:g}s")
    table.add_row("Fallback model", config.fallback.model)
    table.add_row("Fallback API key", mask_secret(config.fallback.api_key) or "[dim]not set[/dim]")
    table.add_row("Dedup window", f"{config.relay.dedup_ttl_s:g}s")

    console.print(table)


if __name__ == "__main__":
    app()
