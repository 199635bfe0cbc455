"""Main CLI for the tab agent orchestrator."""

import asyncio
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..browser.driver import load_driver
from ..core.config import OrchestratorConfig, load_config
from ..core.orchestrator import Orchestrator
from ..core.task import Message, MessageType
from ..errors import ConfigurationError, ErrorTranslator
from ..utils.rich_logging import setup_logging


console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default="tab-agent.yaml", help="Config file")
@click.pass_context
def cli(ctx, config_path):
    """Tab Agent - natural-language browser task orchestrator."""
    load_dotenv()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path)


def _load(ctx) -> OrchestratorConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except (ValueError, ConfigurationError) as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", "-p", default=None, type=int, help="Port (default from config)")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
@click.pass_context
def serve(ctx, host, port, log_level):
    """Start the websocket orchestrator server."""
    config = _load(ctx)
    setup_logging(log_level or config.server.log_level, config.server.log_file)

    from ..web.server import run_server

    console.print(
        f"[bold green]Serving on ws://{host or config.server.host}:{port or config.server.port}/ws[/]"
    )
    try:
        run_server(config, host=host, port=port)
    except ConfigurationError as e:
        console.print(ErrorTranslator().format_for_cli(ErrorTranslator().translate(e)))
        sys.exit(1)


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Print the resolved configuration."""
    config = _load(ctx)

    table = Table(title=f"Configuration ({ctx.obj['config_path']})")
    table.add_column("Setting")
    table.add_column("Value")

    providers = ", ".join(p.name for p in config.llm.providers)
    rows = [
        ("llm.providers", providers),
        ("llm.retry", f"{config.llm.retry.max_attempts} attempts, base {config.llm.retry.base_delay_seconds}s"),
        ("execution.max_steps", str(config.execution.max_steps)),
        ("execution.step_delay_seconds", str(config.execution.step_delay_seconds)),
        ("execution.task_timeout_seconds", str(config.execution.task_timeout_seconds)),
        ("execution.validation_policy", config.execution.validation_policy),
        ("execution.enable_task_router", str(config.execution.enable_task_router)),
        ("memory.window_size", str(config.memory.window_size)),
        ("tasks.max_concurrent_tasks", str(config.tasks.max_concurrent_tasks)),
        ("broadcast.replay_capacity", str(config.broadcast.replay_capacity)),
        ("browser.driver_factory", config.browser.driver_factory or "[dim]not set[/]"),
        ("server", f"{config.server.host}:{config.server.port}"),
    ]
    for key, value in rows:
        table.add_row(key, value)

    console.print(table)


@cli.command()
@click.argument("task")
@click.option("--log-level", default="WARNING", help="DEBUG, INFO, WARNING or ERROR")
@click.pass_context
def run(ctx, task, log_level):
    """Run one TASK in-process and print its progress."""
    config = _load(ctx)
    setup_logging(log_level, config.server.log_file)

    try:
        driver = load_driver(config.browser.driver_factory)
    except ConfigurationError as e:
        console.print(ErrorTranslator().format_for_cli(ErrorTranslator().translate(e)))
        sys.exit(1)

    outcome = asyncio.run(_run_task(config, driver, task))
    sys.exit(0 if outcome else 1)


async def _run_task(config: OrchestratorConfig, driver, task_input: str) -> bool:
    finished = {"success": False}

    async def show(message: Message):
        payload = message.payload
        if message.type == MessageType.STATUS_UPDATE:
            console.print(f"[dim]{payload.get('message', '')}[/]")
        elif message.type == MessageType.TASK_COMPLETE:
            result = payload.get("result") or {}
            finished["success"] = bool(result.get("success"))
            color = "green" if finished["success"] else "yellow"
            console.print(f"[bold {color}]{result.get('outcome', 'done')}[/]: {result.get('message', '')}")
        elif message.type == MessageType.TASK_ERROR:
            console.print(f"[bold red]{payload.get('title', 'Error')}[/]\n{payload.get('explanation', '')}")
            for i, action in enumerate(payload.get("actions", []), 1):
                console.print(f"  {i}. {action}")
        elif message.type == MessageType.TASK_CANCELLED:
            console.print("[yellow]Task cancelled[/]")

    orchestrator = Orchestrator(config, driver=driver, listener=show)
    started = await orchestrator.start_task(task_input)
    try:
        await orchestrator.manager.wait(started.id)
    except (KeyboardInterrupt, asyncio.CancelledError):
        await orchestrator.cancel_task(started.id)
    finally:
        await orchestrator.shutdown()
    return finished["success"]


if __name__ == "__main__":
    cli()
