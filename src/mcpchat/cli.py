"""mcpchat CLI entrypoint — the interactive console loop."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import click
from rich.logging import RichHandler

from mcpchat import __version__
from mcpchat._output import (
    console,
    err_console,
    print_models,
    print_tool_result,
    print_tools_table,
)
from mcpchat.agent import QueryOrchestrator
from mcpchat.config import ChatSettings, load_settings, parse_max_tokens
from mcpchat.errors import ConfigError
from mcpchat.llm.gateway import ModelGateway, latest_model
from mcpchat.mcp.session import ClientSession
from mcpchat.mcp.transport import StdioTransport, StreamableHttpTransport, Transport
from mcpchat.url import normalize_url
from mcpchat.utils.telemetry import configure_telemetry

logger = logging.getLogger(__name__)

EXIT_SENTINEL = "exit"
PROMPT = "\nQuery (type exit to quit): "
LOAD_TOOL = "load_pbix_file"

ReadLine = Callable[[str], Awaitable[str | None]]


def configure_logging(verbose: bool) -> None:
    """Route log records through rich; ``verbose`` enables mcpchat debug output."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    logging.getLogger("mcpchat").setLevel(logging.DEBUG if verbose else logging.WARNING)


async def read_console_line(prompt: str) -> str | None:
    """Read one line from the console; ``None`` at end of input."""
    try:
        return await asyncio.to_thread(console.input, prompt)
    except EOFError:
        return None


def build_transport(transport: str, target: str, command: str | None) -> Transport:
    if transport == "stdio":
        if not command:
            msg = "--command is required with --transport stdio"
            raise click.UsageError(msg)
        return StdioTransport(command=command)
    return StreamableHttpTransport(target)


async def run_console(
    transport: Transport,
    gateway: ModelGateway,
    *,
    file: str | None = None,
    model: str | None = None,
    max_tokens: int | None = None,
    verbose: bool = False,
    read_line: ReadLine = read_console_line,
) -> None:
    """Connect, optionally pre-load a file, then answer queries until ``exit``."""
    async with ClientSession(transport) as session:
        tools = await session.list_tools()
        console.print("Tools:", ", ".join(tool.name for tool in tools), markup=False)
        if verbose:
            print_tools_table(tools)

        if file:
            console.print("Loading PBIX file...")
            result = await session.call_tool(LOAD_TOOL, {"file_path": file})
            if verbose:
                print_tool_result(result)
            console.print("Loaded PBIX. You can now ask questions (type exit to quit).")

        if model is None:
            await gateway.resolve_default_model()

        orchestrator = QueryOrchestrator(session, gateway, model=model, max_tokens=max_tokens)
        while True:
            line = await read_line(PROMPT)
            if line is None:
                break
            query = line.strip()
            if query.lower() == EXIT_SENTINEL:
                break
            if not query:
                continue

            try:
                await orchestrator.refresh_tools()
                answer = await orchestrator.run(query)
            except Exception as exc:
                logger.debug("Query failed", exc_info=True)
                console.print(f"[red]Error processing query:[/red] {exc}")
                continue
            console.print("\n" + answer, markup=False, highlight=False)


@click.command()
@click.version_option(version=__version__, prog_name="mcpchat")
@click.option("--url", default="http://127.0.0.1:5173", show_default=True, help="Base server URL.")
@click.option("--mount-path", default="/mcp", show_default=True, help="Mount path of the server.")
@click.option("--file", "file_path", default=None, help="PBIX file to load before the first query.")
@click.option("--model", default=None, help="Model id to try before the configured default.")
@click.option("--list-models", is_flag=True, help="List backend models and exit.")
@click.option(
    "--max-tokens",
    default="",
    help="Max tokens per model response (env ANTHROPIC_MAX_TOKENS, default 1000).",
)
@click.option(
    "--transport",
    type=click.Choice(["http", "stdio"]),
    default="http",
    show_default=True,
    help="Tool server transport type.",
)
@click.option("--command", default=None, help="Server command line (stdio transport).")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.option("--telemetry", is_flag=True, help="Export trace spans to the console.")
def main(
    url: str,
    mount_path: str,
    file_path: str | None,
    model: str | None,
    list_models: bool,
    max_tokens: str,
    transport: str,
    command: str | None,
    verbose: bool,
    telemetry: bool,
) -> None:
    """Ask questions answered with tools from a JSON-RPC tool server."""
    configure_logging(verbose)
    if telemetry:
        try:
            configure_telemetry(export_to_console=True)
        except ImportError as exc:
            err_console.print(f"[yellow]Telemetry disabled:[/yellow] {exc}")

    try:
        settings: ChatSettings = load_settings()
    except ConfigError as exc:
        err_console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    gateway = ModelGateway(settings)

    if list_models:
        models = asyncio.run(gateway.list_models())
        print_models(models, selected=latest_model(models))
        return

    if file_path and not Path(file_path).exists():
        err_console.print(f"[red]PBIX file not found at {file_path}[/red]")
        sys.exit(1)

    target = normalize_url(url, mount_path)
    channel = build_transport(transport, target, command)
    if transport == "http":
        console.print(f"Connecting to tool server at: {target}", markup=False)

    try:
        asyncio.run(
            run_console(
                channel,
                gateway,
                file=file_path,
                model=model,
                max_tokens=parse_max_tokens(max_tokens, settings.max_tokens),
                verbose=verbose,
            )
        )
    except KeyboardInterrupt:
        console.print()
    except Exception as exc:
        err_console.print(f"[red]Fatal:[/red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
