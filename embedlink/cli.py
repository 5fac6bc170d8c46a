"""
Command-line interface for EmbedLink.

Usage:
    embedlink link --client-id cid123 --path /embedded -q theme=dark
    embedlink serve --port 8765
    embedlink call http://localhost:8765/embedded getUserStatus
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click

from .channel import Channel
from .config import EmbedLinkConfig
from .exceptions import EmbedLinkError
from .link import create_link
from .transport.guest import EmbeddedRuntime
from .transport.server import EmbeddedServer

CLI_CONTEXT_ID = "embedlink-cli"


def demo_runtime() -> EmbeddedRuntime:
    """Embedded runtime with a few diagnostic procedures."""
    runtime = EmbeddedRuntime()

    @runtime.procedure("ping")
    def ping(params: Any) -> str:
        return "pong"

    @runtime.procedure("echo")
    def echo(params: Any) -> Any:
        return params

    @runtime.procedure("getInitVariables")
    def get_init_variables(params: Any) -> Any:
        return runtime.init_variables

    @runtime.procedure("getUserStatus")
    def get_user_status(params: Any) -> dict:
        return {"status": "LOGGED_OUT"}

    return runtime


def _parse_query(values: tuple[str, ...]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"Expected key=value, got {item!r}", param_hint="--query")
        key, value = item.split("=", 1)
        params[key] = value
    return params


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path: Optional[str], debug: bool):
    """EmbedLink - cross-context RPC channels"""
    ctx.ensure_object(dict)

    config = EmbedLinkConfig.load(Path(config_path)) if config_path else EmbedLinkConfig()
    if debug:
        config.log_level = "DEBUG"
    config.configure_logging()
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.obj["config"] = config


@cli.command()
@click.option("--client-id", "-c", required=True, help="Client id set as clientId")
@click.option("--path", "-p", required=True, help="Path of the embedded surface")
@click.option("--query", "-q", multiple=True, help="Customization option key=value")
@click.option("--base-url", help="Override the base location")
@click.pass_context
def link(ctx, client_id: str, path: str, query: tuple[str, ...], base_url: Optional[str]):
    """Print the address an embedded frame loads."""
    config = ctx.obj["config"]
    address = create_link(
        client_id,
        path,
        _parse_query(query),
        base_url=base_url or config.base_url,
    )
    click.echo(address)


@cli.command()
@click.argument("address")
@click.argument("procedure")
@click.option("--params", default=None, help="JSON encoded parameters")
@click.option("--init", "init_json", default=None, help="JSON encoded initialization payload")
@click.option("--timeout", "-t", type=float, default=None, help="Call timeout in seconds")
@click.pass_context
def call(
    ctx,
    address: str,
    procedure: str,
    params: Optional[str],
    init_json: Optional[str],
    timeout: Optional[float],
):
    """Call a procedure on the embedded context served at ADDRESS."""
    config = ctx.obj["config"]

    try:
        call_params = json.loads(params) if params is not None else None
        init_payload = json.loads(init_json) if init_json is not None else {}
    except json.JSONDecodeError as e:
        click.echo(click.style(f"✗ Invalid JSON: {e}", fg="red"))
        sys.exit(1)

    async def do_call():
        channel = Channel(
            CLI_CONTEXT_ID,
            address,
            initializer=lambda: init_payload,
            config=config,
            call_timeout=timeout,
        )
        try:
            await channel.open()
            return await channel.call(procedure, call_params)
        finally:
            await channel.close()

    try:
        result = asyncio.run(do_call())
    except EmbedLinkError as e:
        click.echo(click.style(f"✗ {e.code}: {e.message}", fg="red"))
        sys.exit(1)

    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", "-p", default=8765, help="Port to listen on")
def serve(host: str, port: int):
    """Serve a demo embedded runtime over WebSocket."""

    async def run_server():
        async with EmbeddedServer(demo_runtime, host, port) as server:
            click.echo(click.style(f"✓ Embedded runtime at {server.base_url}", fg="green"))
            click.echo("Press Ctrl+C to stop")
            await asyncio.Event().wait()

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        click.echo("\nStopped.")


if __name__ == "__main__":
    cli()
