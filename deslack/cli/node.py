"""
CLI commands that run a deslack peer.
"""
import asyncio
from typing import Optional

import click

from ..client.app import ClientApp
from ..client.console import run_console
from ..client.session import DraftAddressChanged, SubmitAddress
from ..config import DeslackSettings, configure_logging
from ..p2p.manager import P2PManager
from ..server.api import start_api_server
from ..server.engine import ServerEngine


def _transport(settings: DeslackSettings) -> P2PManager:
    return P2PManager(
        listen_host=settings.transport.listen_host,
        listen_port=settings.transport.listen_port,
        connect_timeout=settings.transport.connect_timeout,
        rpc_timeout=settings.transport.rpc_timeout,
        max_message_size=settings.transport.max_message_size,
    )


async def run_server(settings: DeslackSettings):
    """Run the transport, the engine and the operator API until interrupted."""
    transport = _transport(settings)
    engine = ServerEngine(transport, config=settings.server)
    engine.attach()

    engine_task = asyncio.create_task(engine.run())
    await asyncio.sleep(0)
    await transport.start()

    click.echo(f"Server address: {transport.address}")
    click.echo(f"Listening on: {settings.transport.listen_host}:{settings.transport.listen_port}")
    click.echo(f"Operator API: http://{settings.server.api_host}:{settings.server.api_port}")

    try:
        await start_api_server(engine, settings.server.api_host, settings.server.api_port)
    finally:
        await transport.stop()
        engine.stop()
        await engine_task


async def run_client(settings: DeslackSettings, server_address: Optional[str] = None):
    """Run the console client until EOF or /quit."""
    transport = _transport(settings)
    app = ClientApp(transport)
    app.attach()

    app_task = asyncio.create_task(app.run())
    await asyncio.sleep(0)
    click.echo(f"Client address: {transport.address}")

    if server_address:
        app.dispatch(DraftAddressChanged(server_address))
        app.dispatch(SubmitAddress())

    try:
        await run_console(app)
    finally:
        await transport.stop()
        app.stop()
        await app_task


def _settings(log_level: Optional[str], console_logs: bool) -> DeslackSettings:
    settings = DeslackSettings()
    if log_level:
        settings.log_level = log_level
    if console_logs:
        settings.json_logs = False
    configure_logging(settings.log_level, settings.json_logs)
    return settings


@click.command()
@click.option('--host', type=str, help='Interface the transport listens on')
@click.option('--port', '-p', type=int, help='Port the transport listens on')
@click.option('--api-host', type=str, help='Interface the operator API binds')
@click.option('--api-port', type=int, help='Port the operator API binds')
@click.option('--evict-on-leave', is_flag=True, default=None,
              help='Remove disconnected peers from channel presence')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Log level')
@click.option('--console-logs', is_flag=True, help='Human readable logs instead of JSON')
def server(host, port, api_host, api_port, evict_on_leave, log_level, console_logs):
    """Run a deslack server."""
    settings = _settings(log_level, console_logs)
    if host:
        settings.transport.listen_host = host
    if port is not None:
        settings.transport.listen_port = port
    if api_host:
        settings.server.api_host = api_host
    if api_port is not None:
        settings.server.api_port = api_port
    if evict_on_leave:
        settings.server.evict_on_leave = True

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        click.echo("Server stopped")


@click.command()
@click.argument('server_address', required=False)
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default='WARNING', help='Log level')
@click.option('--console-logs', is_flag=True, help='Human readable logs instead of JSON')
def client(server_address, log_level, console_logs):
    """Run the console client, optionally connecting to SERVER_ADDRESS (host:port)."""
    settings = _settings(log_level, console_logs)

    try:
        asyncio.run(run_client(settings, server_address))
    except KeyboardInterrupt:
        click.echo("Client stopped")
