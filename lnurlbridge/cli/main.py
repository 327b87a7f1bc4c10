"""Main CLI entry point for lnurlbridge."""

import asyncio
import ipaddress
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import httpx
import typer
from rich.console import Console

from lnurlbridge import __version__
from lnurlbridge.client import LnurlClient
from lnurlbridge.exceptions import ClientTransportError, ConfigurationError, NodeRpcError
from lnurlbridge.infrastructure.node_rpc import ClnNodeRpc, NodeRpc
from lnurlbridge.utils.config import Settings, get_settings
from lnurlbridge.utils.logging import configure_logging

app = typer.Typer(
    name="lnurlbridge",
    help="⚡ LNURL channel, withdraw and auth server and client for Core Lightning",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]lnurlbridge[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """lnurlbridge - LNURL flows bridged to a Lightning node."""


def normalize_base_url(raw: str) -> str:
    """Turn a URL, ``ip:port``, ``[ipv6]:port`` or bare IP into a base URL.

    Raises:
        typer.BadParameter: for anything else
    """
    raw = raw.strip()
    if "://" in raw:
        return raw.rstrip("/")

    if raw.startswith("[") and "]:" in raw:
        host, _, port = raw[1:].partition("]:")
        if port.isdigit() and int(port) < 65536 and _is_ip(host, version=6):
            return f"http://[{host}]:{port}"

    host, sep, port = raw.rpartition(":")
    if sep and port.isdigit() and int(port) < 65536 and _is_ip(host, version=4):
        return f"http://{host}:{port}"

    if _is_ip(raw, version=4):
        return f"http://{raw}"
    if _is_ip(raw, version=6):
        return f"http://[{raw}]"

    raise typer.BadParameter(f"Invalid URL or IP address: {raw}")


def _is_ip(value: str, version: int) -> bool:
    try:
        return ipaddress.ip_address(value).version == version
    except ValueError:
        return False


def build_node_rpc(settings: Settings) -> NodeRpc:
    return ClnNodeRpc(settings.rpc_path)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds)


def _client_settings(rpc_path: Path | None, node_address: str | None) -> Settings:
    settings = get_settings()
    overrides = {
        key: value
        for key, value in {"rpc_path": rpc_path, "node_address": node_address}.items()
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def _run_flow(settings: Settings, flow: Callable[[LnurlClient], Awaitable[T]]) -> T:
    """Build a client around the configured node and run one flow to completion."""

    async def _run() -> T:
        async with build_http_client(settings) as http:
            client = LnurlClient(build_node_rpc(settings), http, settings.node_address)
            return await flow(client)

    try:
        return asyncio.run(_run())
    except ClientTransportError as e:
        typer.echo(f"❌ HTTP error: {e.message}", err=True)
        raise typer.Exit(code=1)
    except NodeRpcError as e:
        typer.echo(f"❌ Node error: {e.message}", err=True)
        raise typer.Exit(code=1)
    except ConfigurationError as e:
        typer.echo(f"❌ Configuration error: {e.message}", err=True)
        raise typer.Exit(code=1)


RpcPathOption = typer.Option(None, "--rpc-path", help="Core Lightning RPC socket")
NodeAddressOption = typer.Option(
    None, "--node-address", help="Advertised host:port of the local node"
)


# ============================================================================
# SERVER
# ============================================================================


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    rpc_path: Path | None = RpcPathOption,
    node_address: str | None = NodeAddressOption,
    callback_base_url: str | None = typer.Option(
        None, "--callback-base-url", help="Public base URL wallets use for callbacks"
    ),
):
    """⚡ Run the LNURL server."""
    from lnurlbridge.api.app import run_server

    overrides = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "rpc_path": rpc_path,
            "node_address": node_address,
            "callback_base_url": callback_base_url,
        }.items()
        if value is not None
    }
    try:
        settings = Settings(**overrides)
    except ValueError as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)

    configure_logging(settings.log_level, settings.json_logs, settings.dev_mode)
    typer.echo(f"⚡ Serving LNURL on {settings.host}:{settings.port}")
    typer.echo(f"Callbacks: {settings.callback_base_url}")
    run_server(settings)


# ============================================================================
# CLIENT FLOWS
# ============================================================================


@app.command("request-channel")
def request_channel(
    url: str = typer.Argument(..., help="Server URL, ip:port, [ipv6]:port or IP"),
    rpc_path: Path | None = RpcPathOption,
    node_address: str | None = NodeAddressOption,
):
    """Ask a server to open a channel to the local node."""
    base_url = normalize_base_url(url)
    settings = _client_settings(rpc_path, node_address)

    outcome = _run_flow(settings, lambda client: client.request_channel(base_url))
    response = outcome.response
    if not response.ok:
        typer.echo(f"❌ Channel request refused: {response.reason}", err=True)
        raise typer.Exit(code=1)

    typer.echo("✅ Channel opened")
    typer.echo(f"Channel ID: {response.channel_id}")
    typer.echo(f"Funding txid: {response.txid}")
    typer.echo(f"Output: {response.outnum}")


@app.command("request-withdraw")
def request_withdraw(
    url: str = typer.Argument(..., help="Server URL, ip:port, [ipv6]:port or IP"),
    rpc_path: Path | None = RpcPathOption,
):
    """Withdraw the maximum amount a server offers into a fresh invoice."""
    base_url = normalize_base_url(url)
    settings = _client_settings(rpc_path, None)

    outcome = _run_flow(settings, lambda client: client.request_withdraw(base_url))
    if not outcome.response.ok:
        typer.echo(f"❌ Withdraw refused: {outcome.response.reason}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Invoice: {outcome.invoice.bolt11}")
    typer.echo(f"Expires: {outcome.invoice.expires_at_datetime:%Y-%m-%d %H:%M:%S} UTC")
    settlement = outcome.settlement
    if settlement is None or not settlement.is_paid:
        status = settlement.status if settlement else "unknown"
        typer.echo(f"❌ Invoice not paid (status: {status})", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"✅ Received {settlement.amount_received_msat} msat")


@app.command("auth")
def auth(
    url: str = typer.Argument(..., help="Server URL, ip:port, [ipv6]:port or IP"),
    rpc_path: Path | None = RpcPathOption,
):
    """Log in to a server with the local node key."""
    base_url = normalize_base_url(url)
    settings = _client_settings(rpc_path, None)

    outcome = _run_flow(settings, lambda client: client.auth(base_url))
    if not outcome.response.ok:
        typer.echo(f"❌ Authentication failed: {outcome.response.reason}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"✅ Authenticated as {outcome.pubkey}")
    if outcome.response.event:
        typer.echo(f"Event: {outcome.response.event}")


if __name__ == "__main__":
    app()
