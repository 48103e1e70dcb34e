"""CLI entry point: start the keyrelay forwarding proxy."""

import logging

import click
import httpx
import uvicorn
from rich.console import Console
from rich.panel import Panel

from keyrelay import __version__
from keyrelay.config.settings import Settings
from keyrelay.proxy.app import create_app
from keyrelay.proxy.forwarder import Forwarder
from keyrelay.utils.helpers import mask_secret

console = Console()


def describe_socks_proxy(settings: Settings) -> str:
    """Human-readable SOCKS endpoint with the password masked."""
    if not settings.socks_proxy_enabled:
        return "disabled (direct connection)"
    if settings.socks_proxy_url:
        url = httpx.URL(settings.socks_proxy_url)
        scheme, username, host, port = url.scheme, url.username, url.host, url.port
    else:
        scheme, username = "socks5", settings.socks_proxy_username
        host, port = settings.socks_proxy_host, settings.socks_proxy_port
    user = f"{username}@" if username else ""
    endpoint = f"{host}:{port}" if port else host
    return f"{scheme}://{user}{endpoint}"


@click.command()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True),
    help="Path to YAML configuration file"
)
@click.option("--host", default=None, help="Host to bind to (default: 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Port to listen on (default: 3000)")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def cli(config, host, port, log_level):
    """keyrelay - forward every request to one upstream API.

    Resolves a credential per request (x-api-key, Bearer token or the
    configured fallback), rewrites identity headers and streams the
    upstream response back.

    \b
    Quickstart:
        export ANTHROPIC_AUTH_TOKEN=sk-...
        keyrelay --port 3000
        export ANTHROPIC_BASE_URL=http://localhost:3000
    """
    settings = Settings.load_from_file(config) if config else Settings()
    overrides = {
        key: value
        for key, value in {"host": host, "port": port, "log_level": log_level}.items()
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    forwarder = Forwarder(settings)
    app = create_app(settings=settings, forwarder=forwarder)

    console.print(Panel.fit(
        f"[bold]Upstream:[/bold]     {settings.upstream_url}\n"
        f"[bold]Fallback key:[/bold] {mask_secret(settings.auth_token) or 'none'}\n"
        f"[bold]SOCKS proxy:[/bold]  {describe_socks_proxy(settings)}\n"
        f"[bold]Body limit:[/bold]   {settings.body_limit:,} bytes\n"
        f"[bold]Listening on:[/bold] http://{settings.host}:{settings.port}",
        title=f"keyrelay {__version__}",
        border_style="cyan",
    ))

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    cli()
