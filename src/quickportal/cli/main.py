"""
quickportal command line entry point.

Usage:
    quickportal PORT [SUBDOMAIN] [OPTIONS]

Example:
    # Expose localhost:8000 as https://foo.<broker domain>
    quickportal 8000 foo

    # Expose a local HTTPS server with a self-signed certificate
    quickportal 8443 --local-https --allow-invalid-cert
"""

import asyncio
import datetime
import webbrowser
from typing import Annotated

import typer
from pydantic import ValidationError

from quickportal import __version__
from quickportal.config import config
from quickportal.cli.output import console, print_error, print_success
from quickportal.exceptions import AssignmentError
from quickportal.models.enums import EventType, LogLevel
from quickportal.models.tunnel import RequestInfo, TunnelOptions
from quickportal.tunnel.orchestrator import create_tunnel
from quickportal.utils.logger import configure_logging

app = typer.Typer(
    name="quickportal",
    help="Expose a local server to the internet through a tunnel broker",
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"quickportal {__version__}")
        raise typer.Exit()


async def _run_tunnel(
    options: TunnelOptions, open_browser: bool, print_requests: bool
) -> int:
    """Open the tunnel and keep it up until it fails or is interrupted."""
    tunnel = await create_tunnel(options)
    failures: list[Exception] = []

    print_success(f"your url is: {tunnel.url}")
    if tunnel.cached_url:
        console.print(f"your cachedUrl is: {tunnel.cached_url}")

    if open_browser:
        webbrowser.open(tunnel.url)

    @tunnel.on(EventType.ERROR)
    async def _on_error(error: Exception) -> None:
        print_error(str(error))
        failures.append(error)
        await tunnel.close()

    if print_requests:

        @tunnel.on(EventType.REQUEST)
        def _on_request(info: RequestInfo) -> None:
            now = datetime.datetime.now().strftime("%a %b %d %Y %H:%M:%S")
            console.print(f"[dim]{now}[/dim] [cyan]{info.method}[/cyan] {info.path}")

    console.print("[dim]Press Ctrl+C to stop.[/dim]")
    try:
        await tunnel.wait_closed()
    finally:
        await tunnel.close()

    return 1 if failures else 0


@app.command()
def main(
    port: Annotated[int, typer.Argument(help="Local HTTP server port")],
    subdomain: Annotated[
        str | None, typer.Argument(help="Request this subdomain")
    ] = None,
    host: Annotated[
        str,
        typer.Option(
            "--host",
            "-H",
            help="Upstream server providing forwarding",
            envvar="QUICKPORTAL_HOST",
        ),
    ] = config.HOST,
    local_alias: Annotated[
        str | None,
        typer.Option(
            "--local-alias",
            "-a",
            help=(
                "Connect to this host instead of localhost and rewrite the "
                "Host header to it; without it Host is forwarded unchanged"
            ),
        ),
    ] = None,
    local_https: Annotated[
        bool,
        typer.Option("--local-https", help="Tunnel traffic to a local HTTPS server"),
    ] = False,
    local_cert: Annotated[
        str | None,
        typer.Option("--local-cert", help="Certificate PEM file for local HTTPS"),
    ] = None,
    local_key: Annotated[
        str | None,
        typer.Option("--local-key", help="Certificate key file for local HTTPS"),
    ] = None,
    local_ca: Annotated[
        str | None,
        typer.Option("--local-ca", help="Certificate authority file"),
    ] = None,
    allow_invalid_cert: Annotated[
        bool,
        typer.Option(
            "--allow-invalid-cert",
            help="Disable certificate checks for the local HTTPS server",
        ),
    ] = False,
    open_browser: Annotated[
        bool,
        typer.Option("--open", "-o", help="Open the tunnel URL in your browser"),
    ] = False,
    print_requests: Annotated[
        bool,
        typer.Option("--print-requests", help="Print basic request info"),
    ] = False,
    log_level: Annotated[
        LogLevel,
        typer.Option(
            "--log-level",
            help="Log verbosity",
            envvar="QUICKPORTAL_LOG_LEVEL",
            case_sensitive=False,
        ),
    ] = LogLevel.WARNING,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = None,
):
    """
    Expose a local server to the internet.

    Requests the subdomain from the broker, opens the assigned number of relay
    connections and keeps them up until interrupted.
    """
    config.HOST = host
    config.LOG_LEVEL = log_level
    configure_logging(log_level)

    try:
        options = TunnelOptions(
            port=port,
            subdomain=subdomain,
            host=host,
            local_alias=local_alias,
            local_https=local_https,
            local_cert=local_cert,
            local_key=local_key,
            local_ca=local_ca,
            allow_invalid_cert=allow_invalid_cert,
        )
    except ValidationError as e:
        for err in e.errors():
            print_error(err["msg"])
        raise typer.Exit(1)

    try:
        exit_code = asyncio.run(_run_tunnel(options, open_browser, print_requests))
    except AssignmentError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
        return

    if exit_code:
        raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
