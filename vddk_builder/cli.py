"""Thin CLI wrapper for vddk_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from typing import Annotated

import typer
from rich.console import Console

from vddk_builder import __version__
from vddk_builder.config import get_settings, print_settings_json

app = typer.Typer(
    name="vddk-builder",
    help="VDDK Builder - build and push images from uploaded build contexts",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"vddk-builder version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Configure root logging for the service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """VDDK Builder - build and push images from uploaded build contexts."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Image:[/bold]")
    console.print(f"  Default image name:  {settings.image_name}")
    console.print(f"  Registry:            {settings.image_registry}")
    console.print(f"  Build recipe:        {settings.containerfile}")
    console.print()
    console.print("[bold]Server:[/bold]")
    console.print(f"  Port:                {settings.server_port}")
    console.print(f"  Certificate:         {settings.ca_public_key}")
    console.print(f"  Private key:         {settings.private_key}")
    console.print(f"  Upload directory:    {settings.upload_dir}")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print()
    console.print("[bold]Authorization:[/bold]")
    console.print(f"  Require auth:        {settings.require_auth}")
    console.print(f"  API server:          {settings.api_server}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Build timeout:       {settings.build_timeout}")
    console.print(f"  Push timeout:        {settings.push_timeout}")
    console.print(f"  Probe timeout:       {settings.probe_timeout}")


@app.command()
def serve(
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Listen port (default: SERVER_PORT)"),
    ] = None,
    host: Annotated[
        str,
        typer.Option("--host", help="Listen address"),
    ] = "0.0.0.0",
    no_tls: Annotated[
        bool,
        typer.Option("--no-tls", help="Serve plain HTTP (local testing only)"),
    ] = False,
) -> None:
    """Start the HTTPS server."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)

    ssl_options: dict[str, str] = {}
    if not no_tls:
        for path in (settings.ca_public_key, settings.private_key):
            if not path.is_file():
                err_console.print(f"[red]Error:[/red] TLS file not found: {path}")
                raise typer.Exit(code=1)
        ssl_options = {
            "ssl_certfile": str(settings.ca_public_key),
            "ssl_keyfile": str(settings.private_key),
        }

    listen_port = port or settings.server_port
    scheme = "http" if no_tls else "https"
    console.print(f"Starting {scheme.upper()} server on port {listen_port}")

    uvicorn.run(
        "web.app:app",
        host=host,
        port=listen_port,
        log_level=settings.log_level.lower(),
        **ssl_options,
    )


@app.command("check-image")
def check_image(
    image: Annotated[str, typer.Argument(help="Image name, optionally with :tag")],
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="REGISTRY_TOKEN", help="Registry bearer token"),
    ] = None,
) -> None:
    """Check whether an image exists in the configured registry.

    Exits 0 if it exists, 1 if not, 2 if the registry could not answer.
    """
    from vddk_builder.registry import (
        ProbeTransportError,
        ProbeUnexpectedStatus,
        RegistryProbe,
    )

    settings = get_settings()
    probe = RegistryProbe(
        settings.image_registry,
        verify_tls=settings.registry_verify_tls,
        timeout=settings.probe_timeout,
    )

    try:
        exists = probe.image_exists(image, token)
    except (ProbeTransportError, ProbeUnexpectedStatus) as e:
        err_console.print(f"[red]Error checking image:[/red] {e}")
        raise typer.Exit(code=2) from None

    if exists:
        console.print(f"Image {image} exists in the registry.")
    else:
        console.print(f"Image {image} not found in the registry.")
        raise typer.Exit(code=1)


__all__ = ["app"]
