"""
Command-line interface for the media server.

Provides the setup wizard, the HTTP server and a couple of inspection
commands using Click framework.
"""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt, Confirm
from rich.table import Table

from shared.config import ConfigError, load_config, save_config
from shared.constants import CLOUDFLARE_R2_ENDPOINT_TEMPLATE, DEFAULT_HOST, DEFAULT_PORT
from shared.models import ServerConfig, StorageProvider
from storage.provider_factory import StorageProviderFactory
from storage.storage_provider import StoreUnavailable

console = Console()


def _human_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _load_or_exit(local_path=None) -> ServerConfig:
    if local_path:
        return ServerConfig(provider=StorageProvider.LOCAL, base_path=str(local_path))
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)


def _connect_or_exit(config: ServerConfig):
    try:
        return StorageProviderFactory.connect(config)
    except StoreUnavailable as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def log_handler() -> RichHandler:
    # stdout is reserved for command output such as catalog --json
    return RichHandler(console=Console(stderr=True), rich_tracebacks=True)


local_option = click.option(
    '--local', 'local_path', type=click.Path(file_okay=False, path_type=Path),
    help='Serve a local directory instead of the configured bucket')


@click.group()
@click.version_option(version="1.0.0")
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
def cli(verbose):
    """
    🎵 Object Store Music Server

    Streams an audio library kept in Cloudflare R2 / S3 / a local folder.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[log_handler()],
    )


@cli.command()
def init():
    """
    Create the server configuration.

    Asks for the storage provider and its credentials, checks the
    connection and writes an encrypted config.json.
    """
    console.print(Panel.fit(
        "[bold cyan]🎵 Music Server Setup[/bold cyan]\n\n"
        "This wizard connects the server to the bucket holding your music.",
        border_style="cyan"
    ))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Option", style="cyan", width=8)
    table.add_column("Provider", style="green")
    table.add_row("[1]", StorageProviderFactory.get_provider_name(StorageProvider.CLOUDFLARE_R2))
    table.add_row("[2]", StorageProviderFactory.get_provider_name(StorageProvider.GENERIC_S3))
    table.add_row("[3]", StorageProviderFactory.get_provider_name(StorageProvider.LOCAL))
    console.print(table)

    choice = Prompt.ask("Select provider", choices=["1", "2", "3"], default="1")
    provider = {
        "1": StorageProvider.CLOUDFLARE_R2,
        "2": StorageProvider.GENERIC_S3,
        "3": StorageProvider.LOCAL,
    }[choice]

    if provider == StorageProvider.LOCAL:
        base_path = Prompt.ask("Music directory")
        config = ServerConfig(provider=provider, base_path=str(Path(base_path).expanduser()))
    else:
        if provider == StorageProvider.CLOUDFLARE_R2:
            account_id = Prompt.ask("Cloudflare account ID")
            endpoint = CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=account_id)
            region = None
        else:
            endpoint = Prompt.ask("Endpoint URL (blank for AWS)", default="")
            region = Prompt.ask("Region", default="us-east-1")
        config = ServerConfig(
            provider=provider,
            endpoint=endpoint,
            region=region,
            bucket=Prompt.ask("Bucket name"),
            access_key_id=Prompt.ask("Access key ID"),
            secret_access_key=Prompt.ask("Secret access key", password=True),
        )

    config.host = Prompt.ask("Listen host", default=DEFAULT_HOST)
    config.port = int(Prompt.ask("Listen port", default=str(DEFAULT_PORT)))

    with console.status("[bold green]Testing connection...[/bold green]"):
        try:
            StorageProviderFactory.connect(config)
            connected = True
        except StoreUnavailable as e:
            console.print(f"[red]✗ {e}[/red]")
            connected = False

    if connected:
        console.print("[green]✓ Connection successful[/green]")
    elif not Confirm.ask("Save configuration anyway?", default=False):
        sys.exit(1)

    path = save_config(config)
    console.print(f"\n[green]✓[/green] Configuration saved to [cyan]{path}[/cyan]")


@cli.command()
@click.option('--host', default=None, help='Interface to listen on')
@click.option('--port', type=int, default=None, help='Port to listen on')
@local_option
def serve(host, port, local_path):
    """Run the HTTP server."""
    from gevent.pywsgi import WSGIServer
    from shared.api import create_app

    config = _load_or_exit(local_path)
    host = host or config.host
    port = port or config.port

    try:
        app = create_app(config)
    except StoreUnavailable as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold]Provider:[/bold] {StorageProviderFactory.get_provider_name(config.provider)}\n"
        f"[bold]Library:[/bold]  http://localhost:{port}/list\n"
        f"[bold]API:[/bold]      http://localhost:{port}/api/files",
        title="🎵 Music Server Online", border_style="green"
    ))

    server = WSGIServer((host, port), app, log=logging.getLogger("shared.access"))
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        server.stop()


@cli.command()
@click.option('--origin', default=f"http://localhost:{DEFAULT_PORT}", show_default=True,
              help='Origin used in stream URLs')
@click.option('--json', 'as_json', is_flag=True, help='Print JSON instead of a table')
@local_option
def catalog(origin, as_json, local_path):
    """List the tracks the server would publish."""
    from media.catalog import CatalogBuilder

    config = _load_or_exit(local_path)
    storage = _connect_or_exit(config)
    builder = CatalogBuilder(
        storage,
        workers=config.catalog_workers,
        prefix_bytes=config.prefix_bytes,
        catalog_timeout=config.catalog_timeout,
    )

    try:
        if as_json:
            records = builder.build_catalog(origin)
        else:
            with console.status("[bold green]Reading bucket...[/bold green]"):
                records = builder.build_catalog(origin)
    except StoreUnavailable as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False))
        return

    table = Table(title=f"{len(records)} tracks", header_style="bold magenta")
    table.add_column("Title", style="green")
    table.add_column("Artist", style="cyan")
    table.add_column("Album")
    table.add_column("Size", justify="right")
    table.add_column("Key", style="dim")
    for record in records:
        table.add_row(record.title, record.artist, record.album, _human_size(record.size), record.id)
    console.print(table)


@cli.command()
@click.argument('key')
@click.option('-o', '--output', type=click.Path(dir_okay=False, path_type=Path), required=True,
              help='File to write the image to')
@local_option
def cover(key, output, local_path):
    """Resolve the cover art for KEY and save it."""
    from media.covers import CoverResolver

    config = _load_or_exit(local_path)
    storage = _connect_or_exit(config)
    image = CoverResolver(storage).resolve_cover(key)

    output.write_bytes(image.data)
    source = "placeholder" if image.is_placeholder else image.source_key
    console.print(f"[green]✓[/green] Wrote {len(image.data)} bytes ({image.content_type}) from [cyan]{source}[/cyan] to {output}")


def main():
    cli()


if __name__ == '__main__':
    main()
