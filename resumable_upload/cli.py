#!/usr/bin/env python3
"""
Resumable Upload Server CLI

Command-line interface for running the upload server and inspecting
transfers on disk.

Usage:
    upload-server serve                # Start the HTTP server
    upload-server list                 # List transfers
    upload-server status ID            # Show one transfer
    upload-server finalize ID          # Retry a failed finalization
    upload-server show-config          # Print the effective configuration
"""

import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.logging import RichHandler

from .config import load_config
from .service import TransferService
from .transfer import TransferError

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    if verbose:
        level = 'DEBUG'
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.option('--upload-dir', default=None, help='Directory holding transfers')
@click.option('--files-dir', default=None, help='Directory for finished files')
@click.pass_context
def cli(ctx, verbose, config_path, upload_dir, files_dir):
    """Resumable Upload Server - chunked uploads that survive disconnects."""
    config = load_config(Path(config_path) if config_path else None)

    if upload_dir:
        config.upload_dir = Path(upload_dir)
    if files_dir:
        config.files_dir = Path(files_dir)

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', default=None, type=int, help='Port to listen on')
@click.pass_context
def serve(ctx, host, port):
    """Start the upload server."""
    config = ctx.obj['config']
    if host:
        config.host = host
    if port:
        config.port = port

    from .api import run_api_server

    service = TransferService(config)

    console.print(Panel.fit(
        f"[bold green]Upload Server Starting[/bold green]\n\n"
        f"Address: [cyan]http://{config.host}:{config.port}/upload[/cyan]\n"
        f"Upload Dir: [blue]{service.store.upload_dir}[/blue]\n"
        f"Files Dir: [blue]{service.store.files_dir}[/blue]",
        title="Server Info"
    ))
    console.print(f"[dim]API docs at http://localhost:{config.port}/docs[/dim]\n")

    try:
        asyncio.run(run_api_server(
            service,
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        ))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")


@cli.command('list')
@click.pass_context
def list_transfers(ctx):
    """List transfers."""
    service = TransferService(ctx.obj['config'])

    transfers = asyncio.run(service.list_transfers())

    if not transfers:
        console.print("[yellow]No transfers[/yellow]")
        return

    table = Table(title="Transfers")
    table.add_column("ID", style="cyan")
    table.add_column("Received", justify="right", style="yellow")
    table.add_column("Size", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("File", style="green")

    for t in transfers:
        table.add_row(
            t.transfer_id,
            format_size(t.offset),
            format_size(t.declared_length),
            f"{t.progress_percent:.0f}%",
            t.final_name if t.is_finalized else "-",
        )

    console.print(table)


@cli.command()
@click.argument('transfer_id')
@click.pass_context
def status(ctx, transfer_id):
    """Show a transfer's status."""
    service = TransferService(ctx.obj['config'])

    try:
        info = asyncio.run(service.get_transfer_info(transfer_id))
    except TransferError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if info.is_finalized:
        state = f"[green]Saved as {info.final_name}[/green]"
    elif info.is_complete:
        state = "[red]Complete, not finalized[/red]"
    else:
        state = "[yellow]In progress[/yellow]"

    console.print(Panel.fit(
        f"[bold]Transfer {info.transfer_id}[/bold]\n\n"
        f"State: {state}\n"
        f"Received: [yellow]{info.offset:,}[/yellow] / {info.declared_length:,} bytes "
        f"({info.progress_percent:.1f}%)\n"
        f"Created: {format_time(info.created_at)}\n"
        f"Finalized: {format_time(info.finalized_at)}\n"
        f"Metadata: [dim]{info.client_metadata or '-'}[/dim]",
        title="Transfer Status"
    ))


@cli.command()
@click.argument('transfer_id')
@click.option('--name', '-n', default=None, help='Name for the finished file')
@click.pass_context
def finalize(ctx, transfer_id, name):
    """Retry moving a complete transfer to its final location."""
    service = TransferService(ctx.obj['config'])

    try:
        path = asyncio.run(service.finalize(transfer_id, name))
    except TransferError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Saved to: {path}[/green]")


@cli.command('show-config')
@click.pass_context
def show_config(ctx):
    """Print the effective configuration as JSON."""
    click.echo(json.dumps(ctx.obj["config"].to_dict(), indent=2))


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def format_time(timestamp: Optional[float]) -> str:
    """Format a unix timestamp, or '-' if unset."""
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime('%Y-%m-%d %H:%M:%S')


if __name__ == '__main__':
    cli()
