"""
AuthProxy CLI - command line interface for the authentication API.

Sessions are not persisted between invocations: commands that need one sign
in first with the user key from ``--user-key`` or ``AUTH_PROXY_USER_KEY``.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .client import AuthProxyClient
from .config import Config, get_config, set_config
from .models import ApiResponse, AuthOptions
from .utils import format_time

console = Console()

DEFAULT_OPTIONS_FILE = "authProxyOptions.json"


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


def _fail(response: ApiResponse) -> None:
    message = response.error.message if response.error else response.result
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


async def _connected_client(ctx) -> AuthProxyClient:
    client = AuthProxyClient(ctx.obj['user_key'], ctx.obj['base_url'])
    if not await client.connect():
        await client.close()
        console.print("[red]✗ Sign-in failed. Check your user key and AUTH_API_URL.[/red]")
        sys.exit(1)
    return client


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--base-url', envvar='AUTH_API_URL', help='API base URL')
@click.option('--user-key', envvar='AUTH_PROXY_USER_KEY', help='User key for sign-in')
@click.version_option(__version__)
@click.pass_context
def main(ctx, verbose, base_url, user_key):
    """🔑 AuthProxy - passwordless authentication client"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['base_url'] = base_url
    ctx.obj['user_key'] = user_key
    setup_logging(verbose)
    set_config(Config.from_env())


@main.command()
@click.pass_context
def login(ctx):
    """Sign in with the user key and show the session."""

    async def _login():
        async with AuthProxyClient(ctx.obj['user_key'], ctx.obj['base_url']) as client:
            response = await client.sign_in_user_key(ctx.obj['user_key'] or "")
            if not response.ok:
                _fail(response)
            console.print(f"[bold green]✓ {response.result}[/bold green]")
            console.print(f"   Device ID: [cyan]{client.device_id}[/cyan]")

    run_async(_login())


@main.command('reset-password')
@click.argument('phone')
@click.pass_context
def reset_password(ctx, phone: str):
    """Request a reset code for PHONE."""

    async def _reset():
        async with AuthProxyClient(base_url=ctx.obj['base_url']) as client:
            response = await client.reset_password(phone)
            if not response.ok:
                _fail(response)
            console.print(f"[green]✓ {response.result}[/green] - check your email for the code")

    run_async(_reset())


@main.command('init-key')
@click.argument('code')
@click.option('--options-file', type=click.Path(), default=DEFAULT_OPTIONS_FILE,
              help='Where to save the registration options')
@click.pass_context
def init_key(ctx, code: str, options_file: str):
    """Start key registration with the emailed CODE."""

    async def _init():
        async with AuthProxyClient(base_url=ctx.obj['base_url']) as client:
            response = await client.initialize_new_key(code)
            if not response.ok:
                _fail(response)
            options: AuthOptions = response.result
            Path(options_file).write_text(options.model_dump_json(indent=2))
            console.print(f"[green]✓ Registration options saved to {options_file}[/green]")
            console.print("  Next: authproxy create-key <OTP>")

    run_async(_init())


@main.command('create-key')
@click.argument('otp')
@click.option('--options-file', type=click.Path(exists=True), default=DEFAULT_OPTIONS_FILE,
              help='Registration options saved by init-key')
@click.pass_context
def create_key(ctx, otp: str, options_file: str):
    """Create and register a new user key using OTP."""
    options = AuthOptions.model_validate_json(Path(options_file).read_text())

    async def _create():
        async with AuthProxyClient(base_url=ctx.obj['base_url']) as client:
            response = await client.create_user_key(otp, options)
            if not response.ok:
                _fail(response)
            Path(options_file).unlink(missing_ok=True)
            console.print("\n[bold green]✓ User key created[/bold green]\n")
            console.print(f"  [cyan]{response.result}[/cyan]\n")
            console.print("[yellow]Store this key safely. It is not saved anywhere.[/yellow]")

    run_async(_create())


@main.command()
@click.pass_context
def info(ctx):
    """Show server info."""

    async def _info():
        client = await _connected_client(ctx)
        try:
            response = await client.get_info()
            if not response.ok:
                _fail(response)
            table = Table(show_header=False, box=None)
            table.add_column("Key", style="dim")
            table.add_column("Value")
            for key, value in response.result.model_dump().items():
                table.add_row(key, str(value))
            console.print(table)
        finally:
            await client.close()

    run_async(_info())


@main.command('login-log')
@click.pass_context
def login_log(ctx):
    """Show recent login operations."""

    async def _log():
        client = await _connected_client(ctx)
        try:
            response = await client.get_login_log()
            if not response.ok:
                _fail(response)
            table = Table(title="Login log")
            table.add_column("Time")
            table.add_column("IP")
            table.add_column("Device")
            table.add_column("Result")
            for entry in response.result:
                when = format_time(entry.date) if entry.date else "-"
                table.add_row(when, entry.ip or "-", entry.device or "-", entry.result or "-")
            console.print(table)
        finally:
            await client.close()

    run_async(_log())


@main.command()
@click.option('--current', is_flag=True, help='Only the current session')
@click.option('--close', 'close_id', type=int, help='Close the session with this id')
@click.pass_context
def sessions(ctx, current: bool, close_id: Optional[int]):
    """List or close sessions."""

    async def _sessions():
        client = await _connected_client(ctx)
        try:
            if close_id is not None:
                response = await client.close_sessions(close_id)
                if response.error:
                    _fail(response)
                console.print(f"[green]✓ Session {close_id} closed[/green]")
                return

            response = await client.get_sessions(current)
            if not response.ok:
                _fail(response)
            table = Table(title="Sessions")
            table.add_column("ID")
            table.add_column("Device")
            table.add_column("IP")
            for session in response.result:
                marker = " [green](current)[/green]" if session.current else ""
                table.add_row(f"{session.id}{marker}", session.device or "-", session.ip or "-")
            console.print(table)
        finally:
            await client.close()

    run_async(_sessions())


@main.command()
@click.option('--remove', 'remove_id', type=int, help='Remove the key with this id')
@click.pass_context
def keys(ctx, remove_id: Optional[int]):
    """List or remove registered user keys."""

    async def _keys():
        client = await _connected_client(ctx)
        try:
            if remove_id is not None:
                response = await client.remove_key(remove_id)
                if response.error:
                    _fail(response)
                console.print(f"[green]✓ Key {remove_id} removed[/green]")
                return

            response = await client.get_user_keys()
            if not response.ok:
                _fail(response)
            table = Table(title="User keys")
            table.add_column("ID")
            table.add_column("Public key")
            for key in response.result:
                table.add_row(str(key.id), key.public_key or "-")
            console.print(table)
        finally:
            await client.close()

    run_async(_keys())


@main.command()
@click.pass_context
def listen(ctx):
    """Print pushed events until interrupted."""

    async def _listen():
        client = await _connected_client(ctx)
        try:
            if not await client.subscribe():
                console.print("[red]✗ Could not subscribe[/red]")
                sys.exit(1)
            console.print("[dim]Listening for events, press Ctrl+C to stop[/dim]")
            async for message in client.messages():
                if isinstance(message, (dict, list)):
                    console.print_json(json.dumps(message))
                else:
                    console.print(str(message))
        finally:
            await client.close()

    try:
        run_async(_listen())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


@main.command()
@click.pass_context
def logout(ctx):
    """Sign in and close that session on the server."""

    async def _logout():
        client = await _connected_client(ctx)
        try:
            response = await client.logout()
            if not response.ok:
                _fail(response)
            console.print(f"[green]✓ {response.result}[/green]")
        finally:
            await client.close()

    run_async(_logout())


@main.command('device-id')
def device_id():
    """Show this installation's device id."""

    registry = get_config().device_registry
    console.print(f"[cyan]{registry.get_or_create()}[/cyan]")
    console.print(f"[dim]{registry.path}[/dim]")


if __name__ == "__main__":
    main()
