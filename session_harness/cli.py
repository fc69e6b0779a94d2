"""CLI interface for Session Harness.

Commands:
- init: Write .session-harness/config.json
- config show: Show the effective configuration
- login: Programmatic login against the configured app
- request: Issue a harness request (optionally without following redirects)
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import httpx
import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import (
    LOGIN_ENCODINGS,
    HarnessConfig,
    get_config_path,
    load_harness_config,
    save_harness_config,
)
from .errors import AuthError, ConfigError, HarnessError
from .formatting import format_body
from .scenario import Harness


console = Console()


def _load_config(ctx) -> HarnessConfig:
    config = load_harness_config(ctx.obj["project_path"])
    if ctx.obj.get("base_url"):
        config.base_url = ctx.obj["base_url"].rstrip("/")
    if ctx.obj.get("verbose"):
        config.verbose = True
    try:
        return config.validate()
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        sys.exit(1)


def _harness(ctx, config: HarnessConfig) -> Harness:
    """Harness for a CLI command.

    Programs embedding the CLI may pass ``obj={"transport_factory": ...}``
    to route scenarios through their own httpx transport.
    """
    return Harness(config, transport_factory=ctx.obj.get("transport_factory"))


@click.group()
@click.version_option(version=__version__, prog_name="session-harness")
@click.option("--path", "-p", default=".", help="Project path (default: current directory)")
@click.option("--base-url", default=None, help="Override the configured base URL")
@click.option("--verbose", "-v", is_flag=True, help="Echo the command log")
@click.pass_context
def main(ctx, path: str, base_url: Optional[str], verbose: bool):
    """Session Harness - authenticated-session test harness.

    Log in without the UI, stub and record network calls, and wait
    for eventually-consistent state.
    """
    ctx.ensure_object(dict)
    ctx.obj["project_path"] = str(Path(path).resolve())
    ctx.obj["base_url"] = base_url
    ctx.obj["verbose"] = verbose


# --- Init Command ---


@main.command()
@click.option(
    "--non-interactive",
    "-y",
    is_flag=True,
    help="Write default values without prompting",
)
@click.pass_context
def init(ctx, non_interactive: bool):
    """Create .session-harness/config.json for this project."""
    project_path = ctx.obj["project_path"]
    config_file = get_config_path(project_path)

    if config_file.exists() and not non_interactive:
        if not click.confirm("Config already exists. Overwrite?", default=False):
            console.print("[yellow]Aborted.[/yellow]")
            return

    config = HarnessConfig()
    if ctx.obj.get("base_url"):
        config.base_url = ctx.obj["base_url"].rstrip("/")

    if not non_interactive:
        try:
            _ask_questions(config)
        except KeyboardInterrupt:
            console.print("\n[yellow]Initialization cancelled.[/yellow]")
            sys.exit(1)

    try:
        config.validate()
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        sys.exit(1)

    written = save_harness_config(config, project_path)
    console.print(f"[green]Wrote {written}[/green]")


def _ask_questions(config: HarnessConfig) -> None:
    """Fill config interactively."""
    config.base_url = questionary.text(
        "Application base URL:",
        default=config.base_url,
    ).ask().rstrip("/")

    config.login_path = questionary.text(
        "Login endpoint path:",
        default=config.login_path,
    ).ask()

    config.session_cookie = questionary.text(
        "Session cookie name:",
        default=config.session_cookie,
    ).ask()

    config.login_encoding = questionary.select(
        "Login body encoding:",
        choices=list(LOGIN_ENCODINGS),
        default=config.login_encoding,
    ).ask()

    config.username = questionary.text(
        "Default username:",
        default=config.username,
    ).ask()

    config.password = questionary.password(
        "Default password:",
        default=config.password,
    ).ask()

    config.verbose = questionary.confirm(
        "Echo the command log while tests run?",
        default=config.verbose,
    ).ask()


# --- Config Commands ---


@main.group()
def config():
    """Inspect harness configuration."""
    pass


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def config_show(ctx, as_json: bool):
    """Show the effective configuration."""
    cfg = _load_config(ctx)
    data = cfg.to_dict()
    data["session"]["password"] = "***"

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="Session Harness Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("base_url", data["base_url"])
    for section in ("session", "waits", "browser", "output"):
        for key, value in data[section].items():
            table.add_row(f"{section}.{key}", str(value))

    console.print(table)


# --- Login Command ---


@main.command()
@click.option("--username", "-u", default=None, help="Username (default from config)")
@click.option("--password", "-P", default=None, help="Password (default from config)")
@click.option(
    "--encoding",
    type=click.Choice(LOGIN_ENCODINGS),
    default=None,
    help="Login body encoding (default from config)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def login(ctx, username: Optional[str], password: Optional[str], encoding: Optional[str], as_json: bool):
    """Log in programmatically and print the session token."""
    cfg = _load_config(ctx)

    async def _login():
        async with _harness(ctx, cfg).scenario("cli-login") as scenario:
            return await scenario.authenticate(username, password, encoding)

    try:
        token = asyncio.run(_login())
    except AuthError as e:
        if as_json:
            click.echo(json.dumps({"error": e.reason, "status": e.status, "body": e.body}, default=str))
        else:
            console.print(f"[red]Login failed ({e.status}): {e.reason}[/red]")
            console.print(f"[dim]{escape(format_body(e.body, 200))}[/dim]")
        sys.exit(1)
    except (HarnessError, httpx.HTTPError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({
            "name": token.name,
            "kind": token.kind,
            "value": token.value,
            "issued_at": token.issued_at.isoformat(),
        }))
        return

    console.print(f"[green]Authenticated[/green] against {cfg.base_url}")
    console.print(f"  {token.kind}: {token.name}={token.value}")


# --- Request Command ---


@main.command()
@click.argument("path")
@click.option("--method", "-X", default="GET", help="HTTP method")
@click.option("--no-follow", is_flag=True, help="Do not follow redirects")
@click.option("--login", "login_first", is_flag=True, help="Authenticate before the request")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def request(ctx, path: str, method: str, no_follow: bool, login_first: bool, as_json: bool):
    """Issue a request through the harness and print the outcome."""
    cfg = _load_config(ctx)

    async def _request():
        async with _harness(ctx, cfg).scenario("cli-request") as scenario:
            if login_first:
                await scenario.authenticate()
            return await scenario.request(path, method=method, follow_redirects=not no_follow)

    try:
        response = asyncio.run(_request())
    except AuthError as e:
        console.print(f"[red]Login failed ({e.status}): {e.reason}[/red]")
        sys.exit(1)
    except (HarnessError, httpx.HTTPError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({
            "status": response.status,
            "url": response.url,
            "redirected_to_url": response.redirected_to_url,
            "body": response.body,
        }, default=str))
        return

    color = "green" if response.status < 400 else "red"
    console.print(f"[{color}]{response.status}[/{color}] {method.upper()} {response.url}")
    if response.redirected_to_url:
        console.print(f"  redirected to: {response.redirected_to_url}")
    console.print(f"[dim]{escape(format_body(response.body, 200))}[/dim]")


if __name__ == "__main__":
    main()
