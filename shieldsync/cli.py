from __future__ import annotations

import json
import logging
import threading
from typing import Optional

import typer
from rich import print
from rich.markup import escape

from . import __version__, messages
from .client import ControllerUnavailableError, MessageClient
from .config import ShieldSyncConfig, load_config
from .controller import run_controller
from .counters import Counters
from .popup import PopupSession, ReplyError, block_percentage, format_number, mode_description
from .settings import InvalidSettingsError, Settings, SettingsStore
from .storage import StoreUnavailableError, sync_store

app = typer.Typer(help="shieldsync: shared scan counters and settings for the content shield")
settings_app = typer.Typer(help="Show or change shield settings")
app.add_typer(settings_app, name="settings")


def _config(db_path: str | None = None) -> ShieldSyncConfig:
    cfg = load_config()
    if db_path:
        cfg.db_path = db_path
    return cfg


def _client(cfg: ShieldSyncConfig) -> MessageClient:
    return MessageClient(cfg.controller_url, timeout_s=cfg.client_timeout_s)


def _send_or_exit(client: MessageClient, message: messages.Message) -> dict:
    try:
        reply = client.send(message)
    except ControllerUnavailableError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    if "error" in reply:
        print(f"[red]Controller error: {escape(str(reply['error']))}[/red]")
        raise typer.Exit(code=1)
    return reply


def _print_stats(counters: Counters) -> None:
    print("[bold]Today[/bold]")
    print(f"- Scanned: {format_number(counters.scanned)}")
    print(f"- Blocked: {format_number(counters.blocked)}")
    print(f"- Block rate: {block_percentage(counters)}%")


def _print_settings(settings: Settings) -> None:
    state = "[green]enabled[/green]" if settings.enabled else "[yellow]disabled[/yellow]"
    print(f"[bold]Shield[/bold] {state}")
    print(f"- Mode: {settings.mode} ({mode_description(settings.mode)})")
    print(f"- Threshold: {round(settings.threshold * 100)}%")
    print(f"- Whitelisted accounts: {len(settings.whitelisted_accounts)}")


@app.command()
def version() -> None:
    """Print the installed version."""

    print(__version__)


@app.command()
def controller(
    host: str = typer.Option(None, help="Bind address"),
    port: int = typer.Option(None, help="Bind port"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr"),
) -> None:
    """Run the background controller."""

    if verbose:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
    cfg = _config(db_path)
    if host:
        cfg.controller_host = host
    if port:
        cfg.controller_port = port
    print(f"[green]Controller running at {cfg.controller_url}[/green]")
    try:
        run_controller(cfg)
    except KeyboardInterrupt:
        print("[yellow]Controller stopped[/yellow]")
    except OSError as exc:
        print(f"[red]Failed to start controller: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


@app.command()
def report(
    scanned: int = typer.Argument(..., min=0, help="Items scanned since the last report"),
    blocked: int = typer.Argument(..., min=0, help="Items blocked since the last report"),
) -> None:
    """Report scan results to the controller."""

    _send_or_exit(_client(_config()), messages.update_stats(scanned, blocked))
    print(f"Reported {scanned} scanned, {blocked} blocked")


@app.command()
def stats(as_json: bool = typer.Option(False, "--json", help="Print raw JSON")) -> None:
    """Show today's counters."""

    reply = _send_or_exit(_client(_config()), messages.get_stats())
    raw = reply.get("stats") or {}
    if as_json:
        typer.echo(json.dumps(raw, indent=2))
        return
    _print_stats(Counters.from_dict(raw))


@settings_app.command("show")
def settings_show(as_json: bool = typer.Option(False, "--json", help="Print raw JSON")) -> None:
    """Show the current settings."""

    reply = _send_or_exit(_client(_config()), messages.get_settings())
    raw = reply.get("settings") or {}
    if as_json:
        typer.echo(json.dumps(raw, indent=2))
        return
    try:
        _print_settings(Settings.from_dict(raw))
    except InvalidSettingsError as exc:
        print(f"[red]Stored settings are invalid: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


@settings_app.command("set")
def settings_set(
    enabled: Optional[bool] = typer.Option(None, "--enabled/--disabled", help="Toggle the shield"),
    mode: Optional[str] = typer.Option(None, help="block or flag"),
    threshold: Optional[float] = typer.Option(None, help="Confidence threshold between 0 and 1"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Change settings (written back as a whole object)."""

    cfg = _config(db_path)
    store = SettingsStore(sync_store(cfg.db_path))
    session = PopupSession(_client(cfg), store, lambda _settings, _counters: None, config=cfg)
    try:
        session.settings = store.read()
        if enabled is not None:
            session.set_enabled(enabled)
        if mode is not None:
            session.set_mode(mode)
        if threshold is not None:
            session.set_threshold(threshold)
    except InvalidSettingsError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    except StoreUnavailableError as exc:
        print(f"[red]Settings store unavailable: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    _print_settings(session.settings)


@app.command()
def watch(
    interval_ms: int = typer.Option(None, help="Refresh interval in milliseconds"),
) -> None:
    """Follow the counters, redrawing whenever they change."""

    cfg = _config()
    if interval_ms:
        cfg.refresh_interval_ms = interval_ms
    store = SettingsStore(sync_store(cfg.db_path))

    def render(settings: Settings, counters: Counters) -> None:
        _print_settings(settings)
        _print_stats(counters)

    session = PopupSession(
        _client(cfg),
        store,
        render,
        config=cfg,
        render_stats=_print_stats,
    )
    try:
        session.open()
    except (ControllerUnavailableError, ReplyError) as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        session.close()


def main() -> None:
    app()
