from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from apicontract.config import Settings, load_settings
from apicontract.diff.engine import DiffResult
from apicontract.errors import ApiContractError
from apicontract.export.openapi import dump_openapi, to_openapi
from apicontract.logging import CLI, configure_logging, get_logger
from apicontract.orchestrator.pipeline import (
    load_app,
    load_contract_file,
    open_store,
    run_compare,
    run_generate,
    run_validate,
)
from apicontract.store.cache import ContractCache

app = typer.Typer(no_args_is_help=True, add_completion=False)

versions_app = typer.Typer(no_args_is_help=True)
app.add_typer(versions_app, name="versions")

routes_app = typer.Typer(no_args_is_help=True)
app.add_typer(routes_app, name="routes")

export_app = typer.Typer(no_args_is_help=True)
app.add_typer(export_app, name="export")

console = Console()
logger = get_logger(__name__)

# one cache per CLI process
_cache = ContractCache()
_state: dict[str, Optional[str]] = {"config": None, "base_dir": None}


@app.callback()
def main_callback(
    config: Optional[str] = typer.Option(None, "--config", help="YAML settings file"),
    base_dir: Optional[str] = typer.Option(None, "--base-dir", help="Directory holding api.json and versions/"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    configure_logging(logging.DEBUG if verbose else logging.INFO)
    _state["config"] = config
    _state["base_dir"] = base_dir


def _settings() -> Settings:
    try:
        return load_settings(_state["config"], base_dir=_state["base_dir"])
    except ApiContractError as e:
        _fail(str(e))


def _fail(message: str) -> None:
    console.print(f"[bold red]error[/bold red]: {message}")
    raise typer.Exit(code=1)


def _print_diff(result: DiffResult) -> None:
    s = result.summary()
    console.print(f"Added: {s['added']}  Removed: {s['removed']}  Modified: {s['modified']}")
    if result.is_empty:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("CHANGE", no_wrap=True)
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("FIELD")
    table.add_column("BEFORE")
    table.add_column("AFTER")

    for path, method in result.added:
        table.add_row("[green]added[/green]", method, path, "", "", "")
    for path, method in result.removed:
        table.add_row("[red]removed[/red]", method, path, "", "", "")
    for entry in result.modified:
        for c in entry.field_changes:
            table.add_row(
                "[yellow]modified[/yellow]",
                entry.method,
                entry.path,
                c.field_path,
                json.dumps(c.before),
                json.dumps(c.after),
            )

    console.print(table)


@app.command()
def generate(
    app_target: str = typer.Option(..., "--app", help="Application to introspect, as module:attr"),
    strict: bool = typer.Option(False, help="Exit non-zero when any route reported an error"),
    snapshot: bool = typer.Option(False, help="Archive the current contract before overwriting it"),
) -> None:
    settings = _settings()
    try:
        app_spec = load_app(app_target)
        result = run_generate(app_spec, settings, _cache, strict=strict, snapshot=snapshot)
    except ApiContractError as e:
        _fail(str(e))

    console.print(f"[bold green]apicontract[/bold green] generate: {app_target}")
    console.print(f"Routes seen: {result.routes_seen}")
    console.print(f"Paths: {result.path_count}  Entries: {result.entry_count}")
    if result.snapshot is not None:
        console.print(f"Previous contract archived as: {result.snapshot.version_id}")
    console.print(f"Contract: {result.contract_path}")

    if result.errors:
        console.print("")
        console.print(f"[bold yellow]Errors: {len(result.errors)}[/bold yellow]")
        for r in result.errors[:50]:
            console.print(f"  {r.route or '-'}  {r.code}  {r.message}")
        if len(result.errors) > 50:
            console.print(f"  ... and {len(result.errors) - 50} more")

    if strict and result.errors:
        raise typer.Exit(code=1)


@app.command()
def validate(
    app_target: str = typer.Option(..., "--app", help="Application to introspect, as module:attr"),
) -> None:
    settings = _settings()
    try:
        app_spec = load_app(app_target)
        result = run_validate(app_spec, settings, _cache)
    except ApiContractError as e:
        _fail(str(e))

    if result is None:
        _fail(f"No stored contract at {settings.contract_path}. Run 'apicontract generate' first.")

    if result.is_empty:
        console.print("[bold green]Contract is in sync with the routes.[/bold green]")
        return

    console.print("[bold yellow]Contract is out of date.[/bold yellow]")
    _print_diff(result)
    raise typer.Exit(code=1)


@app.command()
def compare(
    before: str = typer.Argument(..., help="Older contract file"),
    after: str = typer.Argument(..., help="Newer contract file"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")

    try:
        result = run_compare(Path(before).expanduser(), Path(after).expanduser(), _cache)
    except ApiContractError as e:
        _fail(str(e))

    if fmt == "json":
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    _print_diff(result)


@versions_app.command("list")
def versions_list() -> None:
    settings = _settings()
    store = open_store(settings, _cache)
    versions = store.list_versions()

    if not versions:
        console.print("No versions found.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("VERSION", no_wrap=True)
    table.add_column("DATE", no_wrap=True)
    table.add_column("SIZE", justify="right")
    for v in versions:
        table.add_row(v.version_id, v.display_date, f"{v.size} B")
    console.print(table)


@versions_app.command("restore")
def versions_restore(
    version_id: str = typer.Argument(..., help="Version filename or timestamp (YYYY-MM-DD-HHMMSS)"),
) -> None:
    settings = _settings()
    store = open_store(settings, _cache)
    try:
        backup = store.restore(version_id)
    except ApiContractError as e:
        _fail(str(e))

    if backup is not None:
        console.print(f"Current contract backed up as: {backup.version_id}")
    console.print(f"[bold green]Restored[/bold green] {version_id} -> {store.contract_path}")
    logger.debug(f"{CLI} restore {version_id} done")


def _stored_contract(settings: Settings):
    try:
        return load_contract_file(settings.contract_path, _cache)
    except ApiContractError as e:
        _fail(str(e))


@routes_app.command("list")
def routes_list(
    method: Optional[str] = typer.Option(None, help="Filter by HTTP method (GET/POST/...)"),
    path_contains: Optional[str] = typer.Option(None, help="Substring match on path"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    settings = _settings()
    contract = _stored_contract(settings)

    rows = []
    for path, methods in contract.items():
        if path_contains and path_contains not in path:
            continue
        for m, entry in methods.items():
            if method and m != method.upper():
                continue
            rows.append(
                {
                    "method": m,
                    "path": path,
                    "auth": entry.auth.type,
                    "version": entry.api_version or "",
                    "description": entry.description,
                }
            )

    if format.lower() == "json":
        typer.echo(json.dumps(rows, indent=2))
        return

    console.print(f"[bold]Contract:[/bold] {settings.contract_path}")
    console.print(f"[bold]Routes:[/bold] {len(rows)}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("AUTH", no_wrap=True)
    table.add_column("VERSION", no_wrap=True)
    table.add_column("DESCRIPTION")
    for r in rows:
        table.add_row(r["method"], r["path"], r["auth"], r["version"], r["description"])
    console.print(table)


@routes_app.command("describe")
def routes_describe(
    path: str = typer.Argument(..., help="Exact contract path, e.g. /api/v1/posts/{post}"),
    method: Optional[str] = typer.Option(None, help="Only this HTTP method"),
) -> None:
    settings = _settings()
    contract = _stored_contract(settings)

    methods = contract.get(path)
    if methods is None:
        _fail(f"Path not in contract: {path}")

    payload = {
        m: entry.to_dict()
        for m, entry in methods.items()
        if method is None or m == method.upper()
    }
    if not payload:
        _fail(f"Method {method} not documented for {path}")
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@export_app.command("openapi")
def export_openapi(
    format: str = typer.Option("json", help="Export format: json|yaml"),
    out: Optional[str] = typer.Option(None, help="Output path (default: print to stdout)"),
    title: str = typer.Option("API", help="info.title"),
    api_version: str = typer.Option("1.0.0", "--api-version", help="info.version"),
    server_url: Optional[str] = typer.Option(None, help="servers[0].url"),
) -> None:
    fmt = format.lower().strip()
    if fmt not in ("json", "yaml"):
        raise typer.BadParameter("format must be one of: json, yaml")

    settings = _settings()
    contract = _stored_contract(settings)
    text = dump_openapi(to_openapi(contract, title=title, version=api_version, server_url=server_url), fmt)

    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] {fmt} OpenAPI document to: {out_path}")
    else:
        typer.echo(text, nl=False)


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
