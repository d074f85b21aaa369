from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import typer

from guidegate.apps.cli.common import open_runtime
from guidegate.services.admission import InvalidInputError, StoreUnavailableError

app = typer.Typer(help="Inspect and prune device bindings")

_DAY_MS = 24 * 60 * 60 * 1000


def _max_age_ms(days: int | None) -> int | None:
    if days is None:
        return None
    if days < 0:
        raise typer.BadParameter("--max-age-days must not be negative")
    return days * _DAY_MS


def _fail(message: str) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(1)


@app.command("list")
def devices_list(
    uid: str,
    as_json: bool = typer.Option(False, "--json", help="Print the raw payload"),
    config: Path = typer.Option(None, "--config", "-c"),
):
    """Show the devices bound to UID (fingerprints masked)."""
    with open_runtime(config) as runtime:
        try:
            payload = runtime.controller.inspect(uid).as_payload()
        except (InvalidInputError, StoreUnavailableError) as exc:
            _fail(f"cannot read bindings: {exc}")
    if as_json:
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return
    typer.echo(f"{payload['uid']}: {payload['deviceCount']} device(s)")
    for device in payload["devices"]:
        typer.echo(
            f"  {device['fingerprint']:<12} first={device['firstAccess']} "
            f"last={device['lastAccess']} count={device['accessCount']}"
        )


@app.command("cleanup")
def devices_cleanup(
    uid: str,
    max_age_days: int = typer.Option(None, "--max-age-days", help="Defaults to retention_days"),
    config: Path = typer.Option(None, "--config", "-c"),
):
    """Remove bindings of UID not seen within the retention window."""
    max_age = _max_age_ms(max_age_days)
    with open_runtime(config) as runtime:
        try:
            result = runtime.sweeper.cleanup(uid, max_age)
        except (InvalidInputError, StoreUnavailableError) as exc:
            _fail(f"cleanup failed: {exc}")
    typer.echo(json.dumps(result.as_payload()))


@app.command("sweep")
def devices_sweep(
    max_age_days: int = typer.Option(None, "--max-age-days", help="Defaults to retention_days"),
    config: Path = typer.Option(None, "--config", "-c"),
):
    """Prune stale bindings across every stored tag."""
    max_age = _max_age_ms(max_age_days)
    with open_runtime(config) as runtime:
        report = runtime.sweeper.sweep(max_age)
    typer.echo(json.dumps(report.as_payload()))
    if report.failed:
        raise typer.Exit(1)
