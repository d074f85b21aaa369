"""Tag provisioning: derive validation codes and write printable tag batches."""

from __future__ import annotations

import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import typer

from guidegate.apps.cli.common import load_cli_settings
from guidegate.config import const
from guidegate.services.admission import (
    InvalidInputError,
    TagCredential,
    ValidationCodeCodec,
    build_tag_url,
    parse_tag_url,
)

app = typer.Typer(help="Validation codes and tag batches")

_log = logging.getLogger("guidegate.cli.tags")

_ENCODINGS = ("s", "query")


def _codec(config: Path | None) -> ValidationCodeCodec:
    settings = load_cli_settings(config)
    try:
        return ValidationCodeCodec(settings.secret, settings.code_strategy)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))


def _read_last_number(out_dir: Path) -> int:
    marker = out_dir / const.LAST_NUMBER_FILE
    if not marker.exists():
        return 0
    text = marker.read_text(encoding="utf-8").strip()
    try:
        return int(text)
    except ValueError:
        _log.warning("tags: ignoring unreadable %s", marker, extra={"content": text[:32]})
        return 0


def _write_batch(out_dir: Path, rows: list[dict[str, object]], meta: dict[str, object]) -> tuple[Path, Path]:
    csv_path = out_dir / const.TAGS_CSV_NAME
    json_path = out_dir / const.TAGS_JSON_NAME
    with open(csv_path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["UID", "Number", "Validation Code", "NFC URL"])
        for row in rows:
            writer.writerow([row["uid"], row["number"], row["validationCode"], row["nfcUrl"]])
    json_path.write_text(json.dumps({**meta, "tags": rows}, ensure_ascii=False, indent=2), encoding="utf-8")
    return csv_path, json_path


@app.command("code")
def tags_code(
    uid: str,
    config: Path = typer.Option(None, "--config", "-c"),
):
    """Print the validation code for UID."""
    codec = _codec(config)
    try:
        typer.echo(codec.generate(uid))
    except InvalidInputError as exc:
        raise typer.BadParameter(str(exc))


@app.command("generate")
def tags_generate(
    count: int = typer.Option(10, "--count", "-n", min=1, help="How many tags to generate"),
    start: int = typer.Option(None, "--start", help="First tag number; continues the last batch when omitted"),
    prefix: str = typer.Option("", "--prefix", help="Prepended to the tag number to form the UID"),
    base_url: str = typer.Option(const.DEFAULT_TAG_BASE_URL, "--base-url"),
    encoding: str = typer.Option("s", "--encoding", help="URL form: 's' (uid:code) or 'query' (uid=&vc=)"),
    out: Path = typer.Option(Path("."), "--out", "-o", help="Directory for CSV/JSON output"),
    config: Path = typer.Option(None, "--config", "-c"),
):
    """Generate a numbered batch of tags with codes and NFC URLs."""
    if encoding not in _ENCODINGS:
        raise typer.BadParameter(f"encoding must be one of: {', '.join(_ENCODINGS)}")
    codec = _codec(config)
    out.mkdir(parents=True, exist_ok=True)
    first = start if start is not None else _read_last_number(out) + 1
    if first < 1:
        raise typer.BadParameter("--start must be >= 1")

    rows: list[dict[str, object]] = []
    for number in range(first, first + count):
        uid = f"{prefix}{number}"
        credential = TagCredential(uid=uid, code=codec.generate(uid))
        rows.append(
            {
                "uid": uid,
                "number": number,
                "validationCode": credential.code,
                "nfcUrl": build_tag_url(base_url, credential, encoding),  # type: ignore[arg-type]
            }
        )

    last = first + count - 1
    meta = {
        "generatedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "baseUrl": base_url,
        "encoding": encoding,
        "strategy": codec.strategy_name,
        "range": {"from": first, "to": last},
        "count": count,
    }
    csv_path, json_path = _write_batch(out, rows, meta)
    (out / const.LAST_NUMBER_FILE).write_text(str(last), encoding="utf-8")
    _log.info("tags: batch written", extra={"from": first, "to": last, "out": str(out)})

    typer.echo(f"generated {count} tag(s): {first}..{last}")
    typer.echo(f"  csv:  {csv_path}")
    typer.echo(f"  json: {json_path}")


@app.command("verify")
def tags_verify(
    url: str,
    config: Path = typer.Option(None, "--config", "-c"),
):
    """Check that the code embedded in a tag URL matches its UID."""
    codec = _codec(config)
    try:
        credential = parse_tag_url(url)
    except InvalidInputError as exc:
        typer.echo(f"invalid tag url: {exc}", err=True)
        raise typer.Exit(1)
    if not codec.verify(credential.uid, credential.code):
        typer.echo(f"mismatch: uid={credential.uid} code={credential.code}", err=True)
        raise typer.Exit(1)
    typer.echo(f"ok: uid={credential.uid}")
