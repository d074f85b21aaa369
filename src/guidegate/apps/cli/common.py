from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer

from guidegate.config.settings import ConfigError, GuideGateSettings, load_settings
from guidegate.services.admission import AdmissionRuntime, StoreUnavailableError, build_runtime

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def load_cli_settings(config: Path | None) -> GuideGateSettings:
    try:
        settings = load_settings(config)
    except ConfigError as exc:
        typer.echo(f"config error: {exc}", err=True)
        raise typer.Exit(2)
    configure_logging(settings.log_level)
    return settings


@contextmanager
def open_runtime(config: Path | None) -> Iterator[AdmissionRuntime]:
    settings = load_cli_settings(config)
    try:
        runtime = build_runtime(settings)
    except (ConfigError, StoreUnavailableError) as exc:
        typer.echo(f"cannot start: {exc}", err=True)
        raise typer.Exit(2)
    try:
        yield runtime
    finally:
        runtime.close()
