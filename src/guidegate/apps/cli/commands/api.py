# src/guidegate/apps/cli/commands/api.py
import os
from pathlib import Path

import typer
import uvicorn

from guidegate.apps.cli.common import load_cli_settings

app = typer.Typer(help="HTTP API for tag admission")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8787, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload for development"),
    config: Path = typer.Option(None, "--config", "-c", help="YAML settings file; defaults to GUIDEGATE_CONFIG"),
):
    """Run the admission HTTP API (FastAPI)."""
    # fail before uvicorn starts when the secret is missing
    settings = load_cli_settings(config)
    if config is not None:
        # the factory runs in the uvicorn process and reads the path from env
        os.environ["GUIDEGATE_CONFIG"] = str(config)
    uvicorn.run(
        "guidegate.apps.api.server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
