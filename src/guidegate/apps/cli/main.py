# src/guidegate/apps/cli/main.py
import typer

from guidegate import __version__
from guidegate.apps.cli.commands.api import app as api_app
from guidegate.apps.cli.commands.devices import app as devices_app
from guidegate.apps.cli.commands.tags import app as tags_app

app = typer.Typer(help="guidegate: tag admission control", no_args_is_help=True)
app.add_typer(api_app, name="api")
app.add_typer(tags_app, name="tags")
app.add_typer(devices_app, name="devices")


@app.command("version")
def version():
    typer.echo(__version__)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
