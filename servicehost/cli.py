"""
This file is the entry point for the 'servicehost' command-line tool.
Run 'servicehost' in your shell to use the CLI.
"""
import os
from pathlib import Path

import typer

from common.app_setup import monkeypatch_print, print_and_log, print_error, setup_logging
from common.settings import DEFAULT_SERVICES_DIR, ConfigurationError, load_settings
from orchestrator import RegisteredService, ServiceLoadError, discover, load_integrations

CONSOLE_URL = "http://app.inferable.ai"

app = typer.Typer(add_completion=False)

# Set up logging for the CLI (not daemon)
logger = setup_logging(
    app_name="servicehost-cli",
    logfile=os.path.expanduser("~/.servicehost/cli.log"),
    console=False,
)
monkeypatch_print()


@app.command("discover")
def discover_services(
    directory: Path = typer.Argument(None, help="Services directory (SERVICES_DIR or the bundled one if not set)"),
    integration: list[str] = typer.Option(None, help="Integration package to check (repeatable)"),
):
    """List the services and integrations the daemon would start, without starting them."""
    if directory is None:
        directory = Path(os.environ.get("SERVICES_DIR") or DEFAULT_SERVICES_DIR)
    try:
        services = discover(directory)
    except ServiceLoadError as e:
        print_error(str(e))
        raise typer.Exit(1)
    if not services:
        print_and_log(f"No services found under {directory}.")
    for service in services:
        kind = "registered" if isinstance(service, RegisteredService) else "unregistered"
        print_and_log(f"{service.name} | {kind} | {service.source}")
    for descriptor in load_integrations(integration or None):
        print_and_log(f"{descriptor.name} | integration {descriptor.version} | {descriptor.package}")


@app.command()
def assistant_url():
    """Print the web console URL for the configured cluster."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print_error(f"Missing or invalid configuration: {e}")
        raise typer.Exit(1)
    if not settings.cluster_id:
        print_error("Missing INFERABLE_CLUSTER_ID in environment or .env")
        raise typer.Exit(1)
    if "sk_demo" in settings.api_secret:
        url = f"{CONSOLE_URL}/demo/{settings.cluster_id}/workflows/new?token={settings.api_secret}"
    else:
        url = f"{CONSOLE_URL}/clusters/{settings.cluster_id}/workflows"
    typer.echo(url)


if __name__ == "__main__":
    app()
