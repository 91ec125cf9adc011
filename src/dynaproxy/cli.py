"""
dynaproxy CLI — dynaproxy serve | routes | check-backends | decide
"""
import asyncio
import sys
from pathlib import Path
from urllib.parse import urlsplit

import click
from dotenv import load_dotenv

from dynaproxy.config.settings import Settings, load_settings
from dynaproxy.core.exceptions import ConfigParseError, NoMatchingRoute
from dynaproxy.core.structured_logger import configure_logging
from dynaproxy.routing.config_loader import load_route_table_strict
from dynaproxy.routing.matcher import DeterministicMatcher


def _load(config: str | None, routes: str | None) -> Settings:
    try:
        settings = load_settings(config)
    except (ValueError, FileNotFoundError) as e:
        click.echo(str(e), err=True)
        raise SystemExit(2)
    if routes:
        settings.routes.config_path = Path(routes)
    return settings


def _strict_table(settings: Settings):
    try:
        return load_route_table_strict(settings.routes.config_path)
    except ConfigParseError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1)


@click.group()
@click.version_option(package_name="dynaproxy")
def cli() -> None:
    """dynaproxy — inference-routed reverse proxy."""
    load_dotenv()


@cli.command()
@click.option("--config", "config", type=click.Path(dir_okay=False), default=None, help="YAML settings file")
@click.option("--routes", "routes", type=click.Path(dir_okay=False), default=None, help="nginx-style route config")
@click.option("--host", default=None, help="Bind address (overrides settings)")
@click.option("--port", type=int, default=None, help="Listen port (overrides settings)")
def serve(config: str | None, routes: str | None, host: str | None, port: int | None) -> None:
    """Run the proxy server."""
    import uvicorn

    from dynaproxy.interfaces.web.server import create_app

    settings = _load(config, routes)
    if host:
        settings.server.host = host
    if port:
        settings.server.port = port

    configure_logging(settings.logging.level, settings.logging.format)
    app = create_app(settings)
    click.echo(f"dynaproxy running on port {settings.server.port}")
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )


@cli.command()
@click.option("--config", "config", type=click.Path(dir_okay=False), default=None, help="YAML settings file")
@click.option("--routes", "routes", type=click.Path(dir_okay=False), default=None, help="nginx-style route config")
def routes(config: str | None, routes: str | None) -> None:
    """Print the sorted route table."""
    settings = _load(config, routes)
    table = _strict_table(settings)
    if not table:
        click.echo(f"No routes found in {settings.routes.config_path}")
        return
    for rule in table:
        click.echo(f"{rule.prefix} => {rule.target}")


@cli.command("check-backends")
@click.option("--config", "config", type=click.Path(dir_okay=False), default=None, help="YAML settings file")
@click.option("--routes", "routes", type=click.Path(dir_okay=False), default=None, help="nginx-style route config")
def check_backends(config: str | None, routes: str | None) -> None:
    """Check that every configured backend is reachable."""
    from dynaproxy.observability.health import probe_backends

    settings = _load(config, routes)
    table = _strict_table(settings)
    result = asyncio.run(probe_backends(table, settings.routes.probe_timeout_seconds))
    for target, check in result["checks"].items():
        marker = "OK" if check["details"].get("reachable") else "FAIL"
        click.echo(f"  [{marker}] {check['message']}")
    if result["status"] != "healthy":
        sys.exit(1)


@cli.command()
@click.argument("url")
@click.option("--config", "config", type=click.Path(dir_okay=False), default=None, help="YAML settings file")
@click.option("--routes", "routes", type=click.Path(dir_okay=False), default=None, help="nginx-style route config")
def decide(url: str, config: str | None, routes: str | None) -> None:
    """Show the rule-based target for a request path such as /api/users?id=1."""
    settings = _load(config, routes)
    table = _strict_table(settings)
    parts = urlsplit(url)
    try:
        target = DeterministicMatcher(table).match(parts.path or "/", parts.query)
    except NoMatchingRoute as e:
        click.echo(e.message, err=True)
        sys.exit(1)
    click.echo(target)


if __name__ == "__main__":
    cli()
