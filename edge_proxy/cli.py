"""Click-based CLI entrypoint for edge-raw-proxy.

Commands:
    serve         run the proxy
    check-config  show the routing configuration read from the environment
    parse-urls    show how a target list value is parsed
"""

from __future__ import annotations

import json
import os
import sys

import click

from edge_proxy import __version__
from edge_proxy.config import RoutingConfig
from edge_proxy.errors import ConfigurationError
from edge_proxy.url_list import parse_urls


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="edge-proxy")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Edge proxy for raw GitHub content with a decoy root page."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--host", default=lambda: os.environ.get("EDGE_PROXY_HOST", "0.0.0.0"),
              show_default="0.0.0.0 or $EDGE_PROXY_HOST", help="Address to bind.")
@click.option("--port", type=int, default=lambda: int(os.environ.get("EDGE_PROXY_PORT", 8080)),
              show_default="8080 or $EDGE_PROXY_PORT", help="Port to listen on.")
@click.option("--log-level", default=None, help="Log level (defaults to $LOG_LEVEL or INFO).")
@click.option("--log-format", type=click.Choice(["json", "text"]), default=None,
              help="Log format (defaults to $LOG_FORMAT or json).")
def serve(host: str, port: int, log_level: str | None, log_format: str | None) -> None:
    """Run the proxy server."""
    from edge_proxy.gateway import app
    from edge_proxy.logging_config import get_logger, setup_logging

    setup_logging(level=log_level, format_type=log_format)
    get_logger(__name__).info(f"Starting edge proxy on {host}:{port}")
    app.run(host=host, port=port, debug=False)


def _config_problems(config: RoutingConfig) -> list[str]:
    problems = []
    if not config.credential:
        problems.append("GH_TOKEN is not set: non-root paths will answer 500")
    if not config.origin_path:
        problems.append("GH_NAME, GH_REPO and GH_BRANCH are not set: non-root paths will answer 500")
    return problems


@cli.command("check-config")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
def check_config(as_json: bool) -> None:
    """Show the routing configuration read from the environment.

    Exits 1 when non-root routing cannot work or a value is malformed.
    """
    try:
        config = RoutingConfig.from_env()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    root_mode = config.root_mode()
    mode, targets = (root_mode[0], parse_urls(root_mode[1])) if root_mode else ("decoy", [])
    problems = _config_problems(config)

    if as_json:
        click.echo(json.dumps({
            "config": config.describe(),
            "origin_path": config.origin_path,
            "root_mode": mode,
            "root_targets": targets,
            "problems": problems,
        }, indent=2))
    else:
        for key, value in config.describe().items():
            click.echo(f"{key:24} {value if value is not None else '-'}")
        click.echo(f"{'origin_path':24} {config.origin_path or '-'}")
        click.echo(f"{'root_mode':24} {mode}")
        for target in targets:
            click.echo(f"{'':24} {target}")
        if root_mode and not targets:
            click.echo(f"Warning: {root_mode[0]} list has no usable URLs, root serves the decoy page", err=True)
        for problem in problems:
            click.echo(f"Error: {problem}", err=True)

    if problems:
        sys.exit(1)


@cli.command("parse-urls")
@click.argument("value")
def parse_urls_cmd(value: str) -> None:
    """Print the URLs parsed from VALUE, one per line."""
    for url in parse_urls(value):
        click.echo(url)


def main() -> None:
    """Entry point for the ``edge-proxy`` console script."""
    cli()


if __name__ == "__main__":
    main()
