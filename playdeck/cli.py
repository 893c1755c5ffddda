"""
Command-line interface for playdeck.

This module implements the CLI using Click, with rich-click for the help
output colors.

Commands:
    playdeck serve                      Start the music server
    playdeck scan                       Load the song catalog and print it
    playdeck verify-store               Check (and recover) the user store

Options:
    --config <path>                     Config file (default: ./config.yaml)

Usage:
    # Start the server with config.yaml from the current directory
    playdeck serve

    # Override the listening address
    playdeck serve --host 0.0.0.0 --port 4000

    # See which songs would be served
    playdeck scan --config ~/playdeck/config.yaml

    # Check the store after a crash
    playdeck verify-store

Configuration:
    When --config is not given and ./config.yaml does not exist, built-in
    defaults are used (see config.example.yaml). An explicit --config path
    must exist.

Exit codes:
    1   configuration error, bind failure or unexpected error
    2   user store error
    3   music library error
    4   any other playdeck error
    130 interrupted by the user
"""

import sys
from collections.abc import Callable
from pathlib import Path

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "playdeck serve": [
        {
            "name": "Network",
            "options": ["--host", "--port"],
        },
        {
            "name": "Configuration",
            "options": ["--config", "--help"],
        },
    ],
}

from playdeck import __version__
from playdeck.catalog.library import Catalog
from playdeck.catalog.loader import load_catalog
from playdeck.core.config import CONFIG_FILENAME, Config, default_config, load_config
from playdeck.core.exceptions import (
    CatalogError,
    ConfigError,
    PersistenceError,
    PlaydeckError,
    TransportError,
)
from playdeck.core.logger import get_logger, setup_logging, shutdown_logging
from playdeck.core.store import UserStore
from playdeck.server.app import PlaydeckServer
from playdeck.server.context import ServerContext

logger = get_logger(__name__)


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Path to the config file. Defaults to ./{CONFIG_FILENAME}.",
)


@click.group()
@click.version_option(__version__, prog_name="playdeck")
def cli() -> None:
    """
    [bold]playdeck[/bold]: a multi-user music library server.

    Clients connect over TCP and speak a line-based text protocol to
    browse the catalog, manage playlists, follow other users and drive a
    per-connection player.
    """


@cli.command()
@config_option
@click.option("--host", default=None, help="Interface to bind (overrides server.host).")
@click.option("--port", type=click.IntRange(0, 65535), default=None, help="Port to bind (overrides server.port).")
def serve(config_path: Path | None, host: str | None, port: int | None) -> None:
    """Start the server and serve clients until interrupted."""

    def run(config: Config) -> None:
        catalog = load_catalog(config.library)
        logger.info(f"Catalog ready: {len(catalog)} songs")

        context = ServerContext.create(config, catalog)
        logger.info(f"User store: {context.store.path}")

        server = PlaydeckServer(context, host=host, port=port)
        server.start()
        bound_host, bound_port = server.address
        click.echo(f"playdeck {__version__} listening on {bound_host}:{bound_port} (Ctrl+C to stop)")
        try:
            server.serve_forever()
        finally:
            server.stop()

    _run_command(config_path, run)


@cli.command()
@config_option
def scan(config_path: Path | None) -> None:
    """Load the song catalog and print every song."""

    def run(config: Config) -> None:
        catalog: Catalog = load_catalog(config.library)
        for song in catalog:
            location = f"  [{song.file_path}]" if song.file_path else ""
            click.echo(f"{song.display()}  ({song.album}, {song.genre}){location}")
        click.echo(f"{len(catalog)} songs (library: {config.library.directory})")

    _run_command(config_path, run)


@cli.command(name="verify-store")
@config_option
def verify_store(config_path: Path | None) -> None:
    """Check the user store, recover it from its backup if needed, and print counts."""

    def run(config: Config) -> None:
        report = UserStore(config.storage.users_file).verify()

        logger.info("=" * 60)
        logger.info("USER STORE")
        logger.info("=" * 60)
        logger.info(f"File:              {report.path}")
        logger.info(f"Valid on disk:     {'yes' if report.valid_on_disk else 'no (recovered)'}")
        logger.info(f"Backup present:    {'yes' if report.backup_present else 'no'}")
        logger.info(f"Users:             {report.users}")
        logger.info(f"Playlists:         {report.playlists}")
        logger.info(f"Collaborative:     {report.collaborative_playlists}")
        logger.info(f"Playlist entries:  {report.songs}")
        logger.info("=" * 60)

    _run_command(config_path, run)


def _load_configuration(config_path: Path | None) -> Config:
    """
    Load the configuration for a command.

    An explicit path must exist. Without one, ./config.yaml is used when
    present and built-in defaults otherwise.

    Raises:
        ConfigError: If configuration is invalid or an explicit file is missing.
    """
    if config_path is None and not (Path.cwd() / CONFIG_FILENAME).exists():
        return default_config()
    return load_config(config_path)


def _run_command(config_path: Path | None, run: Callable[[Config], None]) -> None:
    """
    Load configuration, set up logging and run one command body.

    Maps playdeck errors to exit codes (see module docstring).

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    try:
        config = _load_configuration(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    try:
        setup_logging(config.logging.directory, config.logging.console_level)
        logger.debug(f"playdeck {__version__} starting")
        run(config)

    except TransportError as e:
        click.echo(f"Network error: {e.message}", err=True)
        logger.error(f"Network error: {e.message}", exc_info=True)
        sys.exit(1)

    except PersistenceError as e:
        click.echo(f"User store error: {e.message}", err=True)
        logger.error(f"User store error: {e.message}", exc_info=True)
        sys.exit(2)

    except CatalogError as e:
        click.echo(f"Music library error: {e.message}", err=True)
        logger.error(f"Music library error: {e.message}", exc_info=True)
        sys.exit(3)

    except PlaydeckError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        shutdown_logging()


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `playdeck` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
