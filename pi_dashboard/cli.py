"""
Main CLI module.

Entry point of the ``pi-dashboard`` command. The group loads configuration,
sets up logging and the shared currency selection, and registers the
command modules under ``pi_dashboard.commands``.
"""

import asyncio
import copy
import logging
import sys
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from pi_dashboard.core.cli_base import ContextAwareCommand, ContextAwareGroup
from pi_dashboard.core.config import ConfigError, ConfigManager
from pi_dashboard.core.context import AppContext, Currency, get_current_context, set_context
from pi_dashboard.core.logging import capture_exception, setup_logging as setup_structured_logging

console = Console()
logger = logging.getLogger(__name__)


def create_console_handler(debug: bool = False, verbose: bool = False) -> logging.Handler:
    """Rich handler for interactive output."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=debug)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    return handler


def setup_logging(config: Dict[str, Any], debug: bool = False, verbose: bool = False) -> None:
    """Set up logging from configuration with a rich console handler."""
    config = copy.deepcopy(config)
    if debug:
        config.setdefault('logging', {})['level'] = 'DEBUG'
    setup_structured_logging(config, console_handler=create_console_handler(debug, verbose))


async def initialize_app(app_ctx: AppContext, config_file: Optional[str] = None,
                         currency: Optional[str] = None) -> None:
    """Load configuration and apply it to the application context."""
    try:
        config_manager = ConfigManager(config_file=config_file)
        await config_manager.initialize()
    except ConfigError as e:
        raise click.ClickException(f"Initialization failed: {e}")

    app_ctx.config = config_manager.get_all()
    app_ctx.services['config_manager'] = config_manager

    setup_logging(app_ctx.config, app_ctx.debug, app_ctx.verbose)

    try:
        app_ctx.currency.set(currency or config_manager.get('currency.default', 'USD'))
    except ValueError as e:
        raise click.ClickException(str(e))

    logger.info("Application initialized successfully")


@click.group(cls=ContextAwareGroup, invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False), help='Configuration file path')
@click.option('--currency', type=click.Choice([c.value for c in Currency], case_sensitive=False),
              help='Display currency (default from configuration)')
@click.pass_context
def main(ctx: click.Context, debug: bool, verbose: bool, config: Optional[str],
         currency: Optional[str]) -> None:
    """
    Pi Dashboard - Pi Network price, short-term projection and news.

    Prices come from OKX with CoinGecko as fallback; every upstream is
    cached and backs off after rate limiting.
    """
    setup_logging({}, debug, verbose)

    app_ctx = AppContext(debug=debug, verbose=verbose)
    if config:
        app_ctx.metadata['config_file'] = config
    set_context(app_ctx)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    try:
        asyncio.run(initialize_app(app_ctx, config, currency))
    except click.ClickException:
        raise
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Application failed: {e}")
        capture_exception(e, {"context": "app_initialization"})
        raise click.ClickException(str(e))


@main.command(cls=ContextAwareCommand)
def version() -> None:
    """Show version information."""
    from pi_dashboard import __version__

    app_ctx = get_current_context()

    console.print(f"[bold]Pi Dashboard[/bold] v{__version__}")

    if app_ctx.verbose:
        console.print(f"Currency: {app_ctx.currency.currency.value}")
        config_manager = app_ctx.services.get('config_manager')
        if config_manager:
            console.print(f"Config directory: {config_manager.config_dir}")


def register_commands():
    """Register all command modules with the main CLI."""
    from pi_dashboard.commands.cache import cache
    from pi_dashboard.commands.market import history, predict, price
    from pi_dashboard.commands.network import calculate, stats
    from pi_dashboard.commands.news import news
    from pi_dashboard.commands.serve import serve

    for command in (price, history, predict, news, stats, calculate, serve, cache):
        main.add_command(command)


register_commands()


if __name__ == '__main__':
    main()
