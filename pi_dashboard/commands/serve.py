"""CLI command that runs the web dashboard."""

import asyncio
import logging
from typing import Optional

import click
from rich.console import Console

from ..core.cli_base import ContextAwareCommand
from ..core.context import get_current_context
from ..services import DashboardServices
from ..web.app import DashboardConfig, WebDashboard

console = Console()
logger = logging.getLogger(__name__)


@click.command(cls=ContextAwareCommand)
@click.option('--host', default=None, help='Bind address (default from configuration)')
@click.option('--port', type=click.IntRange(1, 65535), default=None,
              help='Port (default from configuration)')
@click.option('--no-refresh', is_flag=True, help='Disable the periodic background refresh')
def serve(host: Optional[str], port: Optional[int], no_refresh: bool):
    """Run the web dashboard.

    Examples:
        pi-dashboard serve
        pi-dashboard serve --host 0.0.0.0 --port 9000
    """
    app_ctx = get_current_context()
    config_manager = app_ctx.services.get('config_manager')
    if config_manager is None:
        raise click.ClickException("Configuration not loaded")

    dashboard_config = DashboardConfig(
        host=host or config_manager.get('dashboard.host', '127.0.0.1'),
        port=port or config_manager.get('dashboard.port', 8080),
        title=config_manager.get('app.name', 'Pi Dashboard'),
        auto_refresh=not no_refresh,
    )
    services = DashboardServices.from_config(config_manager, currency_context=app_ctx.currency)
    dashboard = WebDashboard(dashboard_config, services, refresh=not no_refresh)

    console.print(f"[bold green]Dashboard running at "
                  f"http://{dashboard_config.host}:{dashboard_config.port}[/bold green]")
    try:
        asyncio.run(dashboard.start())
    except KeyboardInterrupt:
        logger.info("Dashboard stopped by user")
