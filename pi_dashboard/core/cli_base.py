"""Click base classes and helpers shared by the command modules."""

import asyncio
import functools
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import click

from ..services import DashboardServices
from .context import AppContext, get_current_context, inherit_context, set_context


class _CommandTracking(ABC):
    """Records the running click command on an AppContext while it executes."""

    @abstractmethod
    def _context_for(self, ctx: click.Context) -> AppContext:
        """The context the command runs in."""

    def invoke(self, ctx: click.Context) -> Any:
        app_ctx = self._context_for(ctx)
        app_ctx.push_command(ctx.info_name)
        app_ctx.metadata['click_context'] = ctx
        try:
            return super().invoke(ctx)
        finally:
            app_ctx.pop_command()


class ContextAwareGroup(_CommandTracking, click.Group):
    """Group that runs in the current context, so subcommands see what it sets up."""

    def _context_for(self, ctx: click.Context) -> AppContext:
        return get_current_context()


class ContextAwareCommand(_CommandTracking, click.Command):
    """Command that runs in its own copy of the parent context."""

    def _context_for(self, ctx: click.Context) -> AppContext:
        app_ctx = inherit_context()
        set_context(app_ctx)
        return app_ctx


def async_command(f):
    """Run an async click callback to completion with asyncio.run."""

    @functools.wraps(f)
    def runner(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return runner


@asynccontextmanager
async def dashboard_services() -> AsyncIterator[DashboardServices]:
    """Build, start and finally stop the services for one command.

    Requires the configuration manager that ``initialize_app`` stores in
    the application context.
    """
    app_ctx = get_current_context()
    config_manager = app_ctx.services.get('config_manager')
    if config_manager is None:
        raise click.ClickException("Configuration not loaded")

    services = DashboardServices.from_config(config_manager, currency_context=app_ctx.currency)
    await services.start()
    try:
        yield services
    finally:
        await services.stop()
