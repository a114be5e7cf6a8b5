"""FastAPI web dashboard."""

from .app import DashboardConfig, WebDashboard, create_app

__all__ = ['DashboardConfig', 'WebDashboard', 'create_app']
