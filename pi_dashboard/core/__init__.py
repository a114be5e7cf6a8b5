"""
Core components for the Pi dashboard.

Context management, configuration, logging and periodic scheduling.
"""

from pi_dashboard.core.context import AppContext, Currency, CurrencyContext
from pi_dashboard.core.config import ConfigManager, ConfigError
from pi_dashboard.core.scheduler import PeriodicTask, Scheduler

__all__ = [
    "AppContext",
    "Currency",
    "CurrencyContext",
    "ConfigManager",
    "ConfigError",
    "PeriodicTask",
    "Scheduler",
]
