"""
Application and currency context.

``AppContext`` travels through the CLI command hierarchy in a ContextVar.
``CurrencyContext`` holds the process-wide selected currency that the price,
history and prediction services read.
"""

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class Currency(Enum):
    """Display currencies supported by the dashboard."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    RUB = "RUB"

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS[self]

    @property
    def fallback_price(self) -> float:
        """Last-resort Pi price when no source and no cache is available."""
        return FALLBACK_PRICES[self]

    @property
    def decimals(self) -> int:
        return 5 if self in (Currency.JPY, Currency.RUB) else 6

    def format_price(self, price: float, decimals: Optional[int] = None) -> str:
        places = self.decimals if decimals is None else decimals
        return f"{self.symbol}{price:.{places}f}"

    @classmethod
    def parse(cls, value: Union[str, 'Currency']) -> 'Currency':
        if isinstance(value, Currency):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported currency: {value}")


CURRENCY_SYMBOLS = {
    Currency.EUR: "€",
    Currency.USD: "$",
    Currency.GBP: "£",
    Currency.JPY: "¥",
    Currency.RUB: "₽",
}

FALLBACK_PRICES = {
    Currency.USD: 0.00032,
    Currency.EUR: 0.00029,
    Currency.GBP: 0.00025,
    Currency.JPY: 0.048,
    Currency.RUB: 0.029,
}


class CurrencyContext:
    """Process-wide selected currency with change listeners."""

    def __init__(self, currency: Union[str, Currency] = Currency.USD):
        self._currency = Currency.parse(currency)
        self._listeners: List[Callable[[Currency], Any]] = []

    @property
    def currency(self) -> Currency:
        return self._currency

    def set(self, currency: Union[str, Currency]) -> Currency:
        """Select a new currency and notify listeners if it changed."""
        new_currency = Currency.parse(currency)
        if new_currency == self._currency:
            return new_currency

        logger.info(f"Currency changed: {self._currency.value} -> {new_currency.value}")
        self._currency = new_currency

        for listener in list(self._listeners):
            try:
                listener(new_currency)
            except Exception as e:
                logger.error(f"Currency listener failed: {e}")

        return new_currency

    def subscribe(self, listener: Callable[[Currency], Any]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[Currency], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)


@dataclass
class AppContext:
    """
    State shared down the CLI command tree: loaded settings, long-lived
    objects such as the config manager, and the selected currency.
    """
    config: Dict[str, Any] = field(default_factory=dict)
    services: Dict[str, Any] = field(default_factory=dict)
    currency: CurrencyContext = field(default_factory=CurrencyContext)
    debug: bool = False
    verbose: bool = False
    command_stack: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> 'AppContext':
        """Shallow copy for a subcommand; the currency selection stays shared."""
        return replace(
            self,
            config=dict(self.config),
            services=dict(self.services),
            command_stack=list(self.command_stack),
            metadata=dict(self.metadata),
        )

    @property
    def command_path(self) -> str:
        return " ".join(self.command_stack)

    def push_command(self, command_name: str) -> None:
        self.command_stack.append(command_name)
        logger.debug(f"Entering {self.command_path}")

    def pop_command(self) -> Optional[str]:
        return self.command_stack.pop() if self.command_stack else None


_app_context: ContextVar[AppContext] = ContextVar('pi_dashboard_app_context')
_root_context = AppContext()


def get_current_context() -> AppContext:
    """The context of the running command, or the process-wide root one."""
    return _app_context.get(_root_context)


def set_context(context: AppContext) -> None:
    _app_context.set(context)


def inherit_context() -> AppContext:
    """A copy of the current context for a nested command."""
    return get_current_context().copy()
