"""Pi to fiat value calculator."""

import re
from dataclasses import dataclass
from typing import Any, Dict, Union

from ..core.context import Currency

PRESET_AMOUNTS = [100, 1000, 10000, 100000]

_AMOUNT_PATTERN = re.compile(r"^[0-9]*\.?[0-9]*$")


def _grouped(value: float, max_fraction_digits: int) -> str:
    text = f"{value:,.{max_fraction_digits}f}"
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text


def format_amount(value: float) -> str:
    """Format a Pi amount with thousands separators and up to 3 decimals."""
    return _grouped(value, 3)


def format_value(value: float) -> str:
    """Format a fiat value with precision chosen by magnitude."""
    if value < 0.01:
        return f"{value:.8f}"
    if value < 1:
        return f"{value:.4f}"
    if value < 1000:
        return f"{value:.2f}"
    return _grouped(value, 2)


def is_valid_amount_input(text: str) -> bool:
    """Whether ``text`` is acceptable while typing an amount (digits and one dot)."""
    return text == "" or bool(_AMOUNT_PATTERN.match(text))


def parse_amount(value: Union[str, float, int, None]) -> float:
    """Parse an amount; anything non-numeric or negative counts as 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        try:
            amount = float(value.strip())
        except ValueError:
            return 0.0
    if amount != amount or amount < 0:
        return 0.0
    return amount


@dataclass
class Calculation:
    amount: float
    price: float
    currency: Currency

    @property
    def value(self) -> float:
        return self.amount * self.price

    @property
    def formatted(self) -> str:
        return f"{self.currency.symbol}{format_value(self.value)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'amount': self.amount,
            'price': self.price,
            'currency': self.currency.value,
            'value': self.value,
            'formatted': self.formatted,
        }


def calculate(amount: Union[str, float, int, None], price: float,
              currency: Union[str, Currency] = Currency.USD) -> Calculation:
    """Value of ``amount`` Pi at ``price``."""
    return Calculation(amount=parse_amount(amount), price=price, currency=Currency.parse(currency))
