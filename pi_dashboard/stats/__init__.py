"""Network statistics and the value calculator."""

from .calculator import Calculation, calculate, format_amount, format_value, parse_amount
from .network import NetworkStats, NetworkStatsSimulator, format_compact

__all__ = [
    'Calculation',
    'NetworkStats',
    'NetworkStatsSimulator',
    'calculate',
    'format_amount',
    'format_compact',
    'format_value',
    'parse_amount',
]
