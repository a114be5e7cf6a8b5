"""Simulated Pi network statistics.

There is no public source for these figures; the simulator produces
plausible values around fixed baselines.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class NetworkStats:
    """Snapshot of network statistics."""
    active_users: int
    total_nodes: int
    block_height: int
    transactions_per_second: int
    consensus_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'activeUsers': self.active_users,
            'totalNodes': self.total_nodes,
            'blockHeight': self.block_height,
            'transactionsPerSecond': self.transactions_per_second,
            'consensusRate': self.consensus_rate,
        }


def format_compact(num: float) -> str:
    """Format a count as ``35.2M``, ``12.3K`` or the plain integer."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(int(num))


class NetworkStatsSimulator:
    """Produces network statistics from an injectable random source."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.latest: Optional[NetworkStats] = None

    def sample(self) -> NetworkStats:
        stats = NetworkStats(
            active_users=35_000_000 + self.rng.randrange(500_000),
            total_nodes=12_000 + self.rng.randrange(500),
            block_height=1_250_000 + self.rng.randrange(1_000),
            transactions_per_second=150 + self.rng.randrange(50),
            consensus_rate=98.5 + self.rng.random() * 1.5,
        )
        self.latest = stats
        return stats

    async def refresh(self) -> NetworkStats:
        """Periodic-task entry point."""
        stats = self.sample()
        logger.debug(f"Network stats refreshed: block height {stats.block_height}")
        return stats
