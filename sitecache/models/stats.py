"""
Dataclass for tracking cache statistics during a worker session.
"""

from dataclasses import dataclass


@dataclass
class CacheStats:
    """Counts how intercepted requests were answered."""

    cache_hits: int = 0
    network_fetches: int = 0
    network_failures: int = 0
    offline_fallbacks: int = 0
    timeouts_served: int = 0
    cache_writes: int = 0
    write_failures: int = 0
    bypassed: int = 0

    @property
    def intercepted(self) -> int:
        return self.cache_hits + self.network_fetches + self.network_failures

    @property
    def hit_rate(self) -> float:
        """Fraction of intercepted requests answered from a partition."""
        if not self.intercepted:
            return 0.0
        return self.cache_hits / self.intercepted

    def as_dict(self) -> dict[str, int | float]:
        return {
            "cache_hits": self.cache_hits,
            "network_fetches": self.network_fetches,
            "network_failures": self.network_failures,
            "offline_fallbacks": self.offline_fallbacks,
            "timeouts_served": self.timeouts_served,
            "cache_writes": self.cache_writes,
            "write_failures": self.write_failures,
            "bypassed": self.bypassed,
            "hit_rate": round(self.hit_rate, 3),
        }
