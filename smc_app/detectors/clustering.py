"""
Relative-tolerance price clustering.

Shared by the equal highs/lows and support/resistance detectors. Two modes:

- ``sorted``: sort the prices, then merge each into the current cluster
  while it sits within tolerance of that cluster's running mean. The result
  does not depend on input order.
- ``greedy``: walk the prices in input order and put each into the first
  existing cluster whose running mean is within tolerance, else open a new
  one. Order dependent; kept for parity with signals produced before the
  sorted mode existed.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

SORTED = "sorted"
GREEDY = "greedy"


@dataclass
class PriceCluster:
    """Member prices with the bar times they came from."""
    prices: list[float] = field(default_factory=list)
    times: list[int] = field(default_factory=list)

    @property
    def mean(self) -> float:
        return sum(self.prices) / len(self.prices)

    @property
    def size(self) -> int:
        return len(self.prices)

    def add(self, price: float, time: int) -> None:
        self.prices.append(price)
        self.times.append(time)

    def accepts(self, price: float, tolerance: float) -> bool:
        mean = self.mean
        return abs(price - mean) / mean <= tolerance


def _cluster_greedy(points: list[tuple[float, int]], tolerance: float) -> list[PriceCluster]:
    clusters: list[PriceCluster] = []
    for price, time in points:
        for cluster in clusters:
            if cluster.accepts(price, tolerance):
                cluster.add(price, time)
                break
        else:
            clusters.append(PriceCluster([price], [time]))
    return clusters


def _cluster_sorted(points: list[tuple[float, int]], tolerance: float) -> list[PriceCluster]:
    clusters: list[PriceCluster] = []
    for price, time in sorted(points):
        if clusters and clusters[-1].accepts(price, tolerance):
            clusters[-1].add(price, time)
        else:
            clusters.append(PriceCluster([price], [time]))
    return clusters


def cluster_prices(
    points: Iterable[tuple[float, int]],
    tolerance: float,
    mode: str = SORTED,
) -> list[PriceCluster]:
    """
    Group ``(price, time)`` points whose prices are within a relative tolerance.

    Args:
        points: Price/time pairs
        tolerance: Relative tolerance, e.g. 0.001 for 0.1%
        mode: ``"sorted"`` or ``"greedy"``

    Returns:
        Clusters in ascending price order (sorted) or creation order (greedy)

    Raises:
        ValueError: On an unknown mode
    """
    items = [(float(p), int(t)) for p, t in points if p > 0]

    if mode == SORTED:
        return _cluster_sorted(items, tolerance)
    if mode == GREEDY:
        return _cluster_greedy(items, tolerance)

    raise ValueError(f"Unknown clustering mode: {mode}")
