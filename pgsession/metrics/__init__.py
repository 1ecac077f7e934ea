"""Statement statistics for pgsession."""

from typing import Optional

from pgsession.metrics.collector import StatCounter, StatsCollector, StatsSink

__all__ = ["StatCounter", "StatsCollector", "StatsSink", "get_stats_collector"]

# Singleton instance
_stats_collector: Optional[StatsCollector] = None


def get_stats_collector() -> StatsCollector:
    """Get or create the global stats collector instance."""
    global _stats_collector
    if _stats_collector is None:
        _stats_collector = StatsCollector()
    return _stats_collector
