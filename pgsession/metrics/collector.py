"""Statement statistics, kept in memory and mirrored to Prometheus."""

from dataclasses import dataclass
from typing import Protocol

from prometheus_client import Counter, generate_latest, CONTENT_TYPE_LATEST

statements_attempted_total = Counter(
    "pgsession_statements_attempted_total",
    "Statements (or batches of rows) attempted",
    ["section", "label"],
)

statement_rows_total = Counter(
    "pgsession_statement_rows_total",
    "Rows reported as affected by successful statements",
    ["section", "label"],
)

statement_rows_retracted_total = Counter(
    "pgsession_statement_rows_retracted_total",
    "Rows retracted after a failed statement",
    ["section", "label"],
)

statement_errors_total = Counter(
    "pgsession_statement_errors_total",
    "Statements that failed on the server",
    ["section", "label"],
)

statement_seconds_total = Counter(
    "pgsession_statement_seconds_total",
    "Wall time spent executing statements",
    ["section", "label"],
)


class StatsSink(Protocol):
    """Anything that accepts per (section, label) statement statistics."""

    def update(
        self,
        section: str,
        label: str,
        attempted: int = 0,
        rows: int = 0,
        errors: int = 0,
        seconds: float = 0.0,
    ) -> None: ...


@dataclass
class StatCounter:
    attempted: int = 0
    rows: int = 0
    errors: int = 0
    seconds: float = 0.0


class StatsCollector:
    """Default stats sink.

    Counters are created lazily on the first update for a (section, label)
    pair. Prometheus counters only grow, so negative row deltas are exported
    separately as retracted rows.
    """

    def __init__(self):
        self._counters: dict[tuple[str, str], StatCounter] = {}

    def update(
        self,
        section: str,
        label: str,
        attempted: int = 0,
        rows: int = 0,
        errors: int = 0,
        seconds: float = 0.0,
    ) -> None:
        counter = self._counters.setdefault((section, label), StatCounter())
        counter.attempted += attempted
        counter.rows += rows
        counter.errors += errors
        counter.seconds += seconds

        labels = {"section": section, "label": label}
        if attempted:
            statements_attempted_total.labels(**labels).inc(attempted)
        if rows > 0:
            statement_rows_total.labels(**labels).inc(rows)
        elif rows < 0:
            statement_rows_retracted_total.labels(**labels).inc(-rows)
        if errors:
            statement_errors_total.labels(**labels).inc(errors)
        if seconds > 0:
            statement_seconds_total.labels(**labels).inc(seconds)

    def get(self, section: str, label: str) -> StatCounter:
        """Return the counter for a pair, an empty one if never updated."""
        return self._counters.get((section, label), StatCounter())

    def snapshot(self) -> dict[tuple[str, str], StatCounter]:
        return {key: StatCounter(**vars(value)) for key, value in self._counters.items()}

    def reset(self) -> None:
        self._counters.clear()

    def get_metrics(self) -> tuple[bytes, str]:
        """Get Prometheus metrics in text format.

        Returns:
            Tuple of (metrics_bytes, content_type)
        """
        return generate_latest(), CONTENT_TYPE_LATEST
