"""Statement execution with timing and outcome statistics."""

import time
from typing import Optional, Sequence, Union

import psycopg2
import structlog

from pgsession.config import ConnectionConfig
from pgsession.db.connection import ConnectionManager
from pgsession.db.descriptor import ConnectionDescriptor
from pgsession.db.errors import server_message
from pgsession.metrics import StatsSink, get_stats_collector

logger = structlog.get_logger(__name__)

Statements = Union[str, Sequence[str]]

CLIENT_MIN_MESSAGES_LEVELS = {
    "debug5", "debug4", "debug3", "debug2", "debug1", "debug",
    "log", "notice", "warning", "error",
}


def as_statement_list(statements: Statements) -> list[str]:
    if isinstance(statements, str):
        return [statements]
    return list(statements)


class TimedExecutor:
    """Runs SQL on one session and reports the outcome to a stats sink."""

    def __init__(self, session: ConnectionManager, stats: Optional[StatsSink] = None):
        """Initialize the executor.

        Args:
            session: Open session to run statements on.
            stats: Receives one update per execute_timed() call. If None,
                uses the process-wide collector.
        """
        self.session = session
        self.stats = stats if stats is not None else get_stats_collector()

    def _run(self, cursor, statement: str) -> None:
        logger.debug("sql", statement=statement)
        cursor.execute(statement)

    def execute(self, statements: Statements, client_min_messages: Optional[str] = None) -> None:
        """Run statements in order, without statistics.

        Args:
            statements: One SQL string or a sequence of them.
            client_min_messages: Server message level set LOCAL around the
                statements and reset afterwards.

        Raises:
            ValueError: If client_min_messages is not a server message level.
            psycopg2.Error: If a statement fails.
        """
        if client_min_messages is not None:
            client_min_messages = client_min_messages.lower()
            if client_min_messages not in CLIENT_MIN_MESSAGES_LEVELS:
                raise ValueError(f"Unknown client_min_messages level: {client_min_messages}")

        with self.session.cursor() as cursor:
            if client_min_messages is None:
                for statement in as_statement_list(statements):
                    self._run(cursor, statement)
                return

            self._run(cursor, f"SET LOCAL client_min_messages TO {client_min_messages}")
            try:
                for statement in as_statement_list(statements):
                    self._run(cursor, statement)
            except BaseException:
                self._reset_after_failure(cursor)
                raise
            self._run(cursor, "RESET client_min_messages")

    def _reset_after_failure(self, cursor) -> None:
        # Inside an aborted transaction the RESET fails too, and the SET LOCAL
        # is discarded by the rollback anyway.
        try:
            self._run(cursor, "RESET client_min_messages")
        except psycopg2.Error as exc:
            logger.warning(
                "client_min_messages_reset_failed",
                error=server_message(exc),
                **self.session.log_context(),
            )

    def execute_timed(
        self,
        section: str,
        label: str,
        statements: Statements,
        count: int = 1,
    ) -> None:
        """Run statements and record timing, rows and errors for (section, label).

        Server errors are logged and counted, never raised: on failure the
        ``count`` rows are retracted and one error is recorded.
        """
        start_time = time.perf_counter()
        try:
            self.execute(statements)
        except psycopg2.Error as exc:
            elapsed = time.perf_counter() - start_time
            logger.error(
                "statement_failed",
                section=section,
                label=label,
                error=server_message(exc),
                sqlstate=getattr(exc, "pgcode", None),
                **self.session.log_context(),
            )
            self.stats.update(section, label, attempted=count, rows=-count, errors=1, seconds=elapsed)
            return

        elapsed = time.perf_counter() - start_time
        self.stats.update(section, label, attempted=count, rows=count, seconds=elapsed)
        logger.debug("statement_timed", section=section, label=label, seconds=elapsed)


def connect_and_execute_timed(
    descriptor: ConnectionDescriptor,
    section: str,
    label: str,
    statements: Statements,
    count: int = 1,
    config: Optional[ConnectionConfig] = None,
    stats: Optional[StatsSink] = None,
) -> None:
    """Run execute_timed() on a dedicated connection, closed afterwards."""
    with ConnectionManager(descriptor, config=config) as session:
        TimedExecutor(session, stats).execute_timed(section, label, statements, count=count)
