"""Tests for TimedExecutor."""

from unittest.mock import patch

import psycopg2
import psycopg2.errors
import pytest
from structlog.testing import capture_logs

from pgsession.db import ConnectionManager, TimedExecutor, connect_and_execute_timed
from pgsession.metrics import StatsCollector


def executed(cursor):
    return [call.args[0] for call in cursor.execute.call_args_list]


def fail_on(bad_statement, error):
    def execute(statement):
        if statement == bad_statement:
            raise error

    return execute


class TestExecute:
    """Tests for plain execution."""

    def test_single_statement(self, session, pg_connection):
        _, cursor = pg_connection

        TimedExecutor(session, StatsCollector()).execute("truncate orders")

        assert executed(cursor) == ["truncate orders"]

    def test_statements_in_order(self, session, pg_connection):
        _, cursor = pg_connection

        with capture_logs() as logs:
            TimedExecutor(session, StatsCollector()).execute(["drop index a", "drop index b"])

        assert executed(cursor) == ["drop index a", "drop index b"]
        assert [log["statement"] for log in logs if log["event"] == "sql"] == ["drop index a", "drop index b"]

    def test_client_min_messages_bracket(self, session, pg_connection):
        _, cursor = pg_connection

        TimedExecutor(session, StatsCollector()).execute("vacuum orders", client_min_messages="WARNING")

        assert executed(cursor) == [
            "SET LOCAL client_min_messages TO warning",
            "vacuum orders",
            "RESET client_min_messages",
        ]

    def test_client_min_messages_reset_on_error(self, session, pg_connection):
        _, cursor = pg_connection
        cursor.execute.side_effect = fail_on("bad", psycopg2.ProgrammingError("syntax error"))

        with pytest.raises(psycopg2.ProgrammingError):
            TimedExecutor(session, StatsCollector()).execute(["bad", "never"], client_min_messages="error")

        assert executed(cursor) == [
            "SET LOCAL client_min_messages TO error",
            "bad",
            "RESET client_min_messages",
        ]

    def test_reset_failure_does_not_mask_error(self, session, pg_connection):
        _, cursor = pg_connection

        def execute(statement):
            if statement == "bad":
                raise psycopg2.errors.DivisionByZero("division by zero")
            if statement.startswith("RESET"):
                raise psycopg2.errors.InFailedSqlTransaction("current transaction is aborted")

        cursor.execute.side_effect = execute

        with capture_logs() as logs:
            with pytest.raises(psycopg2.errors.DivisionByZero):
                TimedExecutor(session, StatsCollector()).execute("bad", client_min_messages="log")

        assert any(log["event"] == "client_min_messages_reset_failed" for log in logs)

    def test_unknown_message_level(self, session):
        with pytest.raises(ValueError, match="client_min_messages"):
            TimedExecutor(session, StatsCollector()).execute("select 1", client_min_messages="loud; drop table x")

    def test_closed_session(self, descriptor, config):
        with pytest.raises(RuntimeError, match="not open"):
            TimedExecutor(ConnectionManager(descriptor, config=config), StatsCollector()).execute("select 1")


class TestExecuteTimed:
    """Tests for statistics tracked execution."""

    def test_success_updates_stats(self, session, pg_connection):
        stats = StatsCollector()

        TimedExecutor(session, stats).execute_timed("before load", "orders", "truncate orders", count=5)

        counter = stats.get("before load", "orders")
        assert counter.attempted == 5
        assert counter.rows == 5
        assert counter.errors == 0
        assert counter.seconds >= 0

    def test_failure_absorbed_into_stats(self, session, pg_connection):
        _, cursor = pg_connection
        cursor.execute.side_effect = fail_on(
            "create index", psycopg2.errors.DuplicateTable('relation "orders_idx" already exists')
        )
        stats = StatsCollector()

        with capture_logs() as logs:
            TimedExecutor(session, stats).execute_timed(
                "after load", "orders", ["analyze orders", "create index", "never"], count=5
            )

        counter = stats.get("after load", "orders")
        assert counter.attempted == 5
        assert counter.rows == -5
        assert counter.errors == 1
        assert counter.seconds >= 0
        assert executed(cursor) == ["analyze orders", "create index"]
        failed = [log for log in logs if log["event"] == "statement_failed"]
        assert failed[0]["log_level"] == "error"
        assert failed[0]["error"] == 'relation "orders_idx" already exists'

    def test_updates_accumulate(self, session, pg_connection):
        _, cursor = pg_connection
        stats = StatsCollector()
        executor = TimedExecutor(session, stats)

        executor.execute_timed("load", "orders", "insert 1", count=2)
        cursor.execute.side_effect = psycopg2.DataError("invalid input syntax")
        executor.execute_timed("load", "orders", "insert 2", count=3)

        counter = stats.get("load", "orders")
        assert counter.attempted == 5
        assert counter.rows == -1
        assert counter.errors == 1

    def test_programming_errors_propagate(self, descriptor, config):
        executor = TimedExecutor(ConnectionManager(descriptor, config=config), StatsCollector())

        with pytest.raises(RuntimeError):
            executor.execute_timed("load", "orders", "select 1")

    @patch("pgsession.db.connection.psycopg2.connect")
    def test_connect_and_execute_timed(self, mock_connect, pg_connection, descriptor, config):
        conn, cursor = pg_connection
        mock_connect.return_value = conn
        stats = StatsCollector()

        connect_and_execute_timed(
            descriptor, "before load", "orders", "truncate orders", count=1, config=config, stats=stats
        )

        assert executed(cursor)[-1] == "truncate orders"
        assert stats.get("before load", "orders").attempted == 1
        conn.close.assert_called_once()
