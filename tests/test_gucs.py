"""Tests for session settings."""

import pytest
from structlog.testing import capture_logs

from pgsession.db import GucEntry, GucScope, apply, sanitize
from pgsession.db.gucs import DEFAULT_APPLICATION_NAME, set_statement


class TestSanitize:
    """Tests for sanitize()."""

    def test_empty(self):
        assert sanitize([]) == [
            GucEntry("client_encoding", "utf8"),
            GucEntry("application_name", DEFAULT_APPLICATION_NAME),
        ]

    def test_foreign_client_encoding_dropped(self):
        with capture_logs() as logs:
            result = sanitize([("client_encoding", "latin1"), ("application_name", "myapp")])

        assert result == [
            GucEntry("client_encoding", "utf8"),
            GucEntry("application_name", "myapp"),
        ]
        warnings = [log for log in logs if log["log_level"] == "warning"]
        assert len(warnings) == 1
        assert warnings[0]["value"] == "latin1"

    def test_utf8_spellings_kept_unique(self):
        with capture_logs() as logs:
            result = sanitize([("CLIENT_ENCODING", "UTF-8"), ("client_encoding", "utf8")])

        assert [entry.name.lower() for entry in result].count("client_encoding") == 1
        assert not [log for log in logs if log["log_level"] == "warning"]

    def test_order_and_case_insensitive_names(self):
        result = sanitize([("work_mem", "64MB"), ("Application_Name", "loader"), ("search_path", "etl, public")])

        assert result == [
            GucEntry("client_encoding", "utf8"),
            GucEntry("work_mem", "64MB"),
            GucEntry("Application_Name", "loader"),
            GucEntry("search_path", "etl, public"),
        ]

    def test_default_application_name_appended_last(self):
        result = sanitize([("work_mem", "64MB")], application_name="nightly-load")

        assert result[-1] == GucEntry("application_name", "nightly-load")

    def test_single_application_name(self):
        result = sanitize([("application_name", "first"), ("application_name", "second")])

        names = [entry for entry in result if entry.is_named("application_name")]
        assert names == [GucEntry("application_name", "first")]

    def test_input_not_mutated(self):
        entries = [("client_encoding", "latin1")]
        sanitize(entries)
        assert entries == [("client_encoding", "latin1")]


class TestApply:
    """Tests for SET statement generation and apply()."""

    def test_values_quoted(self):
        assert set_statement(GucEntry("work_mem", "64MB")) == "SET work_mem TO '64MB'"
        assert set_statement(GucEntry("application_name", "o'brien")) == (
            "SET application_name TO 'o''brien'"
        )

    def test_search_path_unquoted(self):
        assert set_statement(GucEntry("Search_Path", "etl, public")) == "SET Search_Path TO etl, public"

    def test_local_scope(self):
        statement = set_statement(GucEntry("work_mem", "1GB"), GucScope.TRANSACTION)
        assert statement == "SET LOCAL work_mem TO '1GB'"

    def test_apply_runs_in_order(self, session, pg_connection):
        _, cursor = pg_connection

        apply(sanitize([("search_path", "etl")]), session, GucScope.TRANSACTION)

        assert [call.args[0] for call in cursor.execute.call_args_list] == [
            "SET LOCAL client_encoding TO 'utf8'",
            "SET LOCAL search_path TO etl",
            "SET LOCAL application_name TO 'pgsession'",
        ]

    def test_qualified_name_accepted(self):
        statement = set_statement(GucEntry("auto_explain.log_min_duration", "0"))
        assert statement == "SET auto_explain.log_min_duration TO '0'"

    @pytest.mark.parametrize("name", ["work_mem; drop table orders", "work_mem\n", "1work_mem", ""])
    def test_invalid_name_rejected(self, name):
        with pytest.raises(ValueError, match="Invalid setting name"):
            set_statement(GucEntry(name, "1"))

    def test_apply_stops_before_invalid_name(self, session, pg_connection):
        _, cursor = pg_connection

        with pytest.raises(ValueError):
            apply([GucEntry("work_mem", "64MB"), GucEntry("x TO 1; reset all", "1")], session)

        assert [call.args[0] for call in cursor.execute.call_args_list] == ["SET work_mem TO '64MB'"]
