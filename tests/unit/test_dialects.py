"""Tests for harness.lib.dialects package."""

import logging
import random
from unittest.mock import patch

import pytest

from harness.lib.dialects import (
    GBaseStrategy,
    KingBaseStrategy,
    MySQLStrategy,
    VastbaseStrategy,
    get_dialect,
    get_dialect_class,
    supported_dialects,
)
from harness.lib.errors import DatabaseConnectionError, UnsupportedDialectError
from harness.lib.models import DatabaseConfig
from harness.lib.resilience import RetryConfig
from harness.lib.schema import SchemaSynthesizer


def _config(dialect: str) -> DatabaseConfig:
    return DatabaseConfig(
        dialect=dialect,
        host="db.local",
        port=3306,
        user="u",
        password="p",
        database="d",
    )


def _connected(cls, backend):
    """Strategy of ``cls`` whose backend is already set to ``backend``."""
    strategy = cls(_config(cls.name), retry=RetryConfig.none())
    strategy._backend = backend
    return strategy


def _cursor(backend):
    return backend.con.cursor.return_value


class _TransientError(Exception):
    pass


# Looks like a driver error so the retry predicate accepts it
_TransientError.__name__ = "OperationalError"
_TransientError.__module__ = "pymysql.err"


# ============================================
# Factory
# ============================================


class TestFactory:
    """Tests for the dialect factory."""

    @pytest.mark.parametrize(
        "tag,cls",
        [
            ("mysql", MySQLStrategy),
            ("kingbase", KingBaseStrategy),
            ("gbase", GBaseStrategy),
            ("vastbase", VastbaseStrategy),
        ],
    )
    def test_selects_strategy_by_tag(self, tag, cls):
        assert get_dialect_class(tag) is cls
        assert isinstance(get_dialect(_config(tag)), cls)

    def test_tag_is_case_insensitive(self):
        assert get_dialect_class(" MySQL ") is MySQLStrategy

    def test_unknown_tag(self):
        with pytest.raises(UnsupportedDialectError) as exc_info:
            get_dialect_class("oracle")

        assert "unsupported database type: oracle" in str(exc_info.value)
        assert "mysql" in exc_info.value.suggestion

    def test_supported_dialects(self):
        assert supported_dialects() == ["gbase", "kingbase", "mysql", "vastbase"]

    @pytest.mark.parametrize(
        "cls,code",
        [(MySQLStrategy, 1), (KingBaseStrategy, 2), (GBaseStrategy, 3), (VastbaseStrategy, 4)],
    )
    def test_catalog_codes(self, cls, code):
        assert cls.catalog_code == code


# ============================================
# Connection handling
# ============================================


class TestConnect:
    """Tests for connect/close."""

    @patch("harness.lib.dialects.mysql.ibis")
    def test_mysql_connects_through_ibis(self, mock_ibis, mock_backend):
        mock_ibis.mysql.connect.return_value = mock_backend
        strategy = MySQLStrategy(_config("mysql"), retry=RetryConfig.none())

        strategy.connect()

        mock_ibis.mysql.connect.assert_called_once_with(
            host="db.local",
            port=3306,
            user="u",
            password="p",
            database="d",
            connect_timeout=10,
        )
        _cursor(mock_backend).execute.assert_called_once_with("SELECT 1")
        assert strategy.raw_connection() is mock_backend

    @patch("harness.lib.dialects.postgres.ibis")
    def test_vastbase_connects_through_postgres_protocol(self, mock_ibis, mock_backend):
        mock_ibis.postgres.connect.return_value = mock_backend
        strategy = VastbaseStrategy(_config("vastbase"), retry=RetryConfig.none())

        strategy.connect()

        mock_ibis.postgres.connect.assert_called_once()
        assert strategy.dialect_name == "vastbase"

    @patch("harness.lib.dialects.mysql.ibis")
    def test_connect_failure_is_wrapped(self, mock_ibis):
        mock_ibis.mysql.connect.side_effect = ValueError("bad credentials")
        strategy = MySQLStrategy(_config("mysql"), retry=RetryConfig(max_attempts=3, backoff_seconds=0, jitter=False))

        with pytest.raises(DatabaseConnectionError) as exc_info:
            strategy.connect()

        # Not a transient error, so no retry
        assert mock_ibis.mysql.connect.call_count == 1
        assert exc_info.value.details["dialect"] == "mysql"
        assert "bad credentials" in exc_info.value.details["cause"]

    @patch("harness.lib.dialects.mysql.ibis")
    def test_transient_failure_is_retried(self, mock_ibis, mock_backend):
        mock_ibis.mysql.connect.side_effect = [_TransientError("gone away"), mock_backend]
        strategy = GBaseStrategy(_config("gbase"), retry=RetryConfig(max_attempts=3, backoff_seconds=0, jitter=False))

        strategy.connect()

        assert mock_ibis.mysql.connect.call_count == 2
        assert strategy.raw_connection() is mock_backend

    def test_raw_connection_requires_connect(self):
        strategy = MySQLStrategy(_config("mysql"))

        with pytest.raises(DatabaseConnectionError):
            strategy.raw_connection()

    def test_close_disconnects_once(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)

        strategy.close()
        strategy.close()

        mock_backend.disconnect.assert_called_once()

    def test_close_swallows_disconnect_errors(self, mock_backend):
        mock_backend.disconnect.side_effect = RuntimeError("socket closed")
        strategy = _connected(MySQLStrategy, mock_backend)

        strategy.close()  # Should not raise

    def test_connection_info(self):
        config = _config("kingbase")
        assert KingBaseStrategy(config).connection_info() is config


# ============================================
# SQL primitives
# ============================================


class TestQuoting:
    def test_mysql_family_uses_backticks(self):
        assert MySQLStrategy(_config("mysql")).quote_identifier("t") == "`t`"
        assert GBaseStrategy(_config("gbase")).quote_identifier("t") == "`t`"

    def test_postgres_family_uses_double_quotes(self):
        assert KingBaseStrategy(_config("kingbase")).quote_identifier("t") == '"t"'
        assert VastbaseStrategy(_config("vastbase")).quote_identifier("t") == '"t"'

    def test_embedded_quote_is_doubled(self):
        assert MySQLStrategy(_config("mysql")).quote_identifier("a`b") == "`a``b`"


class TestTableExists:
    def test_mysql_uses_positional_placeholder(self, mock_backend):
        _cursor(mock_backend).fetchone.return_value = (1,)
        strategy = _connected(MySQLStrategy, mock_backend)

        assert strategy.table_exists("orders") is True

        query, params = _cursor(mock_backend).execute.call_args[0]
        assert "DATABASE()" in query
        assert "%s" in query
        assert params == ("orders",)

    def test_postgres_uses_named_placeholder(self, mock_backend):
        _cursor(mock_backend).fetchone.return_value = (0,)
        strategy = _connected(KingBaseStrategy, mock_backend)

        assert strategy.table_exists("orders") is False

        query, params = _cursor(mock_backend).execute.call_args[0]
        assert "current_schema()" in query
        assert "%(table_name)s" in query
        assert params == {"table_name": "orders"}


class TestRowCountAndCleanup:
    def test_row_count(self, mock_backend):
        _cursor(mock_backend).fetchone.return_value = (1234,)
        strategy = _connected(VastbaseStrategy, mock_backend)

        assert strategy.row_count("orders") == 1234
        assert _cursor(mock_backend).execute.call_args[0][0] == 'SELECT COUNT(*) FROM "orders"'

    def test_cleanup_drops_if_exists(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)

        strategy.cleanup("orders")

        assert _cursor(mock_backend).execute.call_args[0][0] == "DROP TABLE IF EXISTS `orders`"
        mock_backend.con.commit.assert_called_once()

    def test_cursor_is_closed(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)

        strategy.cleanup("orders")

        _cursor(mock_backend).close.assert_called_once()


class TestDdlAndInsert:
    def test_create_table_sql(self):
        strategy = KingBaseStrategy(_config("kingbase"))
        schema = SchemaSynthesizer(strategy.types, random.Random(1)).synthesize("orders", 3, 10)

        sql = strategy.create_table_sql(schema)

        assert sql.startswith('CREATE TABLE "orders" (')
        assert '"id" BIGINT NOT NULL' in sql
        assert 'PRIMARY KEY ("id")' in sql
        assert '"col_2"' in sql

    def test_insert_rows_uses_executemany(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)
        rows = [(1, "a"), (2, "b")]

        inserted = strategy.insert_rows("orders", ["id", "name"], rows)

        assert inserted == 2
        _cursor(mock_backend).executemany.assert_called_once_with(
            "INSERT INTO `orders` (`id`, `name`) VALUES (%s, %s)", rows
        )
        mock_backend.con.commit.assert_called_once()

    def test_insert_nothing_skips_round_trip(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)

        assert strategy.insert_rows("orders", ["id"], []) == 0
        _cursor(mock_backend).executemany.assert_not_called()

    def test_failed_statement_rolls_back(self, mock_backend):
        _cursor(mock_backend).execute.side_effect = RuntimeError("deadlock")
        strategy = _connected(KingBaseStrategy, mock_backend)

        with pytest.raises(RuntimeError):
            strategy.cleanup("orders")

        mock_backend.con.rollback.assert_called_once()
        mock_backend.con.commit.assert_not_called()


class TestTableColumns:
    def test_mysql_reads_information_schema(self, mock_backend):
        _cursor(mock_backend).fetchall.return_value = [
            ("id", "bigint", None, 19, 0, "NO"),
            ("name", "varchar", 40, None, None, "YES"),
        ]
        strategy = _connected(GBaseStrategy, mock_backend)

        columns = strategy.table_columns("orders")

        query, params = _cursor(mock_backend).execute.call_args[0]
        assert "information_schema.columns" in query
        assert "DATABASE()" in query
        assert "ORDER BY ordinal_position" in query
        assert params == ("orders",)
        assert [c.name for c in columns] == ["id", "name"]
        assert not columns[0].nullable
        assert columns[1].length == 40
        assert columns[1].nullable

    def test_postgres_reads_current_schema(self, mock_backend):
        _cursor(mock_backend).fetchall.return_value = [
            ("id", "bigint", None, 64, 0, "NO"),
            ("amount", "numeric", None, 10, 2, "YES"),
        ]
        strategy = _connected(VastbaseStrategy, mock_backend)

        columns = strategy.table_columns("orders")

        query, params = _cursor(mock_backend).execute.call_args[0]
        assert "current_schema()" in query
        assert params == {"table_name": "orders"}
        assert columns[1].to_column_type().ddl == "NUMERIC(10,2)"


class TestStatementTimeout:
    @pytest.mark.parametrize(
        "cls, sql",
        [
            (MySQLStrategy, "SET SESSION max_execution_time = 5000"),
            (GBaseStrategy, "SET SESSION max_execution_time = 5000"),
            (KingBaseStrategy, "SET statement_timeout = 5000"),
            (VastbaseStrategy, "SET statement_timeout = 5000"),
        ],
    )
    def test_session_setting_per_protocol(self, mock_backend, cls, sql):
        strategy = _connected(cls, mock_backend)

        strategy.set_statement_timeout(5)

        assert _cursor(mock_backend).execute.call_args[0][0] == sql

    def test_sub_millisecond_remainder_still_bounds(self, mock_backend):
        strategy = _connected(KingBaseStrategy, mock_backend)

        strategy.set_statement_timeout(0.0001)

        assert _cursor(mock_backend).execute.call_args[0][0] == "SET statement_timeout = 1"

    def test_unlimited_issues_nothing(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)

        strategy.set_statement_timeout(None)

        _cursor(mock_backend).execute.assert_not_called()

    def test_clear_only_after_set(self, mock_backend):
        strategy = _connected(MySQLStrategy, mock_backend)

        strategy.clear_statement_timeout()
        _cursor(mock_backend).execute.assert_not_called()

        strategy.set_statement_timeout(2)
        strategy.clear_statement_timeout()

        assert _cursor(mock_backend).execute.call_args[0][0] == "SET SESSION max_execution_time = 0"

    def test_rejected_setting_is_not_retried(self, mock_backend, caplog):
        _cursor(mock_backend).execute.side_effect = RuntimeError("unknown system variable")
        strategy = _connected(GBaseStrategy, mock_backend)

        with caplog.at_level(logging.WARNING, logger="harness.lib.dialects.base"):
            strategy.set_statement_timeout(5)
            strategy.set_statement_timeout(4)

        assert _cursor(mock_backend).execute.call_count == 1
        assert "statements run unbounded" in caplog.text
