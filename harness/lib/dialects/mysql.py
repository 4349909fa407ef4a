"""MySQL wire-protocol strategies: MySQL and GBase.

Backtick identifier quoting; the catalog query binds the table name as a
positional parameter and scopes it with ``DATABASE()``.
"""

from __future__ import annotations

from typing import Any, Tuple

import ibis

from harness.lib.dialects.base import DialectStrategy
from harness.lib.sqltypes import GBASE_TYPES, MYSQL_TYPES

__all__ = ["MySQLStrategy", "GBaseStrategy"]

_TABLE_EXISTS_SQL = """
    SELECT COUNT(*)
    FROM information_schema.tables
    WHERE table_schema = DATABASE()
    AND table_name = %s
"""

_COLUMNS_SQL = """
    SELECT column_name, data_type, character_maximum_length,
           numeric_precision, numeric_scale, is_nullable
    FROM information_schema.columns
    WHERE table_schema = DATABASE()
    AND table_name = %s
    ORDER BY ordinal_position
"""


class MySQLStrategy(DialectStrategy):
    """MySQL / MariaDB."""

    name = "mysql"
    catalog_code = 1
    types = MYSQL_TYPES
    quote_char = "`"

    def _open_backend(self) -> ibis.BaseBackend:
        cfg = self.config
        return ibis.mysql.connect(
            host=cfg.host,
            port=cfg.port,
            user=cfg.user,
            password=cfg.password,
            database=cfg.database,
            connect_timeout=self.connect_timeout,
        )

    def _table_exists_query(self, table: str) -> Tuple[str, Any]:
        return _TABLE_EXISTS_SQL, (table,)

    def _columns_query(self, table: str) -> Tuple[str, Any]:
        return _COLUMNS_SQL, (table,)

    def _statement_timeout_sql(self, milliseconds: int) -> str:
        # Only bounds SELECT statements on this protocol
        return f"SET SESSION max_execution_time = {int(milliseconds)}"


class GBaseStrategy(MySQLStrategy):
    """GBase 8a, reached over the MySQL protocol."""

    name = "gbase"
    catalog_code = 3
    types = GBASE_TYPES
