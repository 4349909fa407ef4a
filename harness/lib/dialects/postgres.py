"""PostgreSQL wire-protocol strategies: KingBase and Vastbase.

Double-quote identifier quoting; the catalog query binds the table name
as a named parameter and scopes it with ``current_schema()``.
"""

from __future__ import annotations

from typing import Any, Tuple

import ibis

from harness.lib.dialects.base import DialectStrategy
from harness.lib.sqltypes import KINGBASE_TYPES, VASTBASE_TYPES

__all__ = ["KingBaseStrategy", "VastbaseStrategy"]

_TABLE_EXISTS_SQL = """
    SELECT COUNT(*)
    FROM information_schema.tables
    WHERE table_schema = current_schema()
    AND table_name = %(table_name)s
"""

_COLUMNS_SQL = """
    SELECT column_name, data_type, character_maximum_length,
           numeric_precision, numeric_scale, is_nullable
    FROM information_schema.columns
    WHERE table_schema = current_schema()
    AND table_name = %(table_name)s
    ORDER BY ordinal_position
"""


class _PostgresProtocolStrategy(DialectStrategy):
    quote_char = '"'

    def _open_backend(self) -> ibis.BaseBackend:
        cfg = self.config
        return ibis.postgres.connect(
            host=cfg.host,
            port=cfg.port,
            user=cfg.user,
            password=cfg.password,
            database=cfg.database,
            connect_timeout=self.connect_timeout,
        )

    def _table_exists_query(self, table: str) -> Tuple[str, Any]:
        return _TABLE_EXISTS_SQL, {"table_name": table}

    def _columns_query(self, table: str) -> Tuple[str, Any]:
        return _COLUMNS_SQL, {"table_name": table}

    def _statement_timeout_sql(self, milliseconds: int) -> str:
        return f"SET statement_timeout = {int(milliseconds)}"


class KingBaseStrategy(_PostgresProtocolStrategy):
    """KingbaseES in PostgreSQL compatibility mode."""

    name = "kingbase"
    catalog_code = 2
    types = KINGBASE_TYPES


class VastbaseStrategy(_PostgresProtocolStrategy):
    """Vastbase G100."""

    name = "vastbase"
    catalog_code = 4
    types = VASTBASE_TYPES
