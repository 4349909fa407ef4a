"""Abstract base class for dialect strategies.

A strategy owns one database connection for the lifetime of a run and
implements the small set of primitives the orchestrator needs: connect,
existence and row-count checks, drop, and the DDL/DML used by the data
generator. Everything dialect-specific (driver, identifier quoting,
placeholder style, catalog introspection query) stays inside the
concrete subclasses.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import closing, contextmanager
from typing import TYPE_CHECKING, Any, ClassVar, Iterator, List, Optional, Sequence

from harness.lib.errors import DatabaseConnectionError
from harness.lib.models import DatabaseConfig
from harness.lib.resilience import RetryConfig, retry_operation
from harness.lib.sqltypes import ColumnInfo, TypeCatalog

if TYPE_CHECKING:
    import ibis

    from harness.lib.schema import SchemaDefinition

logger = logging.getLogger(__name__)

__all__ = ["DialectStrategy"]


class DialectStrategy(ABC):
    """Capability contract shared by every supported database family.

    Subclasses set the class attributes and implement ``_open_backend``,
    ``_table_exists_query``, ``_columns_query`` and
    ``_statement_timeout_sql``.
    """

    name: ClassVar[str]
    catalog_code: ClassVar[int]  # dialect code understood by the asset catalog
    types: ClassVar[TypeCatalog]
    quote_char: ClassVar[str]
    placeholder: ClassVar[str] = "%s"

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        retry: Optional[RetryConfig] = None,
        connect_timeout: int = 10,
    ) -> None:
        self.config = config
        self.retry = retry or RetryConfig.default()
        self.connect_timeout = connect_timeout
        self._backend: Optional["ibis.BaseBackend"] = None
        self._statement_timeout_supported = True
        self._statement_timeout_ms: Optional[int] = None

    # ---------- connection ----------

    @abstractmethod
    def _open_backend(self) -> "ibis.BaseBackend":
        """Open the ibis backend for this dialect's wire protocol."""

    def connect(self) -> None:
        """Open and verify the connection.

        Transient driver errors are retried; anything left over is raised
        as DatabaseConnectionError.
        """
        if self._backend is not None:
            return
        logger.info("Connecting to %s", self.config.describe())
        try:
            backend = retry_operation(
                self._open_backend, self.retry, f"{self.name} connect"
            )
            self._ping(backend)
        except Exception as exc:
            raise DatabaseConnectionError(
                "Failed to connect to database",
                dialect=self.name,
                host=self.config.host,
                port=self.config.port,
                cause=exc,
            ) from exc
        self._backend = backend

    def _ping(self, backend: "ibis.BaseBackend") -> None:
        with closing(backend.con.cursor()) as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()

    def raw_connection(self) -> "ibis.BaseBackend":
        """The connected ibis backend."""
        if self._backend is None:
            raise DatabaseConnectionError(
                "Strategy is not connected; call connect() first",
                dialect=self.name,
            )
        return self._backend

    @property
    def dialect_name(self) -> str:
        return self.name

    def connection_info(self) -> DatabaseConfig:
        return self.config

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        backend, self._backend = self._backend, None
        if backend is None:
            return
        try:
            backend.disconnect()
        except Exception as e:
            logger.warning("Error closing %s connection: %s", self.name, e)

    # ---------- SQL helpers ----------

    def quote_identifier(self, identifier: str) -> str:
        q = self.quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"

    @contextmanager
    def _cursor(self, *, commit: bool = False) -> Iterator[Any]:
        """DB-API cursor; the transaction is rolled back if the block fails."""
        con = self.raw_connection().con
        try:
            with closing(con.cursor()) as cursor:
                yield cursor
            if commit:
                con.commit()
        except Exception:
            con.rollback()
            raise

    def _execute(self, query: str, params: Any = None) -> None:
        with self._cursor(commit=True) as cursor:
            cursor.execute(query, params)

    def _fetch_scalar(self, query: str, params: Any = None) -> Any:
        with self._cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
        return row[0] if row else None

    # ---------- capabilities ----------

    def cleanup(self, table: str) -> None:
        """Drop ``table`` if it exists. No error when it is absent."""
        logger.info("Dropping table %s", table)
        self._execute(f"DROP TABLE IF EXISTS {self.quote_identifier(table)}")

    def row_count(self, table: str) -> int:
        value = self._fetch_scalar(f"SELECT COUNT(*) FROM {self.quote_identifier(table)}")
        return int(value or 0)

    @abstractmethod
    def _table_exists_query(self, table: str) -> "tuple[str, Any]":
        """Catalog query counting tables named ``table`` in the current schema."""

    def table_exists(self, table: str) -> bool:
        query, params = self._table_exists_query(table)
        value = self._fetch_scalar(query, params)
        return int(value or 0) > 0

    @abstractmethod
    def _columns_query(self, table: str) -> "tuple[str, Any]":
        """Catalog query listing the columns of ``table`` in ordinal order.

        Selects name, data type, character length, numeric precision,
        numeric scale and the YES/NO nullable flag.
        """

    def table_columns(self, table: str) -> List[ColumnInfo]:
        """Columns of an existing table, key first."""
        query, params = self._columns_query(table)
        with self._cursor() as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [
            ColumnInfo(
                name=name,
                data_type=data_type,
                length=_opt_int(length),
                precision=_opt_int(precision),
                scale=_opt_int(scale),
                nullable=str(nullable).upper() == "YES",
            )
            for name, data_type, length, precision, scale, nullable in rows
        ]

    @abstractmethod
    def _statement_timeout_sql(self, milliseconds: int) -> str:
        """Session setting that aborts any statement running longer than this."""

    def set_statement_timeout(self, seconds: Optional[float]) -> None:
        """Bound every following statement to ``seconds``. None leaves it unbounded.

        A server that rejects the setting is logged once and from then on
        runs statements unbounded.
        """
        if seconds is None or not self._statement_timeout_supported:
            return
        self._apply_statement_timeout(max(1, int(seconds * 1000)))

    def clear_statement_timeout(self) -> None:
        """Remove a bound set earlier (0 disables it on both protocols)."""
        if self._statement_timeout_ms and self._statement_timeout_supported:
            self._apply_statement_timeout(0)

    def _apply_statement_timeout(self, milliseconds: int) -> None:
        try:
            self._execute(self._statement_timeout_sql(milliseconds))
            self._statement_timeout_ms = milliseconds
        except Exception as e:
            self._statement_timeout_supported = False
            logger.warning("%s rejected the statement timeout, statements run unbounded: %s", self.name, e)

    def create_table_sql(self, schema: "SchemaDefinition") -> str:
        """CREATE TABLE statement for ``schema`` with the key as primary key."""
        lines = []
        for f in schema.fields:
            null_sql = "NULL" if f.nullable else "NOT NULL"
            lines.append(f"  {self.quote_identifier(f.name)} {f.sql_type} {null_sql}")
        lines.append(f"  PRIMARY KEY ({self.quote_identifier(schema.key_field.name)})")
        body = ",\n".join(lines)
        return f"CREATE TABLE {self.quote_identifier(schema.table_name)} (\n{body}\n)"

    def create_table(self, schema: "SchemaDefinition") -> None:
        logger.info("Creating table %s with %d fields", schema.table_name, len(schema.fields))
        self._execute(self.create_table_sql(schema))

    def insert_sql(self, table: str, columns: Sequence[str]) -> str:
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        marks = ", ".join(self.placeholder for _ in columns)
        return f"INSERT INTO {self.quote_identifier(table)} ({cols}) VALUES ({marks})"

    def insert_rows(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        """Insert a batch of rows in one round trip. Returns rows sent."""
        if not rows:
            return 0
        with self._cursor(commit=True) as cursor:
            cursor.executemany(self.insert_sql(table, columns), rows)
        return len(rows)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.config.describe()})"


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)
