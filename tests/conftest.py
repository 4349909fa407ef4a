"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import MagicMock

import pytest

from harness.lib.dialects.base import DialectStrategy
from harness.lib.models import (
    AssertionConfig,
    DatabaseConfig,
    DataConfig,
    SchemaConfig,
    TargetDatabase,
    TestTemplate,
)
from harness.lib.resilience import RetryConfig
from harness.lib.schema import SchemaDefinition
from harness.lib.sqltypes import MYSQL_TYPES, ColumnInfo


class InMemoryDialect(DialectStrategy):
    """Dialect strategy backed by a dict of table -> rows.

    Records every mutating call in ``calls`` so tests can assert on the
    sequence of database side effects.
    """

    name = "mysql"
    catalog_code = 1
    types = MYSQL_TYPES
    quote_char = "`"

    def __init__(self, config: DatabaseConfig, tables: Optional[Dict[str, List[tuple]]] = None):
        super().__init__(config, retry=RetryConfig.none())
        self.tables: Dict[str, List[tuple]] = tables if tables is not None else {}
        self.layouts: Dict[str, SchemaDefinition] = {}
        self.calls: List[tuple] = []
        self.statement_timeouts: List[Optional[float]] = []
        self.connected = False
        self.fail_connect: Optional[BaseException] = None
        self.fail_insert: Optional[BaseException] = None
        self.fail_cleanup: Optional[BaseException] = None

    def _open_backend(self):
        return MagicMock()

    def _table_exists_query(self, table: str):
        return "", None

    def _columns_query(self, table: str):
        return "", None

    def _statement_timeout_sql(self, milliseconds: int) -> str:
        return ""

    def connect(self) -> None:
        self.calls.append(("connect",))
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected = True

    def table_exists(self, table: str) -> bool:
        return table in self.tables

    def row_count(self, table: str) -> int:
        if table not in self.tables:
            raise RuntimeError(f"table {table} does not exist")
        return len(self.tables[table])

    def table_columns(self, table: str) -> List[ColumnInfo]:
        return [
            ColumnInfo(
                name=f.name,
                data_type=f.column_type.name,
                length=f.column_type.length,
                precision=f.column_type.precision,
                scale=f.column_type.scale,
                nullable=f.nullable,
            )
            for f in self.layouts[table].fields
        ]

    def set_statement_timeout(self, seconds: Optional[float]) -> None:
        self.statement_timeouts.append(seconds)

    def clear_statement_timeout(self) -> None:
        pass

    def cleanup(self, table: str) -> None:
        self.calls.append(("cleanup", table))
        if self.fail_cleanup is not None:
            raise self.fail_cleanup
        self.tables.pop(table, None)
        self.layouts.pop(table, None)

    def create_table(self, schema: SchemaDefinition) -> None:
        self.calls.append(("create_table", schema.table_name))
        self.tables[schema.table_name] = []
        self.layouts[schema.table_name] = schema

    def insert_rows(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        if self.fail_insert is not None:
            raise self.fail_insert
        self.tables[table].extend(tuple(r) for r in rows)
        return len(rows)

    def close(self) -> None:
        self.connected = False


@pytest.fixture
def db_config() -> DatabaseConfig:
    return DatabaseConfig(
        dialect="mysql",
        host="db.example.com",
        port=3306,
        user="tester",
        password="secret",
        database="test_data",
        name="local_mysql",
    )


@pytest.fixture
def memory_dialect(db_config) -> InMemoryDialect:
    return InMemoryDialect(db_config)


@pytest.fixture
def make_template():
    """Factory for small templates; keyword arguments override sections."""

    def _make(
        name: str = "orders_read",
        row_count: int = 100,
        tests=None,
        table_name: Optional[str] = None,
        asset_name: Optional[str] = None,
        keep_table: bool = False,
        field_count: int = 4,
        seed: Optional[int] = 7,
    ) -> TestTemplate:
        if tests is None:
            tests = (AssertionConfig(kind="read", expected=row_count),)
        return TestTemplate(
            name=name,
            database=TargetDatabase(dialect="mysql"),
            schema=SchemaConfig(field_count=field_count, table_name=table_name, asset_name=asset_name),
            data=DataConfig(row_count=row_count, keep_table=keep_table, batch_size=40),
            tests=tuple(tests),
            seed=seed,
        )

    return _make


@pytest.fixture
def mock_backend():
    """ibis backend double exposing a DB-API connection on ``.con``."""
    backend = MagicMock()
    cursor = MagicMock()
    backend.con.cursor.return_value = cursor
    cursor.fetchone.return_value = (0,)
    return backend


@pytest.fixture
def dialect_factory(db_config):
    """Builds independent in-memory dialects sharing one connection profile."""

    def _make() -> InMemoryDialect:
        return InMemoryDialect(db_config)

    return _make
