"""Tests for harness.lib.sqltypes module."""

import pytest

from harness.lib.sqltypes import (
    GBASE_TYPES,
    KINGBASE_TYPES,
    LOB_CAPACITY,
    MYSQL_TYPES,
    VASTBASE_TYPES,
    ColumnInfo,
    ColumnType,
    TypeCategory,
)

ALL_CATALOGS = [MYSQL_TYPES, GBASE_TYPES, KINGBASE_TYPES, VASTBASE_TYPES]


class TestColumnType:
    """Tests for ColumnType rendering and capacity."""

    def test_ddl_with_length(self):
        assert ColumnType(TypeCategory.VARCHAR, "VARCHAR", length=255).ddl == "VARCHAR(255)"

    def test_ddl_with_precision(self):
        assert ColumnType(TypeCategory.DECIMAL, "DECIMAL", precision=18, scale=4).ddl == "DECIMAL(18,4)"

    def test_ddl_bare(self):
        assert ColumnType(TypeCategory.DATE, "DATE").ddl == "DATE"

    def test_capacity_of_character_types_is_declared_length(self):
        assert ColumnType(TypeCategory.CHAR, "CHAR", length=100).capacity == 100
        assert ColumnType(TypeCategory.VARCHAR, "VARCHAR", length=512).capacity == 512

    def test_capacity_of_large_objects_is_constant(self):
        assert ColumnType(TypeCategory.TEXT, "TEXT").capacity == LOB_CAPACITY
        assert ColumnType(TypeCategory.BINARY, "BLOB").capacity == LOB_CAPACITY

    @pytest.mark.parametrize("category", [TypeCategory.INTEGER, TypeCategory.FLOAT, TypeCategory.DATE, TypeCategory.TIMESTAMP])
    def test_capacity_of_numeric_and_temporal_is_zero(self, category):
        assert ColumnType(category, "X").capacity == 0

    def test_with_length_only_resizes_varchar(self):
        varchar = ColumnType(TypeCategory.VARCHAR, "VARCHAR", length=1024)
        char = ColumnType(TypeCategory.CHAR, "CHAR", length=255)

        assert varchar.with_length(64).ddl == "VARCHAR(64)"
        assert char.with_length(64) is char


class TestTypeCatalog:
    """Tests for hint resolution."""

    @pytest.mark.parametrize("catalog", ALL_CATALOGS)
    def test_key_type_is_wide_integer(self, catalog):
        assert catalog.key_type.category is TypeCategory.INTEGER
        assert catalog.key_type.int_bytes == 8

    @pytest.mark.parametrize("catalog", ALL_CATALOGS)
    def test_pool_covers_every_category_family(self, catalog):
        categories = {t.category for t in catalog.pool}

        assert TypeCategory.INTEGER in categories
        assert TypeCategory.VARCHAR in categories
        assert TypeCategory.BINARY in categories
        assert categories & {TypeCategory.DATETIME, TypeCategory.TIMESTAMP}

    def test_exact_hint_is_case_insensitive_and_trimmed(self):
        resolution = MYSQL_TYPES.resolve_hint("  VarChar ")

        assert resolution.exact
        assert resolution.column_type.ddl == "VARCHAR(255)"

    def test_heuristic_hint(self):
        resolution = MYSQL_TYPES.resolve_hint("unsigned_int")

        assert not resolution.exact
        assert resolution.column_type.ddl == "BIGINT"

    def test_temporal_heuristic_depends_on_dialect(self):
        assert MYSQL_TYPES.resolve_hint("created_time").column_type.ddl == "DATETIME"
        assert KINGBASE_TYPES.resolve_hint("created_time").column_type.ddl == "TIMESTAMP"

    def test_unmatched_hint_returns_none(self):
        assert MYSQL_TYPES.resolve_hint("geometry") is None

    def test_kingbase_has_clob_but_vastbase_does_not(self):
        assert KINGBASE_TYPES.resolve_hint("clob").exact
        assert VASTBASE_TYPES.resolve_hint("clob") is None


class TestColumnInfo:
    """Tests for mapping reported column types back to ColumnType."""

    def test_varchar_keeps_declared_length(self):
        column_type = ColumnInfo("f1", "varchar", length=64).to_column_type()

        assert column_type.category is TypeCategory.VARCHAR
        assert column_type.ddl == "VARCHAR(64)"
        assert column_type.capacity == 64

    def test_postgres_spelling_of_varchar(self):
        column_type = ColumnInfo("f1", "character varying", length=32).to_column_type()

        assert column_type.category is TypeCategory.VARCHAR
        assert column_type.capacity == 32

    def test_numeric_keeps_precision_and_scale(self):
        column_type = ColumnInfo("f2", "numeric", precision=10, scale=2).to_column_type()

        assert column_type.category is TypeCategory.DECIMAL
        assert column_type.ddl == "NUMERIC(10,2)"

    @pytest.mark.parametrize("data_type, nbytes", [("tinyint", 1), ("int", 4), ("integer", 4), ("bigint", 8)])
    def test_integer_widths(self, data_type, nbytes):
        column_type = ColumnInfo("id", data_type).to_column_type()

        assert column_type.category is TypeCategory.INTEGER
        assert column_type.int_bytes == nbytes

    def test_timestamp_with_time_zone(self):
        column_type = ColumnInfo("ts", "timestamp with time zone").to_column_type()

        assert column_type.category is TypeCategory.TIMESTAMP

    def test_unknown_type_maps_to_none(self):
        assert ColumnInfo("geo", "geometry").to_column_type() is None
