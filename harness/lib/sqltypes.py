"""Column type categories and per-dialect type catalogs.

Types are tagged with a ``TypeCategory`` instead of being handled as free
strings, so capacity rules and cap rewriting key off the category rather
than substring checks on the rendered SQL.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

__all__ = [
    "ColumnInfo",
    "ColumnType",
    "HintResolution",
    "TypeCatalog",
    "TypeCategory",
    "LOB_CAPACITY",
    "MYSQL_TYPES",
    "GBASE_TYPES",
    "KINGBASE_TYPES",
    "VASTBASE_TYPES",
]

# Capacity assigned to large-object types (TEXT, CLOB, BLOB, BYTEA)
LOB_CAPACITY = 1024


class TypeCategory(Enum):
    """Kind of value a column stores."""

    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    CHAR = "char"  # fixed width
    VARCHAR = "varchar"  # variable width, resizable by the cap
    TEXT = "text"  # character large object
    DATE = "date"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    BINARY = "binary"  # binary large object

    @property
    def is_character(self) -> bool:
        return self in (TypeCategory.CHAR, TypeCategory.VARCHAR, TypeCategory.TEXT)

    @property
    def is_temporal(self) -> bool:
        return self in (TypeCategory.DATE, TypeCategory.DATETIME, TypeCategory.TIMESTAMP)

    @property
    def is_numeric(self) -> bool:
        return self in (TypeCategory.INTEGER, TypeCategory.FLOAT, TypeCategory.DECIMAL)


@dataclass(frozen=True)
class ColumnType:
    """A concrete SQL column type.

    ``name`` is the bare type keyword (``VARCHAR``, ``DOUBLE PRECISION``);
    ``length`` applies to character types, ``precision``/``scale`` to
    fixed-point types.
    """

    category: TypeCategory
    name: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    # Integer byte width, used to keep synthesized values in range
    int_bytes: Optional[int] = field(default=None, compare=False)

    @property
    def ddl(self) -> str:
        """The type as written in CREATE TABLE."""
        if self.length is not None:
            return f"{self.name}({self.length})"
        if self.precision is not None:
            return f"{self.name}({self.precision},{self.scale or 0})"
        return self.name

    @property
    def capacity(self) -> int:
        """Byte/character capacity; 0 means unbounded (numeric, temporal)."""
        if self.category in (TypeCategory.CHAR, TypeCategory.VARCHAR):
            return self.length or 0
        if self.category in (TypeCategory.TEXT, TypeCategory.BINARY):
            return LOB_CAPACITY
        return 0

    def with_length(self, length: int) -> "ColumnType":
        """Copy of a VARCHAR type re-declared with ``length``.

        Any other category is returned unchanged.
        """
        if self.category is not TypeCategory.VARCHAR:
            return self
        return replace(self, length=length)

    def __str__(self) -> str:
        return self.ddl


def _int(name: str, nbytes: int) -> ColumnType:
    return ColumnType(TypeCategory.INTEGER, name, int_bytes=nbytes)


def _dec(name: str, precision: int, scale: int) -> ColumnType:
    return ColumnType(TypeCategory.DECIMAL, name, precision=precision, scale=scale)


def _char(name: str, length: int) -> ColumnType:
    return ColumnType(TypeCategory.CHAR, name, length=length)


def _varchar(length: int) -> ColumnType:
    return ColumnType(TypeCategory.VARCHAR, "VARCHAR", length=length)


def _simple(category: TypeCategory, name: str) -> ColumnType:
    return ColumnType(category, name)


@dataclass(frozen=True)
class HintResolution:
    """Outcome of resolving one template type hint."""

    token: str
    column_type: ColumnType
    exact: bool


# Keyword heuristic, checked in order. Maps a keyword found inside an
# unrecognized hint to the fallback slot of a catalog.
_HEURISTIC_KEYWORDS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("int",), "integer"),
    (("char",), "varchar"),
    (("text",), "text"),
    (("decimal", "numeric"), "decimal"),
    (("date", "time"), "temporal"),
)


@dataclass(frozen=True)
class TypeCatalog:
    """Types a dialect offers to the schema synthesizer.

    Attributes:
        key_type: Wide integer used for the surrogate key column.
        pool: Types drawn from when the template gives no hints.
        hints: Template hint token -> concrete type.
        fallbacks: Heuristic slot -> type for unrecognized hints.
    """

    key_type: ColumnType
    pool: Tuple[ColumnType, ...]
    hints: Mapping[str, ColumnType]
    fallbacks: Mapping[str, ColumnType]

    def resolve_hint(self, token: str) -> Optional[HintResolution]:
        """Map a template hint to a concrete type.

        Tokens are compared trimmed and case-insensitive. Returns None when
        the token is neither a catalog key nor matches a heuristic keyword.
        """
        normalized = token.strip().lower()
        if normalized in self.hints:
            return HintResolution(normalized, self.hints[normalized], exact=True)

        for keywords, slot in _HEURISTIC_KEYWORDS:
            if any(keyword in normalized for keyword in keywords):
                return HintResolution(normalized, self.fallbacks[slot], exact=False)
        return None


def _fallbacks(integer: ColumnType, temporal: ColumnType) -> Dict[str, ColumnType]:
    return {
        "integer": integer,
        "varchar": _varchar(255),
        "text": _simple(TypeCategory.TEXT, "TEXT"),
        "decimal": _dec("DECIMAL", 10, 2),
        "temporal": temporal,
    }


_BIGINT = _int("BIGINT", 8)

MYSQL_TYPES = TypeCatalog(
    key_type=_BIGINT,
    pool=(
        _int("TINYINT", 1), _int("SMALLINT", 2), _int("MEDIUMINT", 3), _int("INT", 4), _BIGINT,
        _simple(TypeCategory.FLOAT, "FLOAT"), _simple(TypeCategory.FLOAT, "DOUBLE"),
        _dec("DECIMAL", 10, 2), _dec("DECIMAL", 18, 4), _dec("DECIMAL", 38, 6),
        _char("CHAR", 100), _char("CHAR", 255),
        _varchar(255), _varchar(512), _varchar(1024),
        _simple(TypeCategory.TEXT, "TEXT"), _simple(TypeCategory.TEXT, "MEDIUMTEXT"),
        _simple(TypeCategory.DATE, "DATE"), _simple(TypeCategory.DATETIME, "DATETIME"),
        _simple(TypeCategory.TIMESTAMP, "TIMESTAMP"),
        _simple(TypeCategory.BINARY, "BLOB"), _simple(TypeCategory.BINARY, "TINYBLOB"),
        _simple(TypeCategory.BINARY, "MEDIUMBLOB"),
    ),
    hints={
        "int": _int("INT", 4),
        "tinyint": _int("TINYINT", 1),
        "smallint": _int("SMALLINT", 2),
        "mediumint": _int("MEDIUMINT", 3),
        "bigint": _BIGINT,
        "float": _simple(TypeCategory.FLOAT, "FLOAT"),
        "double": _simple(TypeCategory.FLOAT, "DOUBLE"),
        "decimal": _dec("DECIMAL", 10, 2),
        "decimal18": _dec("DECIMAL", 18, 4),
        "decimal38": _dec("DECIMAL", 38, 6),
        "varchar": _varchar(255),
        "char": _char("CHAR", 255),
        "text": _simple(TypeCategory.TEXT, "TEXT"),
        "mediumtext": _simple(TypeCategory.TEXT, "MEDIUMTEXT"),
        "date": _simple(TypeCategory.DATE, "DATE"),
        "datetime": _simple(TypeCategory.DATETIME, "DATETIME"),
        "timestamp": _simple(TypeCategory.TIMESTAMP, "TIMESTAMP"),
        "blob": _simple(TypeCategory.BINARY, "BLOB"),
        "tinyblob": _simple(TypeCategory.BINARY, "TINYBLOB"),
        "mediumblob": _simple(TypeCategory.BINARY, "MEDIUMBLOB"),
    },
    fallbacks=_fallbacks(_BIGINT, _simple(TypeCategory.DATETIME, "DATETIME")),
)

GBASE_TYPES = TypeCatalog(
    key_type=_BIGINT,
    pool=(
        _int("TINYINT", 1), _int("SMALLINT", 2), _int("INT", 4), _BIGINT,
        _simple(TypeCategory.FLOAT, "FLOAT"), _simple(TypeCategory.FLOAT, "DOUBLE"),
        _dec("DECIMAL", 10, 2),
        _varchar(255), _varchar(512), _varchar(1024),
        _simple(TypeCategory.TEXT, "TEXT"), _simple(TypeCategory.TEXT, "CLOB"),
        _simple(TypeCategory.DATE, "DATE"), _simple(TypeCategory.DATETIME, "DATETIME"),
        _simple(TypeCategory.TIMESTAMP, "TIMESTAMP"),
        _simple(TypeCategory.BINARY, "BLOB"),
    ),
    hints={
        "int": _int("INT", 4),
        "tinyint": _int("TINYINT", 1),
        "smallint": _int("SMALLINT", 2),
        "bigint": _BIGINT,
        "float": _simple(TypeCategory.FLOAT, "FLOAT"),
        "double": _simple(TypeCategory.FLOAT, "DOUBLE"),
        "decimal": _dec("DECIMAL", 10, 2),
        "varchar": _varchar(255),
        "char": _char("CHAR", 255),
        "text": _simple(TypeCategory.TEXT, "TEXT"),
        "clob": _simple(TypeCategory.TEXT, "CLOB"),
        "date": _simple(TypeCategory.DATE, "DATE"),
        "datetime": _simple(TypeCategory.DATETIME, "DATETIME"),
        "timestamp": _simple(TypeCategory.TIMESTAMP, "TIMESTAMP"),
        "blob": _simple(TypeCategory.BINARY, "BLOB"),
    },
    fallbacks=_fallbacks(_BIGINT, _simple(TypeCategory.DATETIME, "DATETIME")),
)

_PG_HINTS: Dict[str, ColumnType] = {
    "int": _int("INTEGER", 4),
    "smallint": _int("SMALLINT", 2),
    "bigint": _BIGINT,
    "real": _simple(TypeCategory.FLOAT, "REAL"),
    "double": _simple(TypeCategory.FLOAT, "DOUBLE PRECISION"),
    "numeric": _dec("NUMERIC", 10, 2),
    "decimal": _dec("NUMERIC", 10, 2),
    "varchar": _varchar(255),
    "char": _char("CHAR", 255),
    "text": _simple(TypeCategory.TEXT, "TEXT"),
    "date": _simple(TypeCategory.DATE, "DATE"),
    "timestamp": _simple(TypeCategory.TIMESTAMP, "TIMESTAMP"),
    "bytea": _simple(TypeCategory.BINARY, "BYTEA"),
}

_PG_POOL: Tuple[ColumnType, ...] = (
    _int("SMALLINT", 2), _int("INTEGER", 4), _BIGINT,
    _simple(TypeCategory.FLOAT, "REAL"), _simple(TypeCategory.FLOAT, "DOUBLE PRECISION"),
    _dec("NUMERIC", 10, 2),
    _varchar(255), _varchar(512), _varchar(1024),
    _simple(TypeCategory.TEXT, "TEXT"),
)

_PG_TAIL: Tuple[ColumnType, ...] = (
    _simple(TypeCategory.DATE, "DATE"), _simple(TypeCategory.TIMESTAMP, "TIMESTAMP"),
    _simple(TypeCategory.BINARY, "BYTEA"),
)

KINGBASE_TYPES = TypeCatalog(
    key_type=_BIGINT,
    pool=_PG_POOL + (_simple(TypeCategory.TEXT, "CLOB"),) + _PG_TAIL,
    hints={**_PG_HINTS, "clob": _simple(TypeCategory.TEXT, "CLOB")},
    fallbacks=_fallbacks(_BIGINT, _simple(TypeCategory.TIMESTAMP, "TIMESTAMP")),
)

VASTBASE_TYPES = TypeCatalog(
    key_type=_BIGINT,
    pool=_PG_POOL + _PG_TAIL,
    hints=dict(_PG_HINTS),
    fallbacks=_fallbacks(_BIGINT, _simple(TypeCategory.TIMESTAMP, "TIMESTAMP")),
)


# information_schema.columns data_type -> (category, integer byte width).
# Covers every type the catalogs above can create, as both protocols
# report them.
_REPORTED_TYPES: Dict[str, Tuple[TypeCategory, Optional[int]]] = {
    "tinyint": (TypeCategory.INTEGER, 1),
    "smallint": (TypeCategory.INTEGER, 2),
    "mediumint": (TypeCategory.INTEGER, 3),
    "int": (TypeCategory.INTEGER, 4),
    "integer": (TypeCategory.INTEGER, 4),
    "bigint": (TypeCategory.INTEGER, 8),
    "float": (TypeCategory.FLOAT, None),
    "double": (TypeCategory.FLOAT, None),
    "real": (TypeCategory.FLOAT, None),
    "double precision": (TypeCategory.FLOAT, None),
    "decimal": (TypeCategory.DECIMAL, None),
    "numeric": (TypeCategory.DECIMAL, None),
    "char": (TypeCategory.CHAR, None),
    "character": (TypeCategory.CHAR, None),
    "bpchar": (TypeCategory.CHAR, None),
    "varchar": (TypeCategory.VARCHAR, None),
    "character varying": (TypeCategory.VARCHAR, None),
    "text": (TypeCategory.TEXT, None),
    "tinytext": (TypeCategory.TEXT, None),
    "mediumtext": (TypeCategory.TEXT, None),
    "longtext": (TypeCategory.TEXT, None),
    "clob": (TypeCategory.TEXT, None),
    "date": (TypeCategory.DATE, None),
    "datetime": (TypeCategory.DATETIME, None),
    "timestamp": (TypeCategory.TIMESTAMP, None),
    "timestamp without time zone": (TypeCategory.TIMESTAMP, None),
    "timestamp with time zone": (TypeCategory.TIMESTAMP, None),
    "blob": (TypeCategory.BINARY, None),
    "tinyblob": (TypeCategory.BINARY, None),
    "mediumblob": (TypeCategory.BINARY, None),
    "longblob": (TypeCategory.BINARY, None),
    "bytea": (TypeCategory.BINARY, None),
}


@dataclass(frozen=True)
class ColumnInfo:
    """One column of an existing table, as the database catalog reports it."""

    name: str
    data_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nullable: bool = True

    def to_column_type(self) -> Optional[ColumnType]:
        """The equivalent ColumnType, or None for a type values cannot be made for."""
        reported = _REPORTED_TYPES.get(self.data_type.strip().lower())
        if reported is None:
            return None
        category, int_bytes = reported
        name = self.data_type.strip().upper()
        if category in (TypeCategory.CHAR, TypeCategory.VARCHAR):
            return ColumnType(category, name, length=self.length)
        if category is TypeCategory.DECIMAL:
            return ColumnType(category, name, precision=self.precision, scale=self.scale or 0)
        return ColumnType(category, name, int_bytes=int_bytes)
