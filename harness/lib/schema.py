"""Schema synthesis: abstract field spec -> dialect column definitions.

The synthesizer never looks at a dialect tag. It works from the
``TypeCatalog`` a dialect strategy hands it, and draws every random
choice from an explicit ``random.Random`` so a fixed seed replays the
same schema.

Rules:
- Field count is clamped to [1, 16].
- Field 0 is always the non-nullable surrogate key (the catalog's wide
  integer type).
- Remaining fields draw a type uniformly from the template's hint types
  when given, otherwise from the catalog's full pool.
- A size cap only narrows width: VARCHAR declarations are rewritten to
  the cap, other types keep their declaration.
- Roughly 30% of non-key fields are nullable.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from harness.lib.errors import ConfigurationError
from harness.lib.sqltypes import ColumnInfo, ColumnType, TypeCatalog, TypeCategory

logger = logging.getLogger(__name__)

__all__ = [
    "FieldSpec",
    "SchemaDefinition",
    "SchemaSynthesizer",
    "clamp_field_count",
    "resolve_type_hints",
    "schema_from_columns",
    "KEY_FIELD_NAME",
    "MAX_FIELDS",
    "MIN_FIELDS",
    "NULLABLE_PROBABILITY",
]

KEY_FIELD_NAME = "id"
MIN_FIELDS = 1
MAX_FIELDS = 16
NULLABLE_PROBABILITY = 0.3


@dataclass(frozen=True)
class FieldSpec:
    """One generated column.

    ``max_size`` is the byte/character capacity; 0 means unbounded.
    """

    name: str
    column_type: ColumnType
    max_size: int
    nullable: bool

    @property
    def sql_type(self) -> str:
        return self.column_type.ddl


@dataclass(frozen=True)
class SchemaDefinition:
    """A synthesized table: ordered fields with the key at index 0."""

    table_name: str
    fields: Tuple[FieldSpec, ...]
    row_count: int

    @property
    def key_field(self) -> FieldSpec:
        return self.fields[0]

    @property
    def column_names(self) -> List[str]:
        return [f.name for f in self.fields]


def clamp_field_count(field_count: int) -> int:
    """Clamp a requested field count into [MIN_FIELDS, MAX_FIELDS]."""
    return max(MIN_FIELDS, min(MAX_FIELDS, field_count))


def resolve_type_hints(catalog: TypeCatalog, hints: Iterable[str]) -> List[ColumnType]:
    """Map template hint tokens to concrete types.

    Tokens resolved by the keyword heuristic are accepted with a warning.
    Tokens that match nothing raise ConfigurationError so typos are caught
    when the template is loaded.
    """
    resolved: List[ColumnType] = []
    for token in hints:
        resolution = catalog.resolve_hint(token)
        if resolution is None:
            raise ConfigurationError(
                f"Unrecognized field type hint '{token}'",
                field="schema.field_types",
                value=token,
                suggestion=f"Use one of: {', '.join(sorted(catalog.hints))}",
            )
        if not resolution.exact:
            logger.warning(
                "Field type hint '%s' is not a known type; guessed %s",
                token,
                resolution.column_type.ddl,
            )
        resolved.append(resolution.column_type)
    return resolved


class SchemaSynthesizer:
    """Generates table schemas from a dialect's type catalog.

    Args:
        catalog: Types offered by the target dialect.
        rng: Random source for type and nullability draws.
    """

    def __init__(self, catalog: TypeCatalog, rng: Optional[random.Random] = None) -> None:
        self.catalog = catalog
        self.rng = rng or random.Random()

    def synthesize(
        self,
        table_name: str,
        field_count: int,
        row_count: int,
        type_hints: Sequence[str] = (),
        max_field_size: int = 0,
    ) -> SchemaDefinition:
        """Build a schema for ``table_name``.

        Args:
            table_name: Resolved table name.
            field_count: Requested number of fields, key included.
            row_count: Rows the table should hold.
            type_hints: Optional template type tokens forming the draw pool.
            max_field_size: Capacity cap; 0 disables the cap.
        """
        count = clamp_field_count(field_count)
        if count != field_count:
            logger.debug("Clamped field_count %d to %d", field_count, count)

        hinted = [h for h in type_hints if h and h.strip()]
        pool: Sequence[ColumnType]
        if hinted:
            pool = resolve_type_hints(self.catalog, hinted)
        else:
            pool = self.catalog.pool

        fields = [
            FieldSpec(
                name=KEY_FIELD_NAME,
                column_type=self.catalog.key_type,
                max_size=0,
                nullable=False,
            )
        ]
        for index in range(1, count):
            fields.append(self._generate_field(index, pool, max_field_size))

        return SchemaDefinition(table_name=table_name, fields=tuple(fields), row_count=row_count)

    def _generate_field(
        self,
        index: int,
        pool: Sequence[ColumnType],
        max_field_size: int,
    ) -> FieldSpec:
        column_type = self.rng.choice(pool)
        max_size = column_type.capacity

        if max_field_size > 0 and max_size > max_field_size:
            max_size = max_field_size
            column_type = column_type.with_length(max_field_size)

        return FieldSpec(
            name=f"col_{index}",
            column_type=column_type,
            max_size=max_size,
            nullable=self.rng.random() < NULLABLE_PROBABILITY,
        )


def schema_from_columns(
    table_name: str,
    columns: Sequence[ColumnInfo],
    row_count: int,
) -> SchemaDefinition:
    """Rebuild the schema of an existing table from its catalog columns.

    The first column must be an integer key, as in every table this
    package creates. Raises ValueError when the layout cannot be used.
    """
    if not columns:
        raise ValueError(f"table {table_name} has no columns")

    fields = []
    for info in columns:
        column_type = info.to_column_type()
        if column_type is None:
            raise ValueError(f"column {info.name} has unsupported type {info.data_type}")
        fields.append(
            FieldSpec(
                name=info.name,
                column_type=column_type,
                max_size=column_type.capacity,
                nullable=info.nullable,
            )
        )

    key = fields[0]
    if key.column_type.category is not TypeCategory.INTEGER:
        raise ValueError(f"first column {key.name} is {key.sql_type}, not an integer key")
    fields[0] = FieldSpec(key.name, key.column_type, 0, nullable=False)
    return SchemaDefinition(table_name=table_name, fields=tuple(fields), row_count=row_count)
