"""Bulk data producer for synthesized schemas.

Creates the table through the dialect strategy and fills it with
``row_count`` rows in batches. Values are drawn from the run's random
source so a seeded run replays the same data.

Example:
    generator = DataGenerator(dialect, schema, rng=random.Random(42))
    inserted = generator.generate(deadline)
"""

from __future__ import annotations

import logging
import random
import string
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Tuple

from harness.lib.resilience import Deadline
from harness.lib.schema import FieldSpec, SchemaDefinition
from harness.lib.sqltypes import TypeCategory

if TYPE_CHECKING:
    from harness.lib.dialects.base import DialectStrategy

logger = logging.getLogger(__name__)

__all__ = ["DataGenerator", "DEFAULT_BATCH_SIZE", "NULL_PROBABILITY"]

DEFAULT_BATCH_SIZE = 5000
NULL_PROBABILITY = 0.1

# Longest string / blob actually produced, whatever the column allows
_MAX_VALUE_LENGTH = 64
# Widest integer part produced for fixed-point columns
_MAX_DECIMAL_DIGITS = 12

_EPOCH = datetime(2000, 1, 1)
_SPAN_SECONDS = 30 * 365 * 24 * 3600
_ALPHABET = string.ascii_letters + string.digits


class DataGenerator:
    """Creates and populates the table described by a schema.

    Args:
        dialect: Connected strategy used for DDL and inserts.
        schema: Table layout; ``schema.row_count`` rows are inserted.
        rng: Random source for values.
        batch_size: Rows per INSERT round trip.
    """

    def __init__(
        self,
        dialect: "DialectStrategy",
        schema: SchemaDefinition,
        rng: Optional[random.Random] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.dialect = dialect
        self.schema = schema
        self.rng = rng or random.Random()
        self.batch_size = max(1, batch_size)

    def generate(self, deadline: Optional[Deadline] = None) -> int:
        """Create the table and insert all rows. Returns rows inserted.

        The deadline is checked before every batch, and each INSERT is
        bounded by the time left.
        """
        deadline = deadline or Deadline.unlimited()
        self.dialect.create_table(self.schema)

        columns = self.schema.column_names
        inserted = 0
        for batch in self.iter_batches(self.schema.row_count):
            deadline.check("generate")
            self.dialect.set_statement_timeout(deadline.remaining())
            inserted += self.dialect.insert_rows(self.schema.table_name, columns, batch)
            logger.debug("Inserted %d/%d rows into %s", inserted, self.schema.row_count, self.schema.table_name)

        logger.info("Generated %d rows in %s", inserted, self.schema.table_name)
        return inserted

    def iter_batches(self, count: int, start_key: int = 1) -> Iterator[List[Tuple[Any, ...]]]:
        batch: List[Tuple[Any, ...]] = []
        for row in self.iter_rows(count, start_key=start_key):
            batch.append(row)
            if len(batch) >= self.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def iter_rows(self, count: int, start_key: int = 1) -> Iterator[Tuple[Any, ...]]:
        """Yield ``count`` rows with consecutive keys from ``start_key``."""
        value_fields = self.schema.fields[1:]
        for key in range(start_key, start_key + count):
            yield (key,) + tuple(self.value_for(f) for f in value_fields)

    def value_for(self, field: FieldSpec) -> Any:
        """Synthesize one value that fits ``field``."""
        if field.nullable and self.rng.random() < NULL_PROBABILITY:
            return None

        rng = self.rng
        column_type = field.column_type
        category = column_type.category

        if category is TypeCategory.INTEGER:
            # Stay inside the signed range of the declared width
            bits = 8 * (column_type.int_bytes or 4) - 1
            return rng.randint(-(2**bits), 2**bits - 1)
        if category is TypeCategory.FLOAT:
            return round(rng.uniform(-1e6, 1e6), 4)
        if category is TypeCategory.DECIMAL:
            scale = column_type.scale or 0
            digits = min((column_type.precision or 10) - scale, _MAX_DECIMAL_DIGITS) + scale
            bound = 10**digits - 1
            return Decimal(rng.randint(-bound, bound)).scaleb(-scale)
        if category.is_character:
            length = rng.randint(1, self._max_length(field))
            return "".join(rng.choice(_ALPHABET) for _ in range(length))
        if category is TypeCategory.BINARY:
            length = rng.randint(1, self._max_length(field))
            return bytes(rng.getrandbits(8) for _ in range(length))
        if category is TypeCategory.DATE:
            return (_EPOCH + timedelta(days=rng.randrange(_SPAN_SECONDS // 86400))).date()
        if category.is_temporal:
            return _EPOCH + timedelta(seconds=rng.randrange(_SPAN_SECONDS))

        raise ValueError(f"No value generator for {category.value}")

    @staticmethod
    def _max_length(field: FieldSpec) -> int:
        capacity = field.max_size or _MAX_VALUE_LENGTH
        return max(1, min(capacity, _MAX_VALUE_LENGTH))

