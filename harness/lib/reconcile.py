"""Data reconciliation: decide whether an existing table can be reused.

Decision table for a target table and expected row count:

    absent                         -> CREATE      generate and insert
    present, count within 0.1%     -> KEEP        no work
    present, count outside 0.1%    -> REGENERATE  drop, then as CREATE

Running the reconciler twice against the same table with the same
expectation therefore does the generation work at most once.

Example:
    reconciler = DataReconciler(dialect, rng=rng)
    plan = reconciler.reconcile(schema, deadline)
    print(plan.action)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from harness.lib.datagen import DEFAULT_BATCH_SIZE, DataGenerator
from harness.lib.errors import HarnessError, SetupError
from harness.lib.models import DEFAULT_TOLERANCE
from harness.lib.resilience import Deadline
from harness.lib.schema import SchemaDefinition, schema_from_columns
from harness.lib.validators import within_tolerance

if TYPE_CHECKING:
    from harness.lib.dialects.base import DialectStrategy

logger = logging.getLogger(__name__)

__all__ = ["DataReconciler", "ReconcileAction", "ReconcilePlan"]


class ReconcileAction(Enum):
    CREATE = "create"
    KEEP = "keep"
    REGENERATE = "regenerate"

    @property
    def generates(self) -> bool:
        return self is not ReconcileAction.KEEP


@dataclass(frozen=True)
class ReconcilePlan:
    """What the reconciler decided for one table.

    ``actual_rows`` is None when the table did not exist.
    """

    action: ReconcileAction
    table: str
    expected_rows: int
    actual_rows: Optional[int] = None
    inserted_rows: int = 0


class DataReconciler:
    """Brings a table in line with the expected row count.

    Args:
        dialect: Connected strategy for the target database.
        rng: Random source handed to the data generator.
        batch_size: Rows per insert batch.
        tolerance: Percentage within which an existing table is kept.
    """

    def __init__(
        self,
        dialect: "DialectStrategy",
        *,
        rng: Optional[random.Random] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> None:
        self.dialect = dialect
        self.rng = rng or random.Random()
        self.batch_size = batch_size
        self.tolerance = tolerance

    def plan(self, table: str, expected_rows: int) -> ReconcilePlan:
        """Inspect ``table`` and decide the action. Issues no writes."""
        if not self.dialect.table_exists(table):
            logger.info("Table %s does not exist; creating %d rows", table, expected_rows)
            return ReconcilePlan(ReconcileAction.CREATE, table, expected_rows)

        actual = self.dialect.row_count(table)
        if within_tolerance(actual, expected_rows, self.tolerance):
            logger.info("Table %s already has %d rows; skipping generation", table, actual)
            return ReconcilePlan(ReconcileAction.KEEP, table, expected_rows, actual)

        logger.info(
            "Table %s has %d rows but %d expected; regenerating",
            table,
            actual,
            expected_rows,
        )
        return ReconcilePlan(ReconcileAction.REGENERATE, table, expected_rows, actual)

    def apply(
        self,
        plan: ReconcilePlan,
        schema: SchemaDefinition,
        deadline: Optional[Deadline] = None,
    ) -> ReconcilePlan:
        """Carry out ``plan``. Returns the plan with ``inserted_rows`` set.

        A generation that fails or is interrupted drops the partially written table
        before the error propagates.
        """
        if not plan.action.generates:
            return plan

        if plan.action is ReconcileAction.REGENERATE:
            try:
                self.dialect.cleanup(plan.table)
            except Exception as exc:
                raise SetupError("Could not drop stale table", table=plan.table, cause=exc) from exc

        generator = DataGenerator(self.dialect, schema, rng=self.rng, batch_size=self.batch_size)
        try:
            inserted = generator.generate(deadline)
        except HarnessError:
            self._drop_partial(plan.table)
            raise
        except Exception as exc:
            self._drop_partial(plan.table)
            raise SetupError("Data generation failed", table=plan.table, cause=exc) from exc
        except BaseException:
            # KeyboardInterrupt and friends still leave no partial table
            self._drop_partial(plan.table)
            raise

        return ReconcilePlan(
            plan.action,
            plan.table,
            plan.expected_rows,
            plan.actual_rows,
            inserted_rows=inserted,
        )

    def reconcile(self, schema: SchemaDefinition, deadline: Optional[Deadline] = None) -> ReconcilePlan:
        """Plan and apply in one step for ``schema.table_name``."""
        deadline = deadline or Deadline.unlimited()
        deadline.check("reconcile")
        try:
            plan = self.plan(schema.table_name, schema.row_count)
        except HarnessError:
            raise
        except Exception as exc:
            raise SetupError("Could not inspect table", table=schema.table_name, cause=exc) from exc
        return self.apply(plan, schema, deadline)

    def existing_schema(self, schema: SchemaDefinition) -> SchemaDefinition:
        """Layout of the table a KEEP plan reuses.

        A kept table was generated by an earlier run, possibly with another
        seed or field count, so its columns replace the freshly synthesized
        ones for anything that builds rows for it.
        """
        table = schema.table_name
        try:
            existing = schema_from_columns(table, self.dialect.table_columns(table), schema.row_count)
        except Exception as exc:
            raise SetupError(
                "Existing table layout cannot be reused",
                table=table,
                cause=exc,
                suggestion="Drop the table or remove table_name from the template",
            ) from exc
        if existing.fields != schema.fields:
            logger.info(
                "Using existing layout of %s (%d fields) instead of the synthesized one",
                table,
                len(existing.fields),
            )
        return existing

    def _drop_partial(self, table: str) -> None:
        try:
            self.dialect.clear_statement_timeout()
            self.dialect.cleanup(table)
        except Exception as e:
            logger.warning("Could not drop partial table %s: %s", table, e)
