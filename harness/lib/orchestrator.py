"""End-to-end run of one test template.

Lifecycle of ``TestOrchestrator.run``:

    connect -> resolve names -> reconcile -> register -> execute -> cleanup

Each phase takes the current ``RunContext`` and returns a new one, so the
state a phase needs is visible in its signature. Connection failure aborts
before anything else happens. Once connected, cleanup runs no matter how
the later phases end.

Failure handling:
- Connection, reconcile, registration and timeout errors are fatal and
  propagate as a single HarnessError. No report is produced.
- Assertion errors (query failure, unknown kind) are recorded on that
  assertion's result and the run moves on.
- Cleanup errors are logged and never change the outcome.

Example:
    orchestrator = TestOrchestrator(template, dialect, catalog, seed=42)
    report = orchestrator.run()
    sys.exit(1 if report.has_failure else 0)
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from harness.lib.catalog import AssetCatalogClient, DataServiceClient
from harness.lib.datagen import DataGenerator
from harness.lib.dialects.base import DialectStrategy
from harness.lib.errors import HarnessError, RegistrationError
from harness.lib.models import AssertionConfig, AssertionKind, TestTemplate
from harness.lib.namespace import NamespaceAllocator
from harness.lib.observability import PhaseTimings
from harness.lib.reconcile import DataReconciler, ReconcileAction, ReconcilePlan
from harness.lib.resilience import Deadline
from harness.lib.schema import SchemaDefinition, SchemaSynthesizer
from harness.lib.validators import RowCountValidator, Verdict

logger = logging.getLogger(__name__)

__all__ = ["AssertionResult", "RunContext", "RunReport", "TestOrchestrator"]

DEFAULT_TABLE_BASE = "test_table"
DATA_SOURCE_PREFIX = "test_datasource_"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RunContext:
    """State accumulated by the lifecycle phases of one run."""

    template: TestTemplate
    namespace: str
    table_name: Optional[str] = None
    asset_name: Optional[str] = None
    schema: Optional[SchemaDefinition] = None
    reconcile: Optional[ReconcilePlan] = None
    data_source_id: Optional[int] = None
    asset_id: Optional[int] = None


@dataclass
class AssertionResult:
    """Outcome of one assertion."""

    kind: str
    expected: int
    actual: int = 0
    diff: int = 0
    diff_percent: float = 0.0
    passed: bool = False
    message: str = ""
    error: str = ""
    started_at: datetime = field(default_factory=_now)
    ended_at: Optional[datetime] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return not self.passed

    @property
    def duration(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def finish(self) -> "AssertionResult":
        self.ended_at = _now()
        return self

    def apply_verdict(self, verdict: Verdict) -> "AssertionResult":
        self.passed = verdict.passed
        self.actual = verdict.actual
        self.diff = verdict.diff
        self.diff_percent = verdict.diff_percent
        self.message = verdict.message
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "expected": self.expected,
            "actual": self.actual,
            "diff": self.diff,
            # JSON has no infinity; expected=0 with rows present reports null
            "diff_percent": self.diff_percent if math.isfinite(self.diff_percent) else None,
            "passed": self.passed,
            "message": self.message,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": round(self.duration, 3),
            "metrics": dict(self.metrics),
        }


@dataclass
class RunReport:
    """Results of one run, in template order."""

    template_name: str
    namespace: str
    started_at: datetime = field(default_factory=_now)
    ended_at: Optional[datetime] = None
    results: List[AssertionResult] = field(default_factory=list)
    table_name: Optional[str] = None
    asset_name: Optional[str] = None
    reconcile_action: Optional[str] = None
    data_source_id: Optional[int] = None
    asset_id: Optional[int] = None
    phase_timings: Dict[str, float] = field(default_factory=dict)

    @property
    def has_failure(self) -> bool:
        return any(r.failed for r in self.results)

    @property
    def duration(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_name": self.template_name,
            "namespace": self.namespace,
            "table_name": self.table_name,
            "asset_name": self.asset_name,
            "reconcile_action": self.reconcile_action,
            "data_source_id": self.data_source_id,
            "asset_id": self.asset_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": round(self.duration, 3),
            "has_failure": self.has_failure,
            "phase_timings": dict(self.phase_timings),
            "results": [r.to_dict() for r in self.results],
        }


class TestOrchestrator:
    """Drives one template through its full lifecycle.

    Args:
        template: Loaded template.
        dialect: Unconnected strategy for the target database.
        catalog: Asset-catalog client used for registration.
        data_client: Optional streaming client. Without it read and write
            assertions count rows in the table directly.
        namespace: Reuse an existing namespace instead of allocating one.
        allocator: Namespace allocator.
        seed: Random seed; falls back to ``template.seed``.
        deadline: Overall run deadline.
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        template: TestTemplate,
        dialect: DialectStrategy,
        catalog: AssetCatalogClient,
        *,
        data_client: Optional[DataServiceClient] = None,
        namespace: Optional[str] = None,
        allocator: Optional[NamespaceAllocator] = None,
        seed: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        self.template = template
        self.dialect = dialect
        self.catalog = catalog
        self.data_client = data_client
        self.allocator = allocator or NamespaceAllocator()
        self.namespace = namespace or self.allocator.generate_namespace(template.name)
        seed = template.seed if seed is None else seed
        self.rng = random.Random(seed)
        self.deadline = deadline or Deadline.unlimited()
        self.timings = PhaseTimings()

    def run(self) -> RunReport:
        """Execute the template and return its report.

        Raises:
            HarnessError: On any fatal setup failure.
        """
        report = RunReport(template_name=self.template.name, namespace=self.namespace)
        logger.info("Running template %s in namespace %s", self.template.name, self.namespace)

        self.deadline.check("connect")
        with self.timings.time_phase("connect"):
            self.dialect.connect()

        ctx = RunContext(template=self.template, namespace=self.namespace)
        try:
            ctx = self.resolve_names(ctx)
            self._enter_phase("reconcile")
            with self.timings.time_phase("reconcile"):
                ctx = self.setup(ctx)
            self._enter_phase("register")
            with self.timings.time_phase("register"):
                ctx = self.register(ctx)
            with self.timings.time_phase("execute"):
                report.results = self.execute(ctx)
        finally:
            with self.timings.time_phase("cleanup"):
                self.cleanup(ctx)

        report.ended_at = _now()
        report.table_name = ctx.table_name
        report.asset_name = ctx.asset_name
        report.reconcile_action = ctx.reconcile.action.value if ctx.reconcile else None
        report.data_source_id = ctx.data_source_id
        report.asset_id = ctx.asset_id
        report.phase_timings = self.timings.as_dict()
        logger.info(
            "Template %s finished: %d assertions, %s",
            self.template.name,
            len(report.results),
            "FAILED" if report.has_failure else "passed",
        )
        return report

    # ---------- phases ----------

    def resolve_names(self, ctx: RunContext) -> RunContext:
        """Pick table and asset names.

        Names given in the template are used literally. Otherwise they are
        derived from the namespace.
        """
        schema = ctx.template.schema
        table = schema.table_name or self.allocator.generate_table_name(ctx.namespace, DEFAULT_TABLE_BASE)
        asset = schema.asset_name or self.allocator.generate_asset_name(ctx.namespace, ctx.template.name)
        logger.info("Using table %s and asset %s", table, asset)
        return replace(ctx, table_name=table, asset_name=asset)

    def setup(self, ctx: RunContext) -> RunContext:
        """Synthesize the schema and reconcile the table against it."""
        template = ctx.template
        schema = SchemaSynthesizer(self.dialect.types, self.rng).synthesize(
            ctx.table_name,
            template.schema.field_count,
            template.data.row_count,
            template.schema.field_types,
            template.schema.max_field_size,
        )
        reconciler = DataReconciler(self.dialect, rng=self.rng, batch_size=template.data.batch_size)
        plan = reconciler.reconcile(schema, self.deadline)
        if plan.action is ReconcileAction.KEEP:
            schema = reconciler.existing_schema(schema)
        return replace(ctx, schema=schema, reconcile=plan)

    def register(self, ctx: RunContext) -> RunContext:
        """Create the catalog data source and asset for the table.

        If the asset cannot be created the data source is deleted again
        before RegistrationError is raised.
        """
        info = self.dialect.connection_info()
        response = self._catalog_call(
            "create_data_source",
            self.catalog.create_data_source,
            name=f"{DATA_SOURCE_PREFIX}{ctx.namespace}",
            host=info.host,
            port=info.port,
            dialect_code=self.dialect.catalog_code,
            user=info.user,
            password=info.password,
            database_name=info.database,
        )
        data_source_id = response.id
        logger.info("Created data source %d", data_source_id)

        try:
            response = self._catalog_call(
                "create_asset",
                self.catalog.create_asset,
                asset_name=ctx.template.name,
                asset_english_name=ctx.asset_name,
                data_source_id=data_source_id,
                database_name=info.database,
                table_name=ctx.table_name,
            )
        except HarnessError:
            self._delete_data_source(data_source_id)
            raise

        logger.info("Created asset %d (%s)", response.id, ctx.asset_name)
        return replace(ctx, data_source_id=data_source_id, asset_id=response.id)

    def execute(self, ctx: RunContext) -> List[AssertionResult]:
        """Run the template's assertions in order."""
        results = []
        for index, assertion in enumerate(ctx.template.tests):
            self._enter_phase(f"assertion {index}")
            result = self.run_assertion(ctx, assertion)
            logger.info(
                "Assertion %d (%s): %s",
                index,
                assertion.kind,
                "passed" if result.passed else (result.error or result.message),
            )
            results.append(result)
        return results

    def cleanup(self, ctx: RunContext) -> None:
        """Drop the run's table unless the template preserves it."""
        if ctx.table_name is None:
            return
        if ctx.template.preserve_table:
            logger.info("Keeping table %s", ctx.table_name)
            return
        try:
            # The drop must not be cut short by a run that is already out of time
            self.dialect.clear_statement_timeout()
            self.dialect.cleanup(ctx.table_name)
        except Exception as e:
            logger.warning("Cleanup of table %s failed: %s", ctx.table_name, e)

    def _enter_phase(self, phase: str) -> None:
        """Check the deadline and cap database statements at the time left."""
        self.deadline.check(phase)
        self.dialect.set_statement_timeout(self.deadline.remaining())

    # ---------- assertions ----------

    def run_assertion(self, ctx: RunContext, assertion: AssertionConfig) -> AssertionResult:
        """Run one assertion. Never raises for assertion-local failures."""
        kind = AssertionKind.parse(assertion.kind)
        validator = RowCountValidator(assertion.expected, assertion.tolerance)

        if kind is AssertionKind.READ:
            return self._run_read(ctx, validator, assertion)
        if kind is AssertionKind.WRITE:
            return self._run_write(ctx, validator, assertion)
        if kind is AssertionKind.READ_WRITE:
            write = self._run_write(ctx, validator, assertion)
            if not write.passed:
                return write
            read = self._run_read(ctx, validator, assertion)
            read.kind = AssertionKind.READ_WRITE.value
            read.started_at = write.started_at
            read.metrics = {**write.metrics, **read.metrics}
            return read

        result = AssertionResult(kind=assertion.kind, expected=assertion.expected)
        result.error = f"unknown test type: {assertion.kind}"
        return result.finish()

    def _run_read(
        self,
        ctx: RunContext,
        validator: RowCountValidator,
        assertion: AssertionConfig,
    ) -> AssertionResult:
        result = AssertionResult(kind=AssertionKind.READ.value, expected=assertion.expected)
        try:
            if self.data_client is not None:
                actual = self.data_client.read_row_count(ctx.asset_name, ctx.schema.column_names)
                result.metrics["source"] = "data_service"
            else:
                actual = self.dialect.row_count(ctx.table_name)
                result.metrics["source"] = "table"
            result.apply_verdict(validator.validate_read(actual))
        except Exception as e:
            logger.debug("Read assertion failed", exc_info=True)
            result.error = str(e) or type(e).__name__
        return result.finish()

    def _run_write(
        self,
        ctx: RunContext,
        validator: RowCountValidator,
        assertion: AssertionConfig,
    ) -> AssertionResult:
        result = AssertionResult(kind=AssertionKind.WRITE.value, expected=assertion.expected)
        try:
            rows = _rows_param(assertion.params)
            if self.data_client is not None and rows > 0:
                result.metrics["rows_written"] = self._stream_rows(ctx, rows)
            result.apply_verdict(validator.validate_write(self.dialect, ctx.table_name))
        except Exception as e:
            logger.debug("Write assertion failed", exc_info=True)
            result.error = str(e) or type(e).__name__
        return result.finish()

    def _stream_rows(self, ctx: RunContext, count: int) -> int:
        """Send ``count`` synthetic rows through the data service."""
        start_key = self.dialect.row_count(ctx.table_name) + 1
        generator = DataGenerator(self.dialect, ctx.schema, rng=self.rng)
        written = 0
        for batch in generator.iter_batches(count, start_key=start_key):
            written += self.data_client.write_rows(ctx.asset_name, ctx.schema.column_names, batch)
        logger.info("Streamed %d rows into asset %s", written, ctx.asset_name)
        return written

    # ---------- catalog helpers ----------

    def _catalog_call(self, operation: str, func: Any, **kwargs: Any) -> Any:
        try:
            response = func(**kwargs)
        except HarnessError:
            raise
        except Exception as exc:
            raise RegistrationError(f"{operation} failed", operation=operation, cause=exc) from exc
        if not response.success:
            raise RegistrationError(
                f"{operation} failed: {response.message}",
                operation=operation,
            )
        return response

    def _delete_data_source(self, data_source_id: int) -> None:
        try:
            response = self.catalog.delete_data_source(data_source_id)
        except Exception as e:
            logger.warning("Could not delete data source %d: %s", data_source_id, e)
            return
        if response.success:
            logger.info("Deleted data source %d after failed asset registration", data_source_id)
        else:
            logger.warning("Could not delete data source %d: %s", data_source_id, response.message)


def _rows_param(params: Mapping[str, Any]) -> int:
    value = params.get("rows", 0)
    return int(value or 0)
