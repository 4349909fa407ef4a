"""Harness library modules.

Building blocks for provisioning synthetic tables, reconciling them with
a template's expectations and validating row counts across the supported
database dialects.
"""

from harness.lib.catalog import (
    AssetCatalogClient,
    CatalogResponse,
    DataServiceClient,
    HttpAssetCatalogClient,
    HttpDataServiceClient,
    OfflineAssetCatalogClient,
    build_catalog_client,
    build_data_client,
)
from harness.lib.config_loader import (
    load_base_config,
    load_template,
    parse_base_config,
    parse_template,
    resolve_database_config,
)
from harness.lib.datagen import DataGenerator
from harness.lib.dialects import DialectStrategy, get_dialect, get_dialect_class, supported_dialects
from harness.lib.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    HarnessError,
    RegistrationError,
    RunTimeoutError,
    SetupError,
    UnsupportedDialectError,
)
from harness.lib.models import (
    AssertionConfig,
    AssertionKind,
    BaseConfig,
    DatabaseConfig,
    TestTemplate,
)
from harness.lib.namespace import NamespaceAllocator
from harness.lib.orchestrator import AssertionResult, RunContext, RunReport, TestOrchestrator
from harness.lib.reconcile import DataReconciler, ReconcileAction, ReconcilePlan
from harness.lib.report import render_text, write_json_report
from harness.lib.resilience import Deadline, RetryConfig
from harness.lib.schema import FieldSpec, SchemaDefinition, SchemaSynthesizer, schema_from_columns
from harness.lib.validators import RowCountValidator, Verdict

__all__ = [
    # Catalog
    "AssetCatalogClient",
    "CatalogResponse",
    "DataServiceClient",
    "HttpAssetCatalogClient",
    "HttpDataServiceClient",
    "OfflineAssetCatalogClient",
    "build_catalog_client",
    "build_data_client",
    # Config
    "load_base_config",
    "load_template",
    "parse_base_config",
    "parse_template",
    "resolve_database_config",
    # Data
    "DataGenerator",
    "DataReconciler",
    "ReconcileAction",
    "ReconcilePlan",
    # Dialects
    "DialectStrategy",
    "get_dialect",
    "get_dialect_class",
    "supported_dialects",
    # Errors
    "ConfigurationError",
    "DatabaseConnectionError",
    "HarnessError",
    "RegistrationError",
    "RunTimeoutError",
    "SetupError",
    "UnsupportedDialectError",
    # Models
    "AssertionConfig",
    "AssertionKind",
    "BaseConfig",
    "DatabaseConfig",
    "TestTemplate",
    # Naming
    "NamespaceAllocator",
    # Orchestration
    "AssertionResult",
    "RunContext",
    "RunReport",
    "TestOrchestrator",
    "render_text",
    "write_json_report",
    # Resilience
    "Deadline",
    "RetryConfig",
    # Schema
    "FieldSpec",
    "SchemaDefinition",
    "SchemaSynthesizer",
    "schema_from_columns",
    # Validation
    "RowCountValidator",
    "Verdict",
]
