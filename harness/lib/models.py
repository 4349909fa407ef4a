"""Configuration models shared across the harness.

Templates and base configuration are loaded once per run and never
mutated afterwards, so every model here is a frozen dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

__all__ = [
    "AssertionConfig",
    "AssertionKind",
    "BaseConfig",
    "DataConfig",
    "DatabaseConfig",
    "DEFAULT_TOLERANCE",
    "SchemaConfig",
    "ServiceEndpoint",
    "TargetDatabase",
    "TestTemplate",
]

# Relative tolerance in percent applied when an assertion does not set one
DEFAULT_TOLERANCE = 0.1


class AssertionKind(Enum):
    """Assertion kinds the orchestrator knows how to run."""

    READ = "read"
    WRITE = "write"
    READ_WRITE = "read_write"

    @classmethod
    def parse(cls, value: str) -> Optional["AssertionKind"]:
        """Return the kind for ``value`` or None when it is unknown."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection profile for one database."""

    dialect: str
    host: str
    port: int
    user: str
    password: str = field(repr=False)
    database: str
    name: str = ""

    def describe(self) -> str:
        """Connection summary safe for logs (no password)."""
        return f"{self.dialect}://{self.user}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class ServiceEndpoint:
    """Host/port of an external RPC collaborator."""

    host: str = "localhost"
    port: int = 0
    mode: str = "http"
    base_path: str = ""
    timeout: float = 30.0
    enabled: bool = True

    @property
    def base_url(self) -> str:
        path = self.base_path.strip("/")
        root = f"http://{self.host}:{self.port}"
        return f"{root}/{path}" if path else root


@dataclass(frozen=True)
class BaseConfig:
    """Named database profiles plus collaborator endpoints."""

    databases: Tuple[DatabaseConfig, ...]
    catalog_service: ServiceEndpoint = field(default_factory=lambda: ServiceEndpoint(mode="offline"))
    data_service: ServiceEndpoint = field(default_factory=lambda: ServiceEndpoint(enabled=False))


@dataclass(frozen=True)
class TargetDatabase:
    """Which database a template runs against."""

    dialect: str
    name: Optional[str] = None


@dataclass(frozen=True)
class SchemaConfig:
    """Shape of the synthetic table.

    ``field_count`` is clamped to [1, 16] by the synthesizer, not here.
    ``max_field_size`` of 0 means no cap.
    """

    field_count: int = 1
    field_types: Tuple[str, ...] = ()
    max_field_size: int = 0
    table_name: Optional[str] = None
    asset_name: Optional[str] = None


@dataclass(frozen=True)
class DataConfig:
    row_count: int = 0
    keep_table: bool = False
    batch_size: int = 5000


@dataclass(frozen=True)
class AssertionConfig:
    """One read/write assertion from a template.

    ``kind`` stays a plain string: unknown kinds fail their own assertion
    at run time instead of rejecting the template.
    """

    kind: str
    expected: int
    tolerance: float = DEFAULT_TOLERANCE
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TestTemplate:
    """Declarative description of one harness run."""

    __test__ = False  # not a pytest test class

    name: str
    database: TargetDatabase
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    data: DataConfig = field(default_factory=DataConfig)
    tests: Tuple[AssertionConfig, ...] = ()
    description: str = ""
    seed: Optional[int] = None

    @property
    def explicit_table(self) -> bool:
        return bool(self.schema.table_name)

    @property
    def explicit_asset(self) -> bool:
        return bool(self.schema.asset_name)

    @property
    def preserve_table(self) -> bool:
        """Whether cleanup must leave the table in place."""
        return self.explicit_table or self.explicit_asset or self.data.keep_table
