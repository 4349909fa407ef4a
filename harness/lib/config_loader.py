"""YAML loading for test templates and the base configuration.

Template example (templates/mysql_read.yaml):
    name: mysql_read_10k
    seed: 42
    database:
      type: mysql
    schema:
      field_count: 8
      field_types: [int, varchar, datetime]
      max_field_size: 512
    data:
      row_count: 10000
    tests:
      - type: read
        expected: 10000
        tolerance: 0.1

Base configuration example (config/test_config.yaml):
    databases:
      - name: local_mysql
        type: mysql
        host: ${MYSQL_HOST}
        port: 3306
        user: root
        password: ${MYSQL_PASSWORD}
        database: test
    catalog_service:
      mode: offline

Usage:
    from harness.lib.config_loader import load_base_config, load_template

    template = load_template("templates/mysql_read.yaml")
    base = load_base_config("config/test_config.yaml")
    db_config = resolve_database_config(base, template.database)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from harness.lib.dialects import get_dialect_class
from harness.lib.env import expand_config
from harness.lib.errors import ConfigurationError
from harness.lib.models import (
    DEFAULT_TOLERANCE,
    AssertionConfig,
    BaseConfig,
    DatabaseConfig,
    DataConfig,
    SchemaConfig,
    ServiceEndpoint,
    TargetDatabase,
    TestTemplate,
)
from harness.lib.schema import resolve_type_hints

logger = logging.getLogger(__name__)

__all__ = [
    "load_base_config",
    "load_template",
    "parse_base_config",
    "parse_template",
    "resolve_database_config",
]

CATALOG_MODES = ("http", "offline")


def _read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}", field="path", value=str(path))
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}", value=str(path)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}", value=str(path))
    return data


def _section(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{key}' must be a mapping", field=key, value=value)
    return value


def _as_int(value: Any, field: str, *, minimum: Optional[int] = None, default: Optional[int] = None) -> int:
    if value is None:
        if default is None:
            raise ConfigurationError(f"'{field}' is required", field=field)
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"'{field}' must be an integer", field=field, value=value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{field}' must be an integer", field=field, value=value) from None
    if isinstance(value, float) and value != number:
        raise ConfigurationError(f"'{field}' must be an integer", field=field, value=value)
    if minimum is not None and number < minimum:
        raise ConfigurationError(f"'{field}' must be >= {minimum}", field=field, value=value)
    return number


def _as_tolerance(value: Any, field: str) -> float:
    if value is None:
        return DEFAULT_TOLERANCE
    if isinstance(value, bool):
        raise ConfigurationError(f"'{field}' must be a number", field=field, value=value)
    try:
        tolerance = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{field}' must be a number", field=field, value=value) from None
    if tolerance < 0:
        raise ConfigurationError(f"'{field}' must be >= 0", field=field, value=value)
    return tolerance


_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off", "")


def _as_bool(value: Any, field: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ConfigurationError(
        f"'{field}' must be true or false", field=field, value=value
    )


def _as_float(value: Any, field: str, *, default: float, minimum: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"'{field}' must be a number", field=field, value=value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{field}' must be a number", field=field, value=value) from None
    if number < minimum:
        raise ConfigurationError(f"'{field}' must be >= {minimum}", field=field, value=value)
    return number


def _parse_tests(raw: Any) -> List[AssertionConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError("'tests' must be a list", field="tests", value=raw)

    tests = []
    for index, item in enumerate(raw):
        prefix = f"tests[{index}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"'{prefix}' must be a mapping", field=prefix, value=item)
        kind = item.get("type")
        if not kind or not isinstance(kind, str):
            raise ConfigurationError(f"'{prefix}.type' is required", field=f"{prefix}.type")
        params = item.get("params") or {}
        if not isinstance(params, dict):
            raise ConfigurationError(f"'{prefix}.params' must be a mapping", field=f"{prefix}.params")
        tests.append(
            AssertionConfig(
                kind=kind,
                expected=_as_int(item.get("expected"), f"{prefix}.expected", minimum=0),
                tolerance=_as_tolerance(item.get("tolerance"), f"{prefix}.tolerance"),
                params=params,
            )
        )
    return tests


def parse_template(data: Mapping[str, Any], *, validate_hints: bool = True) -> TestTemplate:
    """Build a TestTemplate from parsed YAML.

    Args:
        data: Parsed template document.
        validate_hints: Resolve ``schema.field_types`` against the target
            dialect's type catalog now, so typos fail before any database work.

    Raises:
        ConfigurationError: If a field is missing or invalid.
        UnsupportedDialectError: If ``database.type`` is not supported.
    """
    name = data.get("name")
    if not name or not isinstance(name, str):
        raise ConfigurationError("Template 'name' is required", field="name")

    database = _section(data, "database")
    dialect = database.get("type")
    if not dialect:
        raise ConfigurationError("'database.type' is required", field="database.type")
    dialect_cls = get_dialect_class(str(dialect))

    schema = _section(data, "schema")
    field_types = schema.get("field_types") or []
    if isinstance(field_types, str):
        field_types = field_types.split(",")
    if not isinstance(field_types, list):
        raise ConfigurationError("'schema.field_types' must be a list", field="schema.field_types")
    field_types = [str(t).strip() for t in field_types if str(t).strip()]

    if validate_hints and field_types:
        resolve_type_hints(dialect_cls.types, field_types)

    data_section = _section(data, "data")
    seed = data.get("seed")

    template = TestTemplate(
        name=name,
        description=str(data.get("description") or ""),
        seed=None if seed is None else _as_int(seed, "seed"),
        database=TargetDatabase(dialect=dialect_cls.name, name=database.get("name") or None),
        schema=SchemaConfig(
            # Out-of-range counts are clamped by the synthesizer
            field_count=_as_int(schema.get("field_count"), "schema.field_count", default=1),
            field_types=tuple(field_types),
            max_field_size=_as_int(schema.get("max_field_size"), "schema.max_field_size", minimum=0, default=0),
            table_name=schema.get("table_name") or None,
            asset_name=schema.get("asset_name") or None,
        ),
        data=DataConfig(
            row_count=_as_int(data_section.get("row_count"), "data.row_count", minimum=0, default=0),
            keep_table=_as_bool(data_section.get("keep_table"), "data.keep_table", default=False),
            batch_size=_as_int(data_section.get("batch_size"), "data.batch_size", minimum=1, default=5000),
        ),
        tests=tuple(_parse_tests(data.get("tests"))),
    )
    logger.debug("Parsed template %s with %d tests", template.name, len(template.tests))
    return template


def load_template(path: Union[str, Path], *, validate_hints: bool = True) -> TestTemplate:
    """Load and validate a template YAML file."""
    logger.debug("Loading template %s", path)
    return parse_template(_read_yaml(path), validate_hints=validate_hints)


def _parse_endpoint(raw: Mapping[str, Any], key: str, **defaults: Any) -> ServiceEndpoint:
    values = dict(defaults)
    values.update({k: v for k, v in raw.items() if v is not None})
    mode = str(values.get("mode", "http")).lower()
    if key == "catalog_service" and mode not in CATALOG_MODES:
        raise ConfigurationError(
            f"Unknown catalog mode: {mode}",
            field=f"{key}.mode",
            value=mode,
            suggestion="Use 'http' or 'offline'",
        )
    return ServiceEndpoint(
        host=str(values.get("host", "localhost")),
        port=_as_int(values.get("port"), f"{key}.port", minimum=0, default=0),
        mode=mode,
        base_path=str(values.get("base_path", "")),
        timeout=_as_float(values.get("timeout"), f"{key}.timeout", default=30.0),
        enabled=_as_bool(values.get("enabled"), f"{key}.enabled", default=True),
    )


def parse_base_config(data: Mapping[str, Any]) -> BaseConfig:
    """Build a BaseConfig from parsed (and env-expanded) YAML."""
    raw_dbs = data.get("databases") or []
    if not isinstance(raw_dbs, list):
        raise ConfigurationError("'databases' must be a list", field="databases")

    databases = []
    for index, item in enumerate(raw_dbs):
        prefix = f"databases[{index}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"'{prefix}' must be a mapping", field=prefix)
        dialect = item.get("type")
        if not dialect:
            raise ConfigurationError(f"'{prefix}.type' is required", field=f"{prefix}.type")
        databases.append(
            DatabaseConfig(
                dialect=str(dialect).strip().lower(),
                host=str(item.get("host") or "localhost"),
                port=_as_int(item.get("port"), f"{prefix}.port", minimum=1),
                user=str(item.get("user") or ""),
                password=str(item.get("password") or ""),
                database=str(item.get("database") or ""),
                name=str(item.get("name") or ""),
            )
        )

    catalog = _section(data, "catalog_service")
    data_service = _section(data, "data_service")
    return BaseConfig(
        databases=tuple(databases),
        catalog_service=_parse_endpoint(catalog, "catalog_service", mode="offline" if not catalog else "http"),
        data_service=_parse_endpoint(data_service, "data_service", enabled=bool(data_service)),
    )


def load_base_config(path: Union[str, Path]) -> BaseConfig:
    """Load the base configuration, expanding ``${VAR}`` references."""
    data = expand_config(_read_yaml(path))
    return parse_base_config(data)


def resolve_database_config(base: BaseConfig, target: TargetDatabase) -> DatabaseConfig:
    """Pick the connection profile a template runs against.

    With a logical name the profile must match both name and dialect, and
    only its database name is replaced by the template's name. Without a
    name the first profile of the dialect is used.

    Raises:
        ConfigurationError: If no profile matches.
    """
    dialect = target.dialect.lower()
    if target.name:
        for db in base.databases:
            if db.name == target.name and db.dialect == dialect:
                return replace(db, database=target.name)
        raise ConfigurationError(
            f"No database profile named '{target.name}' for type {dialect}",
            field="database.name",
            value=target.name,
            suggestion="Add a matching entry under 'databases' in the base config",
        )

    for db in base.databases:
        if db.dialect == dialect:
            return db
    raise ConfigurationError(
        f"No database profile for type {dialect}",
        field="database.type",
        value=dialect,
        suggestion="Add an entry with this type under 'databases' in the base config",
    )
