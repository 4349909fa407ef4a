"""Dialect strategies for the supported database families.

The factory below is the only place that maps a dialect tag to code.
Adding a database means writing a strategy and registering it here.

Usage:
    from harness.lib.dialects import get_dialect

    strategy = get_dialect(db_config)
    strategy.connect()
"""

from __future__ import annotations

from typing import Dict, List, Optional, Type

from harness.lib.dialects.base import DialectStrategy
from harness.lib.dialects.mysql import GBaseStrategy, MySQLStrategy
from harness.lib.dialects.postgres import KingBaseStrategy, VastbaseStrategy
from harness.lib.errors import UnsupportedDialectError
from harness.lib.models import DatabaseConfig
from harness.lib.resilience import RetryConfig

__all__ = [
    "DialectStrategy",
    "GBaseStrategy",
    "KingBaseStrategy",
    "MySQLStrategy",
    "VastbaseStrategy",
    "get_dialect",
    "get_dialect_class",
    "supported_dialects",
]

DIALECTS: Dict[str, Type[DialectStrategy]] = {
    cls.name: cls
    for cls in (MySQLStrategy, KingBaseStrategy, GBaseStrategy, VastbaseStrategy)
}


def supported_dialects() -> List[str]:
    return sorted(DIALECTS)


def get_dialect_class(dialect: str) -> Type[DialectStrategy]:
    """Look up the strategy class for a dialect tag.

    Raises:
        UnsupportedDialectError: If no strategy is registered for the tag.
    """
    try:
        return DIALECTS[dialect.strip().lower()]
    except KeyError:
        raise UnsupportedDialectError(dialect, supported=supported_dialects()) from None


def get_dialect(
    config: DatabaseConfig,
    *,
    retry: Optional[RetryConfig] = None,
    connect_timeout: int = 10,
) -> DialectStrategy:
    """Construct an unconnected strategy for ``config``."""
    cls = get_dialect_class(config.dialect)
    return cls(config, retry=retry, connect_timeout=connect_timeout)
