"""Collision-free identifiers scoped to a test run.

Every run gets a namespace that is unique per call. Table and asset
names derived from a namespace are plain concatenations, so passing the
same namespace back in (``--namespace``) reproduces the same names.
"""

from __future__ import annotations

import re
import time
import uuid
from typing import Callable, Optional

__all__ = ["NamespaceAllocator", "sanitize_identifier"]

SEPARATOR = "_"

# MySQL caps identifiers at 64 characters, PostgreSQL at 63. Seeds are
# truncated so that namespace + base names stay well below both.
MAX_SEED_LENGTH = 20

_NON_IDENTIFIER = re.compile(r"[^a-z0-9_]+")


def sanitize_identifier(value: str, max_length: Optional[int] = None) -> str:
    """Lower-case ``value`` and squash anything outside [a-z0-9_] to ``_``.

    Leading digits get an ``n`` prefix so the result is a valid unquoted
    identifier in every supported dialect.

    Example:
        >>> sanitize_identifier("MySQL 1M Read-Test")
        'mysql_1m_read_test'
    """
    cleaned = _NON_IDENTIFIER.sub("_", value.strip().lower()).strip("_")
    cleaned = re.sub(r"_+", "_", cleaned)
    if not cleaned:
        cleaned = "run"
    if cleaned[0].isdigit():
        cleaned = f"n{cleaned}"
    if max_length is not None:
        cleaned = cleaned[:max_length].rstrip("_")
    return cleaned


class NamespaceAllocator:
    """Produces namespaces and the names derived from them.

    Args:
        prefix: Fixed leading component of every namespace.
        clock: Seconds-since-epoch source (injectable for tests).
        token: Random suffix source (injectable for tests).
    """

    def __init__(
        self,
        prefix: str = "test",
        *,
        clock: Callable[[], float] = time.time,
        token: Optional[Callable[[], str]] = None,
    ) -> None:
        self.prefix = sanitize_identifier(prefix)
        self._clock = clock
        self._token = token or (lambda: uuid.uuid4().hex[:6])

    def generate_namespace(self, seed_name: str) -> str:
        """Return a fresh namespace for ``seed_name``.

        Format: ``<prefix>_<seed>_<unix seconds>_<random hex>``.
        """
        seed = sanitize_identifier(seed_name, MAX_SEED_LENGTH)
        stamp = int(self._clock())
        return SEPARATOR.join([self.prefix, seed, str(stamp), self._token()])

    @staticmethod
    def generate_table_name(namespace: str, base: str) -> str:
        return f"{namespace}{SEPARATOR}{base}"

    @staticmethod
    def generate_asset_name(namespace: str, base: str) -> str:
        return f"{namespace}{SEPARATOR}{sanitize_identifier(base)}"
