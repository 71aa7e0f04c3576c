"""Dialect registry.

``DialectRegistry`` maps target names to :class:`~dbbroker.compile.base.SQLDialect`
classes so a :class:`~dbbroker.schema.profile.ConnectionProfile` can resolve
its dialect without an if-chain, and third parties can add backends without
editing this package.

Usage::

    from dbbroker.compile.registry import DialectRegistry

    @DialectRegistry.register("sqlserver")
    class SQLServerDialect(SQLDialect):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from dbbroker.compile.base import SQLDialect
from dbbroker.errors import BuildError


class DialectRegistry:
    """Registry mapping dialect target names to :class:`SQLDialect` classes.

    Example::

        DialectRegistry.register_class("mysql", MySQLDialect)
        dialect = DialectRegistry.create("mysql")
    """

    _dialects: ClassVar[dict[str, type[SQLDialect]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[SQLDialect]], type[SQLDialect]]:
        """Decorator that registers a dialect class under ``name``.

        Args:
            name: The dialect target name (e.g. ``"postgres"``).

        Returns:
            A decorator that registers and returns the dialect class.
        """

        def decorator(dialect_cls: type[SQLDialect]) -> type[SQLDialect]:
            cls._dialects[name.lower()] = dialect_cls
            return dialect_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, dialect_cls: type[SQLDialect]) -> None:
        """Register a dialect class without using the decorator form."""
        cls._dialects[name.lower()] = dialect_cls

    @classmethod
    def create(cls, name: str) -> SQLDialect:
        """Instantiate the dialect registered for ``name``.

        Raises:
            BuildError: If no dialect is registered for ``name``.
        """
        dialect_cls = cls._dialects.get(name.lower())
        if dialect_cls is None:
            registered = sorted(cls._dialects)
            raise BuildError(
                f"Unsupported dialect target: '{name}'. Registered targets: {registered}."
            )
        return dialect_cls()

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Return the sorted list of registered dialect target names."""
        return sorted(cls._dialects)
